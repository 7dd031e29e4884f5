import asyncio
import json
import logging
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from . import config

log = logging.getLogger(__name__)


class TrackingHub:
    """In-memory fan-out of driver positions to sockets subscribed per ride.

    The last payload of every ride is kept so a late subscriber gets the
    current position immediately. State is per process.
    """

    def __init__(self) -> None:
        self.subscribers: Dict[int, Set[WebSocket]] = {}
        self.last_position: Dict[int, Dict[str, Any]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, ride_id: int, ws: WebSocket) -> None:
        self.subscribers.setdefault(ride_id, set()).add(ws)

    def unsubscribe(self, ride_id: int, ws: WebSocket) -> None:
        subs = self.subscribers.get(ride_id)
        if not subs:
            return
        subs.discard(ws)
        if not subs:
            del self.subscribers[ride_id]

    def drop(self, ws: WebSocket) -> None:
        for ride_id in list(self.subscribers):
            self.unsubscribe(ride_id, ws)

    def forget(self, ride_id: int) -> None:
        self.last_position.pop(ride_id, None)

    def clear(self) -> None:
        self.subscribers.clear()
        self.last_position.clear()

    async def publish(self, ride_id: int, payload: Dict[str, Any]) -> int:
        """Send ``payload`` to every subscriber of ``ride_id``; returns deliveries."""
        self.last_position[ride_id] = payload
        text = json.dumps(payload)
        sent = 0
        for ws in list(self.subscribers.get(ride_id, ())):
            try:
                await ws.send_text(text)
                sent += 1
            except Exception:
                # peer went away between receive loops
                self.drop(ws)
        return sent

    def queue_publish(self, ride_id: int, payload: Dict[str, Any]) -> bool:
        """Cache ``payload`` and hand it to the drain task.

        Safe to call from sync routes running in the threadpool. Returns False
        when no drain task is running; the position is still cached for the
        next subscriber.
        """
        self.last_position[ride_id] = payload
        loop, queue = self._loop, self._queue
        if loop is None or queue is None or loop.is_closed():
            return False
        loop.call_soon_threadsafe(queue.put_nowait, (ride_id, payload))
        return True

    async def drain_forever(self) -> None:
        assert self._queue is not None
        while True:
            ride_id, payload = await self._queue.get()
            await self.publish(ride_id, payload)

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = self._loop.create_task(self.drain_forever())

    async def stop(self) -> None:
        task, self._task = self._task, None
        self._loop = None
        self._queue = None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.clear()


hub = TrackingHub()

router_ws = APIRouter()


def _parse(raw: str) -> Optional[tuple[str, int]]:
    try:
        msg = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(msg, dict):
        return None
    action = msg.get("action")
    ride_id = msg.get("rideId", msg.get("ride_id"))
    if action not in ("subscribe-ride", "unsubscribe-ride"):
        return None
    try:
        return action, int(ride_id)
    except (TypeError, ValueError):
        return None


@router_ws.websocket("/ws/tracking")
async def tracking_ws(ws: WebSocket):
    if config.ADMIN_API_TOKEN and ws.query_params.get("token") != config.ADMIN_API_TOKEN:
        await ws.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await ws.accept()
    try:
        while True:
            msg = await ws.receive()
            if msg["type"] == "websocket.disconnect":
                break
            raw = msg.get("text")
            parsed = _parse(raw) if raw is not None else None
            if parsed is None:
                log.debug("ignoring malformed tracking message")
                continue
            action, ride_id = parsed
            if action == "subscribe-ride":
                hub.subscribe(ride_id, ws)
                await ws.send_json({"event": "subscribed", "rideId": ride_id})
                last = hub.last_position.get(ride_id)
                if last:
                    await ws.send_json(last)
            else:
                hub.unsubscribe(ride_id, ws)
                await ws.send_json({"event": "unsubscribed", "rideId": ride_id})
    except WebSocketDisconnect:
        pass
    finally:
        hub.drop(ws)
