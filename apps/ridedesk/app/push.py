import logging
from typing import Iterable, Optional

import httpx

from . import config

log = logging.getLogger(__name__)


def send_push(user_ids: Iterable[int], title: str, body: str, data: Optional[dict] = None) -> int:
    """Best-effort delivery through the push gateway.

    Returns how many recipients the gateway accepted. A missing gateway or a
    failed call delivers nothing and is logged, never raised.
    """
    recipients = [int(u) for u in user_ids]
    if not recipients:
        return 0
    if not config.PUSH_GATEWAY_URL:
        log.info("push gateway not configured, skipping delivery", extra={"recipients": len(recipients)})
        return 0
    headers = {"Content-Type": "application/json"}
    if config.PUSH_GATEWAY_KEY:
        headers["Authorization"] = f"Bearer {config.PUSH_GATEWAY_KEY}"
    payload = {
        "user_ids": recipients,
        "title": title,
        "body": body,
        "data": {str(k): str(v) for k, v in (data or {}).items()},
    }
    try:
        r = httpx.post(config.PUSH_GATEWAY_URL, json=payload, headers=headers, timeout=10)
        r.raise_for_status()
        j = r.json()
    except (httpx.HTTPError, ValueError) as e:
        log.warning("push delivery failed", extra={"error": str(e), "recipients": len(recipients)})
        return 0
    accepted = j.get("accepted", j.get("success")) if isinstance(j, dict) else None
    try:
        return max(0, min(len(recipients), int(accepted)))
    except (TypeError, ValueError):
        return len(recipients)
