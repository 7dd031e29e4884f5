from __future__ import annotations

from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

import apps.ridedesk.app.db as db
from apps.ridedesk.app import config
from apps.ridedesk.app.common import AUDIT_EVENTS
from apps.ridedesk.app.main import app
from apps.ridedesk.app.tracking import hub


@pytest.fixture()
def engine(monkeypatch):
    """
    Fresh in-memory SQLite per test, shared by every session through
    StaticPool so TestClient threads see the same data.
    """
    eng = db.make_engine("sqlite+pysqlite:///:memory:")
    monkeypatch.setattr(db, "engine", eng)
    db.init_db()
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture()
def client(engine, monkeypatch):
    monkeypatch.setattr(config, "ENV", "test")
    monkeypatch.setattr(config, "ADMIN_API_TOKEN", "")
    monkeypatch.setattr(config, "PUSH_GATEWAY_URL", "")
    monkeypatch.setattr(config, "OSRM_BASE", "")
    monkeypatch.setattr(config, "BCRYPT_ROUNDS", 4)

    def _session_override():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[db.get_session] = _session_override
    AUDIT_EVENTS.clear()
    hub.clear()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    AUDIT_EVENTS.clear()
    hub.clear()


class Factory:
    """Creates records through the API so every test exercises the real routes."""

    def __init__(self, client: TestClient):
        self.client = client
        self._n = 0

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        resp = self.client.post(path, json=body)
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    def _email(self, prefix: str) -> str:
        self._n += 1
        return f"{prefix}{self._n}@example.com"

    def driver(self, **kw) -> Dict[str, Any]:
        body = {"firstName": "Dana", "lastName": "Driver", "email": self._email("driver"), **kw}
        return self._post("/api/drivers", body)

    def rider(self, **kw) -> Dict[str, Any]:
        body = {"firstName": "Rami", "lastName": "Rider", "email": self._email("rider"), **kw}
        return self._post("/api/riders", body)

    def fleet(self, **kw) -> Dict[str, Any]:
        body = {"displayName": "Fast Fleet", "email": self._email("fleet"), **kw}
        return self._post("/api/fleets", body)

    def category(self, name: str = "Economy", **kw) -> Dict[str, Any]:
        return self._post("/api/vehicle-categories", {"name": name, **kw})

    def rule(self, category_id: int, **kw) -> Dict[str, Any]:
        body = {
            "vehicleCategoryId": category_id,
            "baseFare": 5,
            "baseDistance": 2,
            "minimumFare": 10,
            "perDistanceAfterBase": 2,
            "perMinuteDrive": 0.5,
            "perMinuteWait": 1,
            "waitingTimeLimit": 3,
            "commissionType": "percentage",
            "adminCommission": 20,
            "fleetCommission": 0,
            **kw,
        }
        return self._post("/api/pricing-rules", body)

    def zone(self, name: str = "Downtown", lat: float = 24.7136, lng: float = 46.6753, radius: float = 5, **kw):
        return self._post(
            "/api/geographic-zones",
            {"name": name, "centerLat": lat, "centerLng": lng, "radius": radius, **kw},
        )

    def ride(self, rider_id: int, service_id: int, **kw) -> Dict[str, Any]:
        body = {
            "riderId": rider_id,
            "serviceId": service_id,
            "startLatitude": 24.7136,
            "startLongitude": 46.6753,
            "endLatitude": 24.7743,
            "endLongitude": 46.7386,
            "startAddress": "Olaya St",
            "endAddress": "King Fahd Rd",
            **kw,
        }
        return self._post("/api/ride-requests", body)

    def move(self, ride_id: int, status: str, **kw) -> Dict[str, Any]:
        return self.client.put(f"/api/ride-requests/{ride_id}/status", json={"status": status, **kw}).json()


@pytest.fixture()
def make(client) -> Factory:
    return Factory(client)
