from __future__ import annotations

import apps.ridedesk.app.push as push
from apps.ridedesk.app import config


def _fake_gateway(monkeypatch, accepted=None, fail=False):
    captured: dict[str, object] = {}

    class _DummyResp:
        def raise_for_status(self):
            if fail:
                raise push.httpx.HTTPStatusError("boom", request=None, response=None)  # type: ignore[arg-type]

        def json(self):
            body = captured["json"]
            return {"accepted": accepted if accepted is not None else len(body["user_ids"])}

    def _fake_post(url, json=None, headers=None, timeout=None, **kwargs):  # type: ignore[no-untyped-def]
        captured["url"] = url
        captured["json"] = json
        captured["headers"] = headers or {}
        return _DummyResp()

    monkeypatch.setattr(config, "PUSH_GATEWAY_URL", "https://push.example/send")
    monkeypatch.setattr(config, "PUSH_GATEWAY_KEY", "k3y")
    monkeypatch.setattr(push.httpx, "post", _fake_post, raising=True)
    return captured


def test_broadcast_targets_active_users_of_the_type(client, make, monkeypatch):
    captured = _fake_gateway(monkeypatch)
    d1 = make.driver()
    make.driver(status="inactive")
    make.rider()

    resp = client.post("/api/push-notifications", json={"title": "Surge", "message": "High demand", "userType": "driver"})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["recipientCount"] == 1
    assert data["sentCount"] == 1
    assert captured["json"]["user_ids"] == [d1["id"]]
    assert captured["json"]["data"] == {"notification_id": str(data["id"])}
    assert captured["headers"]["Authorization"] == "Bearer k3y"


def test_all_means_riders_and_drivers(client, make, monkeypatch):
    captured = _fake_gateway(monkeypatch, accepted=1)
    make.driver()
    make.rider()
    make.fleet()
    data = client.post("/api/push-notifications", json={"title": "Hi", "message": "Hello"}).json()["data"]
    assert data["recipientCount"] == 2
    assert data["sentCount"] == 1
    assert len(captured["json"]["user_ids"]) == 2


def test_single_user_and_failed_delivery(client, make, monkeypatch):
    _fake_gateway(monkeypatch, fail=True)
    rider = make.rider()
    resp = client.post("/api/push-notifications", json={"title": "Receipt", "message": "Thanks", "userId": rider["id"]})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert (data["recipientCount"], data["sentCount"]) == (1, 0)

    assert client.post("/api/push-notifications", json={"title": "x", "message": "y", "userId": 999}).status_code == 404


def test_without_gateway_nothing_is_sent(client, make):
    make.rider()
    data = client.post("/api/push-notifications", json={"title": "Quiet", "message": "No gateway"}).json()["data"]
    assert (data["recipientCount"], data["sentCount"]) == (1, 0)

    listed = client.get("/api/push-notifications", params={"search": "gateway"}).json()
    assert [p["id"] for p in listed["data"]] == [data["id"]]
    assert client.delete(f"/api/push-notifications/{data['id']}").status_code == 200
    assert client.get("/api/push-notifications").json()["pagination"]["total"] == 0
