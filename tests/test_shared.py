from __future__ import annotations

from ridedesk_shared.cors import DEV_ORIGINS, parse_origins


def test_parse_origins_normalises_and_drops_invalid_entries():
    raw = " https://admin.ridedesk.example/ ,ftp://files.example, not-a-url,https://admin.ridedesk.example,http://localhost:5173/app"
    assert parse_origins(raw) == ["https://admin.ridedesk.example"]
    assert parse_origins(["*", "https://x.example"]) == ["*", "https://x.example"]
    assert parse_origins(None) == []


def test_preflight_from_dashboard_origin(client):
    resp = client.options(
        "/api/drivers",
        headers={
            "Origin": DEV_ORIGINS[0],
            "Access-Control-Request-Method": "PUT",
            "Access-Control-Request-Headers": "X-Admin-Token",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == DEV_ORIGINS[0]
    assert resp.headers["access-control-max-age"] == "600"


def test_dashboard_can_read_export_headers(client):
    resp = client.get("/api/drivers", headers={"Origin": DEV_ORIGINS[0]})
    exposed = {h.strip().lower() for h in resp.headers["access-control-expose-headers"].split(",")}
    assert {"x-request-id", "content-disposition"} <= exposed
