from __future__ import annotations

from datetime import date, timedelta


def _trip(client, **kw):
    start = date.today() + timedelta(days=3)
    body = {
        "startDate": start.isoformat(),
        "endDate": (start + timedelta(days=2)).isoformat(),
        "startLocation": "Riyadh",
        "destinations": ["AlUla", "  ", "Hegra "],
        "totalAmount": 1500,
        **kw,
    }
    return client.post("/api/tourist-trips", json=body)


def test_create_trip_cleans_destinations(client, make):
    rider = make.rider()
    resp = _trip(client, riderId=rider["id"])
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["destinations"] == ["AlUla", "Hegra"]
    assert data["status"] == "pending"
    assert data["rider"]["id"] == rider["id"]


def test_end_date_before_start_date_is_400(client):
    resp = _trip(client, startDate="2030-05-10", endDate="2030-05-09")
    assert resp.status_code == 400

    t = _trip(client).json()["data"]
    resp = client.put(f"/api/tourist-trips/{t['id']}", json={"endDate": "2000-01-01"})
    assert resp.status_code == 400


def test_assign_driver_confirms_pending_trip(client, make):
    t = _trip(client).json()["data"]
    inactive = make.driver(status="inactive")
    assert client.put(f"/api/tourist-trips/{t['id']}/assign-driver", json={"driverId": inactive["id"]}).status_code == 400

    driver = make.driver()
    data = client.put(f"/api/tourist-trips/{t['id']}/assign-driver", json={"driverId": driver["id"]}).json()["data"]
    assert data["driverId"] == driver["id"]
    assert data["status"] == "confirmed"

    found = client.get("/api/tourist-trips", params={"search": "dana"}).json()
    assert [x["id"] for x in found["data"]] == [t["id"]]


def test_terminal_trips_are_locked(client, make):
    t = _trip(client).json()["data"]
    assert client.put(f"/api/tourist-trips/{t['id']}/status", json={"status": "in-progress"}).status_code == 200
    assert client.put(f"/api/tourist-trips/{t['id']}/status", json={"status": "completed"}).status_code == 200

    assert client.put(f"/api/tourist-trips/{t['id']}/status", json={"status": "pending"}).status_code == 409
    driver = make.driver()
    resp = client.put(f"/api/tourist-trips/{t['id']}/assign-driver", json={"driverId": driver["id"]})
    assert resp.status_code == 409

    listed = client.get("/api/tourist-trips", params={"status": "completed"}).json()
    assert listed["pagination"]["total"] == 1
    assert client.delete(f"/api/tourist-trips/{t['id']}").status_code == 200


def test_trips_are_listed_newest_first(client):
    later_tour = _trip(client, startDate="2031-01-10", endDate="2031-01-12").json()["data"]
    sooner_tour = _trip(client, startDate="2030-06-01", endDate="2030-06-02").json()["data"]
    listed = client.get("/api/tourist-trips").json()["data"]
    assert [t["id"] for t in listed] == [sooner_tour["id"], later_tour["id"]]
