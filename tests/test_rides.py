from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from apps.ridedesk.app.models import RideRequest


@pytest.fixture()
def setup(client, make):
    cat = make.category()
    make.rule(cat["id"])
    rider = make.rider()
    driver = make.driver()
    return {"cat": cat, "rider": rider, "driver": driver}


def test_new_ride_is_pending_and_priced(client, make, setup):
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    assert ride["status"] == "pending"
    assert ride["distance"] > 0
    assert ride["duration"] >= 1
    assert ride["totalAmount"] >= 10


def test_ride_requires_known_rider_and_category(client, make, setup):
    body = {"riderId": 999, "serviceId": setup["cat"]["id"], "startLatitude": 1, "startLongitude": 1}
    assert client.post("/api/ride-requests", json=body).status_code == 404
    body = {"riderId": setup["rider"]["id"], "serviceId": 999, "startLatitude": 1, "startLongitude": 1}
    assert client.post("/api/ride-requests", json=body).status_code == 404


def test_scheduled_ride_must_be_in_the_future(client, make, setup):
    past = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    resp = client.post(
        "/api/ride-requests",
        json={
            "riderId": setup["rider"]["id"],
            "serviceId": setup["cat"]["id"],
            "startLatitude": 24.7,
            "startLongitude": 46.6,
            "isSchedule": True,
            "scheduleDatetime": past,
        },
    )
    assert resp.status_code == 400

    future = (datetime.now(timezone.utc) + timedelta(hours=2)).isoformat()
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"], isSchedule=True, scheduleDatetime=future)
    assert ride["status"] == "scheduled"
    assert make.move(ride["id"], "pending")["data"]["status"] == "pending"


def test_full_lifecycle_credits_driver_wallet(client, make, setup):
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"], paymentType="card")
    driver_id = setup["driver"]["id"]

    accepted = make.move(ride["id"], "accepted", driverId=driver_id)["data"]
    assert accepted["driverId"] == driver_id
    assert accepted["acceptedAt"]
    assert client.get(f"/api/drivers/{driver_id}").json()["data"]["isAvailable"] is False

    assert make.move(ride["id"], "in_progress")["data"]["startedAt"]
    done = make.move(ride["id"], "completed")["data"]
    assert done["completedAt"]
    assert done["adminCommission"] == pytest.approx(done["totalAmount"] * 0.2, abs=0.011)
    assert done["adminCommission"] + done["fleetCommission"] + done["driverEarning"] == pytest.approx(done["totalAmount"])
    assert client.get(f"/api/drivers/{driver_id}").json()["data"]["isAvailable"] is True

    wallet = client.get(f"/api/users/{driver_id}/wallet").json()["data"]
    assert wallet["balance"] == pytest.approx(done["driverEarning"])
    txns = client.get(f"/api/wallets/{wallet['id']}").json()["data"]["transactions"]
    assert txns[0]["rideRequestId"] == ride["id"]
    assert txns[0]["type"] == "credit"


def test_cash_rides_do_not_touch_the_wallet(client, make, setup):
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    make.move(ride["id"], "accepted", driverId=setup["driver"]["id"])
    make.move(ride["id"], "in_progress")
    make.move(ride["id"], "completed")
    wallet = client.get(f"/api/users/{setup['driver']['id']}/wallet").json()["data"]
    assert wallet["balance"] == 0


def test_invalid_transitions_are_409(client, make, setup):
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    resp = client.put(f"/api/ride-requests/{ride['id']}/status", json={"status": "completed"})
    assert resp.status_code == 409
    assert resp.json()["message"] == "cannot move ride from pending to completed"

    make.move(ride["id"], "cancelled")
    resp = client.put(f"/api/ride-requests/{ride['id']}/status", json={"status": "accepted", "driverId": setup["driver"]["id"]})
    assert resp.status_code == 409

    same = make.move(ride["id"], "cancelled")
    assert same["message"] == "Ride status unchanged"


def test_accept_needs_an_active_driver(client, make, setup):
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    resp = client.put(f"/api/ride-requests/{ride['id']}/status", json={"status": "accepted"})
    assert resp.status_code == 400

    pending_driver = make.driver(status="pending")
    resp = client.put(
        f"/api/ride-requests/{ride['id']}/status",
        json={"status": "accepted", "driverId": pending_driver["id"]},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "driver is not active"


def test_cancel_with_reason_releases_driver(client, make, setup):
    reason = client.post("/api/cancellations", json={"name": "Changed plans"}).json()["data"]
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    make.move(ride["id"], "accepted", driverId=setup["driver"]["id"])
    bad = client.put(f"/api/ride-requests/{ride['id']}/status", json={"status": "cancelled", "cancelReasonId": 999})
    assert bad.status_code == 404

    data = make.move(ride["id"], "cancelled", cancelReasonId=reason["id"])["data"]
    assert data["cancelReason"]["name"] == "Changed plans"
    assert data["cancelledAt"]
    assert client.get(f"/api/drivers/{setup['driver']['id']}").json()["data"]["isAvailable"] is True


def test_ride_listing_filters(client, make, setup):
    r1 = make.ride(setup["rider"]["id"], setup["cat"]["id"], startAddress="Airport T1")
    make.ride(setup["rider"]["id"], setup["cat"]["id"])
    make.move(r1["id"], "accepted", driverId=setup["driver"]["id"])

    by_driver = client.get("/api/ride-requests", params={"driver_id": setup["driver"]["id"]}).json()
    assert [r["id"] for r in by_driver["data"]] == [r1["id"]]
    assert by_driver["counts"] == {"accepted": 1, "pending": 1, "total": 2}

    found = client.get("/api/ride-requests", params={"search": "airport"}).json()
    assert [r["id"] for r in found["data"]] == [r1["id"]]


def test_bulk_delete_rides(client, make, setup):
    rides = [make.ride(setup["rider"]["id"], setup["cat"]["id"]) for _ in range(3)]
    make.move(rides[0]["id"], "accepted", driverId=setup["driver"]["id"])
    resp = client.post("/api/bulk-operations/ride-requests/delete", json={"ids": [rides[0]["id"], rides[1]["id"], 999]})
    assert resp.json()["data"] == {"affected": 2}
    assert client.get("/api/ride-requests").json()["pagination"]["total"] == 1
    # deleting an active ride frees its driver
    assert client.get(f"/api/drivers/{setup['driver']['id']}").json()["data"]["isAvailable"] is True


def test_tracking_snapshot(client, make, setup):
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    make.move(ride["id"], "accepted", driverId=setup["driver"]["id"])
    client.post(f"/api/drivers/{setup['driver']['id']}/location", json={"lat": 24.80, "lng": 46.80})

    snap = client.get(f"/api/ride-requests/{ride['id']}/tracking").json()["data"]
    assert snap["pickup"] == {"lat": 24.7136, "lng": 46.6753, "address": "Olaya St"}
    assert snap["dropoff"]["address"] == "King Fahd Rd"
    assert snap["driver"]["lat"] == 24.80
    assert snap["bounds"]["north"] == 24.80
    assert snap["bounds"]["south"] == 24.7136
    assert snap["pollIntervalMs"] > 0


def test_vehicle_tracking_marks_busy_drivers(client, make, setup):
    idle = make.driver()
    client.post(f"/api/drivers/{idle['id']}/location", json={"lat": 24.7, "lng": 46.7})
    client.post(f"/api/drivers/{idle['id']}/availability", json={"isOnline": True})
    busy = setup["driver"]
    client.post(f"/api/drivers/{busy['id']}/location", json={"lat": 24.71, "lng": 46.71})
    ride = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    make.move(ride["id"], "accepted", driverId=busy["id"])
    make.driver()  # no position, not on the map

    data = client.get("/api/vehicle-tracking").json()["data"]
    states = {d["id"]: d["status"] for d in data["drivers"]}
    assert states == {idle["id"]: "online", busy["id"]: "busy"}
    assert [r["id"] for r in data["activeRides"]] == [ride["id"]]


def test_driver_cannot_hold_two_active_rides(client, make, setup):
    driver_id = setup["driver"]["id"]
    first = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    second = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    make.move(first["id"], "accepted", driverId=driver_id)

    resp = client.put(f"/api/ride-requests/{second['id']}/status", json={"status": "accepted", "driverId": driver_id})
    assert resp.status_code == 409
    assert resp.json()["message"] == f"driver is already on ride #{first['id']}"
    assert client.get(f"/api/ride-requests/{second['id']}").json()["data"]["status"] == "pending"


def test_driver_stays_busy_while_another_ride_is_active(client, make, setup, session):
    driver_id = setup["driver"]["id"]
    a = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    b = make.ride(setup["rider"]["id"], setup["cat"]["id"])
    make.move(a["id"], "accepted", driverId=driver_id)
    # assigned directly in the database, bypassing the status endpoint
    row = session.get(RideRequest, b["id"])
    row.driver_id = driver_id
    row.status = "accepted"
    session.commit()

    make.move(a["id"], "cancelled")
    assert client.get(f"/api/drivers/{driver_id}").json()["data"]["isAvailable"] is False

    make.move(b["id"], "in_progress")
    make.move(b["id"], "completed")
    assert client.get(f"/api/drivers/{driver_id}").json()["data"]["isAvailable"] is True
