from __future__ import annotations

from apps.ridedesk.app.routes.catalog import slugify


def test_slugify():
    assert slugify("  Premium SUV (7 seats) ") == "premium-suv-7-seats"
    assert slugify("!!!") == "category"


def test_category_slug_is_derived_and_unique(client, make):
    cat = make.category("Premium SUV")
    assert cat["slug"] == "premium-suv"
    dup = client.post("/api/vehicle-categories", json={"name": "Premium  suv"})
    assert dup.status_code == 409

    other = make.category("Bike", slug="Two Wheels")
    assert other["slug"] == "two-wheels"
    clash = client.put(f"/api/vehicle-categories/{other['id']}", json={"slug": "premium-suv"})
    assert clash.status_code == 409


def test_deleting_category_removes_its_rule_and_keeps_rides(client, make):
    cat = make.category()
    rule = make.rule(cat["id"])
    rider = make.rider()
    ride = make.ride(rider["id"], cat["id"])

    assert client.delete(f"/api/vehicle-categories/{cat['id']}").status_code == 200
    assert client.get(f"/api/pricing-rules/{rule['id']}").status_code == 404
    assert client.get(f"/api/ride-requests/{ride['id']}").json()["data"]["serviceId"] is None


def test_category_status_filter(client, make):
    make.category("On")
    make.category("Off", status=0)
    body = client.get("/api/vehicle-categories", params={"status": "inactive"}).json()
    assert [c["name"] for c in body["data"]] == ["Off"]
    assert body["counts"] == {"1": 1, "0": 1, "total": 2}
    assert client.get("/api/vehicle-categories", params={"status": "bogus"}).status_code == 400


def test_cancellation_reasons_filter_by_type(client):
    client.post("/api/cancellations", json={"name": "Driver late", "type": "rider"})
    client.post("/api/cancellations", json={"name": "Rider no-show", "type": "driver"})
    body = client.get("/api/cancellations", params={"type": "driver"}).json()
    assert [r["name"] for r in body["data"]] == ["Rider no-show"]


def test_sos_contacts(client):
    c = client.post("/api/sos", json={"name": "Police", "contactNumber": "999"}).json()["data"]
    updated = client.put(f"/api/sos/{c['id']}", json={"contactNumber": "911"}).json()["data"]
    assert updated["contactNumber"] == "911"
    assert client.put(f"/api/sos/{c['id']}", json={"name": None}).status_code == 400
    assert client.delete(f"/api/sos/{c['id']}").status_code == 200
    assert client.get("/api/sos").json()["pagination"]["total"] == 0


def test_faq_search(client):
    client.post("/api/faqs", json={"question": "How do I pay?", "answer": "Cash or card."})
    client.post("/api/faqs", json={"question": "Lost item?", "answer": "Contact support.", "type": "driver"})
    body = client.get("/api/faqs", params={"search": "CARD"}).json()
    assert [f["question"] for f in body["data"]] == ["How do I pay?"]


def test_settings_defaults_and_update(client):
    data = client.get("/api/settings").json()["data"]
    assert data["appName"] == "Ridedesk"
    assert data["currency"]

    resp = client.post("/api/settings", json={"appName": "RideNow", "surgeEnabled": True, "rideAcceptTimeout": 45})
    assert resp.status_code == 200
    data = client.get("/api/settings").json()["data"]
    assert data["appName"] == "RideNow"
    assert data["surgeEnabled"] == "true"
    assert data["rideAcceptTimeout"] == "45"

    assert client.post("/api/settings", json={"nested": {"a": 1}}).status_code == 400
    assert client.post("/api/settings", json={}).status_code == 400


def test_category_features_crud_and_filter(client, make):
    economy = make.category()
    lux = make.category("Luxury")
    resp = client.post("/api/category-features", json={"vehicleCategoryId": 999, "name": "Wi-Fi"})
    assert resp.status_code == 404

    wifi = client.post(
        "/api/category-features",
        json={"vehicleCategoryId": lux["id"], "name": "Wi-Fi", "nameAr": "واي فاي", "icon": "wifi"},
    ).json()["data"]
    assert wifi["vehicleCategory"]["name"] == "Luxury"
    client.post("/api/category-features", json={"vehicleCategoryId": economy["id"], "name": "AC", "status": 0})

    body = client.get("/api/category-features", params={"vehicleCategoryId": lux["id"]}).json()
    assert [f["name"] for f in body["data"]] == ["Wi-Fi"]
    assert body["counts"]["total"] == 2
    assert [f["name"] for f in client.get("/api/category-features", params={"status": "inactive"}).json()["data"]] == ["AC"]

    resp = client.put(f"/api/category-features/{wifi['id']}", json={"vehicleCategoryId": 999})
    assert resp.status_code == 404
    resp = client.put(f"/api/category-features/{wifi['id']}", json={"icon": "wifi-6"})
    assert resp.json()["data"]["icon"] == "wifi-6"

    assert client.delete(f"/api/vehicle-categories/{lux['id']}").status_code == 200
    assert [f["name"] for f in client.get("/api/category-features").json()["data"]] == ["AC"]
    assert client.delete(f"/api/category-features/{wifi['id']}").status_code == 404
