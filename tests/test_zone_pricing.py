from __future__ import annotations

PRICES = "/api/manage-zones/zone-prices"


def _price(client, zone_id, service_id, **kw):
    body = {"zoneId": zone_id, "serviceId": service_id, "baseFare": 20, "perKm": 4, "perMinute": 1, **kw}
    resp = client.post(PRICES, json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def _estimate(client, category_id, lat=24.7136, lng=46.6753):
    resp = client.post(
        "/api/pricing-rules/estimate",
        json={
            "vehicleCategoryId": category_id,
            "startLatitude": lat,
            "startLongitude": lng,
            "endLatitude": 24.7743,
            "endLongitude": 46.7386,
        },
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def test_zone_price_is_unique_per_zone_and_category(client, make):
    cat = make.category()
    zone = make.zone()
    zp = _price(client, zone["id"], cat["id"])
    assert zp["zone"]["name"] == "Downtown"
    assert zp["service"]["name"] == "Economy"
    assert zp["baseFare"] == 20

    resp = client.post(PRICES, json={"zoneId": zone["id"], "serviceId": cat["id"], "baseFare": 9})
    assert resp.status_code == 409

    other = make.zone("Airport", lat=24.9576, lng=46.6988)
    moved = _price(client, other["id"], cat["id"])
    resp = client.put(f"{PRICES}/{moved['id']}", json={"zoneId": zone["id"]})
    assert resp.status_code == 409

    resp = client.put(f"{PRICES}/{zp['id']}", json={"perKm": 6})
    assert resp.json()["data"]["perKm"] == 6


def test_zone_price_requires_known_zone_and_category(client, make):
    cat = make.category()
    zone = make.zone()
    assert client.post(PRICES, json={"zoneId": 999, "serviceId": cat["id"]}).status_code == 404
    assert client.post(PRICES, json={"zoneId": zone["id"], "serviceId": 999}).status_code == 404
    assert client.post(PRICES, json={"zoneId": zone["id"], "serviceId": cat["id"], "perKm": -1}).status_code == 422


def test_zone_price_listing_filters_and_counts(client, make):
    economy = make.category()
    lux = make.category("Luxury")
    zone = make.zone()
    _price(client, zone["id"], economy["id"])
    _price(client, zone["id"], lux["id"], status=0)

    body = client.get(PRICES, params={"serviceId": lux["id"]}).json()
    assert [p["serviceId"] for p in body["data"]] == [lux["id"]]
    assert body["counts"] == {"0": 1, "1": 1, "total": 2}

    body = client.get(PRICES, params={"status": "active"}).json()
    assert [p["serviceId"] for p in body["data"]] == [economy["id"]]

    body = client.get(PRICES, params={"search": "luxury"}).json()
    assert len(body["data"]) == 1


def test_estimate_uses_zone_price_for_pickup_inside_zone(client, make):
    cat = make.category()
    rule = make.rule(cat["id"])
    zone = make.zone()
    zp = _price(client, zone["id"], cat["id"], baseFare=50, perKm=0, perMinute=0)

    inside = _estimate(client, cat["id"])
    assert inside["zoneId"] == zone["id"]
    assert inside["zonePriceId"] == zp["id"]
    assert inside["pricingRuleId"] == rule["id"]
    assert inside["breakdown"]["baseFare"] == 50
    assert inside["totalAmount"] == 50

    outside = _estimate(client, cat["id"], lat=21.4858, lng=39.1925)
    assert outside["zoneId"] is None
    assert outside["zonePriceId"] is None
    assert outside["breakdown"]["baseFare"] == 5


def test_inactive_zone_price_is_ignored(client, make):
    cat = make.category()
    make.rule(cat["id"])
    zone = make.zone()
    _price(client, zone["id"], cat["id"], baseFare=50, status=0)
    assert _estimate(client, cat["id"])["zonePriceId"] is None


def test_nearest_zone_price_wins(client, make):
    cat = make.category()
    make.rule(cat["id"])
    wide = make.zone("Wide", lat=24.75, lng=46.70, radius=20)
    core = make.zone("Core", lat=24.7136, lng=46.6753, radius=2)
    _price(client, wide["id"], cat["id"], baseFare=30)
    core_price = _price(client, core["id"], cat["id"], baseFare=40)

    data = _estimate(client, cat["id"])
    assert data["zonePriceId"] == core_price["id"]
    assert data["breakdown"]["baseFare"] == 40


def test_booking_is_priced_with_zone_price(client, make):
    cat = make.category()
    make.rule(cat["id"])
    rider = make.rider()
    # rule alone: 5 + (3 - 2) * 2 + 10 * 0.5
    plain = make.ride(rider["id"], cat["id"], distance=3, duration=10)
    assert plain["totalAmount"] == 12

    zone = make.zone()
    _price(client, zone["id"], cat["id"])
    # zone price: 20 + (3 - 2) * 4 + 10 * 1
    zoned = make.ride(rider["id"], cat["id"], distance=3, duration=10)
    assert zoned["totalAmount"] == 34


def test_deleting_zone_or_category_drops_its_prices(client, make):
    cat = make.category()
    lux = make.category("Luxury")
    zone = make.zone()
    other = make.zone("Airport", lat=24.9576, lng=46.6988)
    _price(client, zone["id"], cat["id"])
    kept = _price(client, other["id"], cat["id"])
    _price(client, other["id"], lux["id"])

    assert client.delete(f"/api/geographic-zones/{zone['id']}").status_code == 200
    assert client.delete(f"/api/vehicle-categories/{lux['id']}").status_code == 200

    data = client.get(PRICES).json()["data"]
    assert [p["id"] for p in data] == [kept["id"]]
