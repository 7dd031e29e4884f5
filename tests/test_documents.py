from __future__ import annotations

from datetime import timedelta

from apps.ridedesk.app.db import utcnow


def _doc_type(client, name: str, **kw):
    resp = client.post("/api/documents", json={"name": name, "isRequired": True, **kw})
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


def test_verifying_needs_a_valid_expiry(client, make):
    driver = make.driver()
    licence = _doc_type(client, "Driving licence", hasExpiryDate=True)

    resp = client.post(
        "/api/driver-documents",
        json={"driverId": driver["id"], "documentId": licence["id"], "isVerified": True},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "expire_date required to verify this document"

    yesterday = (utcnow().date() - timedelta(days=1)).isoformat()
    resp = client.post(
        "/api/driver-documents",
        json={"driverId": driver["id"], "documentId": licence["id"], "isVerified": True, "expireDate": yesterday},
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "document has expired"

    # a rejected create leaves nothing behind
    assert client.get("/api/driver-documents").json()["pagination"]["total"] == 0

    next_year = (utcnow().date() + timedelta(days=365)).isoformat()
    dd = client.post(
        "/api/driver-documents",
        json={"driverId": driver["id"], "documentId": licence["id"], "expireDate": next_year},
    ).json()["data"]
    assert dd["isVerified"] is False
    verified = client.put(f"/api/driver-documents/{dd['id']}", json={"isVerified": True}).json()["data"]
    assert verified["isVerified"] is True
    assert verified["document"]["name"] == "Driving licence"


def test_one_document_of_each_type_per_driver(client, make):
    driver = make.driver()
    idcard = _doc_type(client, "National ID")
    body = {"driverId": driver["id"], "documentId": idcard["id"]}
    assert client.post("/api/driver-documents", json=body).status_code == 200
    assert client.post("/api/driver-documents", json=body).status_code == 409

    rider = make.rider()
    assert client.post("/api/driver-documents", json={"driverId": rider["id"], "documentId": idcard["id"]}).status_code == 404


def test_verified_filter(client, make):
    driver = make.driver()
    a = _doc_type(client, "A")
    b = _doc_type(client, "B")
    client.post("/api/driver-documents", json={"driverId": driver["id"], "documentId": a["id"], "isVerified": True})
    client.post("/api/driver-documents", json={"driverId": driver["id"], "documentId": b["id"]})

    verified = client.get("/api/driver-documents", params={"verified": "verified"}).json()
    assert [d["documentId"] for d in verified["data"]] == [a["id"]]
    assert client.get("/api/driver-documents", params={"verified": "maybe"}).status_code == 400


def test_document_status_reports_gaps(client, make):
    driver = make.driver()
    licence = _doc_type(client, "Driving licence", hasExpiryDate=True)
    idcard = _doc_type(client, "National ID")
    insurance = _doc_type(client, "Insurance")
    _doc_type(client, "Vehicle photo", type="vehicle")
    _doc_type(client, "Optional bio", isRequired=False)

    client.post(
        "/api/driver-documents",
        json={
            "driverId": driver["id"],
            "documentId": licence["id"],
            "expireDate": (utcnow().date() - timedelta(days=3)).isoformat(),
        },
    )
    client.post("/api/driver-documents", json={"driverId": driver["id"], "documentId": idcard["id"]})

    status = client.get(f"/api/drivers/{driver['id']}/document-status").json()["data"]
    assert status["compliant"] is False
    assert status["required"] == 3
    assert [m["documentId"] for m in status["missing"]] == [insurance["id"]]
    assert [u["documentId"] for u in status["unverified"]] == [idcard["id"]]
    assert [e["documentId"] for e in status["expired"]] == [licence["id"]]


def test_deleting_a_document_type_removes_uploads(client, make):
    driver = make.driver()
    t = _doc_type(client, "Permit")
    client.post("/api/driver-documents", json={"driverId": driver["id"], "documentId": t["id"]})
    assert client.delete(f"/api/documents/{t['id']}").status_code == 200
    assert client.get("/api/driver-documents").json()["pagination"]["total"] == 0
    assert client.get(f"/api/drivers/{driver['id']}/document-status").json()["data"]["compliant"] is True
