from __future__ import annotations

from decimal import Decimal

import pytest
from fastapi import HTTPException

from apps.ridedesk.app.models import User
from apps.ridedesk.app.wallets import post_transaction, wallet_for


def _funded_driver(client, make, amount: float = 100):
    driver = make.driver()
    wallet = client.get(f"/api/users/{driver['id']}/wallet").json()["data"]
    resp = client.post(f"/api/wallets/{wallet['id']}/transaction", json={"type": "credit", "amount": amount})
    assert resp.status_code == 200, resp.text
    return driver, wallet


def test_post_transaction_keeps_balance_non_negative(session):
    u = User(user_type="driver", first_name="Unit")
    session.add(u)
    session.flush()
    w = wallet_for(session, u)
    assert w.balance == Decimal("0")

    txn = post_transaction(session, w, "credit", "10.005")
    assert txn.amount == Decimal("10.01")
    assert txn.balance_after == Decimal("10.01")

    with pytest.raises(HTTPException) as exc:
        post_transaction(session, w, "debit", 20)
    assert exc.value.status_code == 402

    with pytest.raises(HTTPException) as exc:
        post_transaction(session, w, "refund", 1)
    assert exc.value.status_code == 400

    assert wallet_for(session, u).id == w.id


def test_admin_wallet_adjustments(client, make):
    driver, wallet = _funded_driver(client, make, 50)
    resp = client.post(f"/api/wallets/{wallet['id']}/transaction", json={"type": "debit", "amount": 20, "description": "Fine"})
    data = resp.json()["data"]
    assert data["wallet"]["balance"] == 30
    assert data["transaction"]["balanceAfter"] == 30

    over = client.post(f"/api/wallets/{wallet['id']}/transaction", json={"type": "debit", "amount": 31})
    assert over.status_code == 402
    assert over.json()["message"] == "insufficient balance"

    detail = client.get(f"/api/wallets/{wallet['id']}").json()["data"]
    assert [t["description"] for t in detail["transactions"]] == ["Fine", "Admin credit"]

    listed = client.get("/api/wallets", params={"search": "dana"}).json()
    assert [w["id"] for w in listed["data"]] == [wallet["id"]]


def test_withdraw_needs_available_balance(client, make):
    driver, wallet = _funded_driver(client, make, 100)
    first = client.post("/api/withdraw-requests", json={"userId": driver["id"], "amount": 70})
    assert first.status_code == 200
    assert first.json()["data"]["status"] == 0

    # 70 is already reserved by the pending request
    second = client.post("/api/withdraw-requests", json={"userId": driver["id"], "amount": 40})
    assert second.status_code == 402

    # editing may reuse its own reservation
    edit = client.put(f"/api/withdraw-requests/{first.json()['data']['id']}", json={"amount": 100})
    assert edit.json()["data"]["amount"] == 100


def test_approving_a_withdrawal_debits_the_wallet(client, make):
    driver, wallet = _funded_driver(client, make, 100)
    wr = client.post("/api/withdraw-requests", json={"userId": driver["id"], "amount": 60}).json()["data"]

    resp = client.post(f"/api/withdraw-requests/{wr['id']}/status", json={"status": 1, "note": "Paid by transfer"})
    data = resp.json()["data"]
    assert data["status"] == 1
    assert data["note"] == "Paid by transfer"
    assert data["processedAt"]

    w = client.get(f"/api/wallets/{wallet['id']}").json()["data"]
    assert w["balance"] == 40
    assert w["transactions"][0]["description"] == f"Withdrawal #{wr['id']}"

    assert client.post(f"/api/withdraw-requests/{wr['id']}/status", json={"status": 2}).status_code == 409
    assert client.put(f"/api/withdraw-requests/{wr['id']}", json={"amount": 1}).status_code == 409
    assert client.delete(f"/api/withdraw-requests/{wr['id']}").status_code == 409


def test_rejecting_leaves_the_balance_and_can_be_deleted(client, make):
    driver, wallet = _funded_driver(client, make, 10)
    wr = client.post("/api/withdraw-requests", json={"userId": driver["id"], "amount": 10}).json()["data"]
    assert client.post(f"/api/withdraw-requests/{wr['id']}/status", json={"status": 2}).json()["data"]["status"] == 2
    assert client.get(f"/api/wallets/{wallet['id']}").json()["data"]["balance"] == 10
    assert client.post(f"/api/withdraw-requests/{wr['id']}/status", json={"status": 0}).status_code == 422
    assert client.delete(f"/api/withdraw-requests/{wr['id']}").status_code == 200


def test_withdraw_listing_filters(client, make):
    driver, _ = _funded_driver(client, make, 100)
    a = client.post("/api/withdraw-requests", json={"userId": driver["id"], "amount": 10}).json()["data"]
    client.post("/api/withdraw-requests", json={"userId": driver["id"], "amount": 25.5})
    client.post(f"/api/withdraw-requests/{a['id']}/status", json={"status": 1})

    pending = client.get("/api/withdraw-requests", params={"status": "pending"}).json()
    assert [w["amount"] for w in pending["data"]] == [25.5]
    assert pending["counts"] == {"0": 1, "1": 1, "total": 2}
    assert client.get("/api/withdraw-requests", params={"status": "1"}).json()["pagination"]["total"] == 1
    assert client.get("/api/withdraw-requests", params={"status": "lost"}).status_code == 400
    assert client.get("/api/withdraw-requests", params={"search": "25.50"}).json()["pagination"]["total"] == 1
