from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..common import Paging, audit, dump, get_or_404, listing, ok, status_counts
from ..db import get_session, utcnow
from ..models import User, Wallet, WithdrawRequest
from ..pricing import money
from ..schemas import (
    WalletOut,
    WalletTransactionIn,
    WalletTransactionOut,
    WithdrawIn,
    WithdrawOut,
    WithdrawStatusIn,
    WithdrawUpdate,
)
from ..wallets import post_transaction, wallet_for
from .users import get_user_or_404

router = APIRouter()

WITHDRAW_PENDING, WITHDRAW_APPROVED, WITHDRAW_REJECTED = 0, 1, 2
WITHDRAW_STATUS_NAMES = {"pending": 0, "approved": 1, "rejected": 2}


# ---- Wallets ----
def _wallet_haystack(w: Wallet):
    return (w.user.full_name if w.user else None, w.user.email if w.user else None, w.id)


@router.get("/wallets")
def list_wallets(
    user_type: Optional[str] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(Wallet).join(User, Wallet.user_id == User.id)
    if user_type:
        stmt = stmt.where(User.user_type == user_type)
    stmt = stmt.order_by(Wallet.updated_at.desc(), Wallet.id.desc())
    return listing(s, stmt, WalletOut, paging, _wallet_haystack)


@router.get("/users/{user_id}/wallet")
def get_user_wallet(user_id: int, s: Session = Depends(get_session)):
    u = get_user_or_404(s, user_id)
    w = wallet_for(s, u)
    s.commit(); s.refresh(w)
    return ok(dump(WalletOut, w))


@router.get("/wallets/{wallet_id}")
def get_wallet(wallet_id: int, limit: int = 50, s: Session = Depends(get_session)):
    w = get_or_404(s, Wallet, wallet_id, "wallet")
    data = dump(WalletOut, w)
    data["transactions"] = [dump(WalletTransactionOut, t) for t in w.transactions[: max(1, min(limit, 500))]]
    return ok(data)


@router.post("/wallets/{wallet_id}/transaction")
def wallet_transaction(wallet_id: int, req: WalletTransactionIn, request: Request, s: Session = Depends(get_session)):
    w = get_or_404(s, Wallet, wallet_id, "wallet")
    txn = post_transaction(s, w, req.type, req.amount, req.description or f"Admin {req.type}")
    s.commit(); s.refresh(txn); s.refresh(w)
    audit(request, "wallet_transaction", wallet_id=w.id, type=txn.type, amount=str(txn.amount))
    return ok({"wallet": dump(WalletOut, w), "transaction": dump(WalletTransactionOut, txn)}, "Wallet updated")


# ---- Withdraw requests ----
def _pending_total(s: Session, user_id: int, exclude_id: Optional[int] = None) -> Decimal:
    stmt = select(func.coalesce(func.sum(WithdrawRequest.amount), 0)).where(
        WithdrawRequest.user_id == user_id,
        WithdrawRequest.status == WITHDRAW_PENDING,
    )
    if exclude_id is not None:
        stmt = stmt.where(WithdrawRequest.id != exclude_id)
    return money(s.execute(stmt).scalar())


def _check_available(s: Session, user: User, amount: Decimal, exclude_id: Optional[int] = None) -> None:
    w = wallet_for(s, user)
    available = money(w.balance) - _pending_total(s, user.id, exclude_id)
    if amount > available:
        raise HTTPException(status_code=402, detail="insufficient balance")


def _withdraw_haystack(wr: WithdrawRequest):
    return (
        wr.user.full_name if wr.user else None,
        wr.user.email if wr.user else None,
        f"{money(wr.amount)}",
        wr.id,
    )


def _withdraw_status(status: str) -> Optional[int]:
    st = (status or "").strip().lower()
    if not st or st == "all":
        return None
    if st in WITHDRAW_STATUS_NAMES:
        return WITHDRAW_STATUS_NAMES[st]
    if st in ("0", "1", "2"):
        return int(st)
    raise HTTPException(status_code=400, detail="status must be pending, approved or rejected")


@router.get("/withdraw-requests")
def list_withdraw_requests(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    stmt = select(WithdrawRequest)
    st = _withdraw_status(status)
    if st is not None:
        stmt = stmt.where(WithdrawRequest.status == st)
    stmt = stmt.order_by(WithdrawRequest.created_at.desc(), WithdrawRequest.id.desc())
    return listing(s, stmt, WithdrawOut, paging, _withdraw_haystack, status_counts(s, WithdrawRequest.status))


@router.post("/withdraw-requests")
def create_withdraw_request(req: WithdrawIn, request: Request, s: Session = Depends(get_session)):
    u = get_user_or_404(s, req.user_id)
    amount = money(req.amount)
    if amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")
    _check_available(s, u, amount)
    w = wallet_for(s, u)
    wr = WithdrawRequest(user_id=u.id, amount=amount, currency=req.currency or w.currency, status=WITHDRAW_PENDING)
    s.add(wr); s.commit(); s.refresh(wr)
    audit(request, "withdraw_create", withdraw_id=wr.id, user_id=u.id, amount=str(amount))
    return ok(dump(WithdrawOut, wr), "Withdraw request created")


@router.get("/withdraw-requests/{withdraw_id}")
def get_withdraw_request(withdraw_id: int, s: Session = Depends(get_session)):
    return ok(dump(WithdrawOut, get_or_404(s, WithdrawRequest, withdraw_id, "withdraw request")))


@router.put("/withdraw-requests/{withdraw_id}")
def update_withdraw_request(withdraw_id: int, req: WithdrawUpdate, request: Request, s: Session = Depends(get_session)):
    wr = get_or_404(s, WithdrawRequest, withdraw_id, "withdraw request")
    if wr.status != WITHDRAW_PENDING:
        raise HTTPException(status_code=409, detail="only pending requests can be edited")
    if req.amount is not None:
        amount = money(req.amount)
        _check_available(s, wr.user, amount, exclude_id=wr.id)
        wr.amount = amount
    if req.currency:
        wr.currency = req.currency
    s.add(wr); s.commit(); s.refresh(wr)
    audit(request, "withdraw_update", withdraw_id=wr.id, amount=str(wr.amount))
    return ok(dump(WithdrawOut, wr), "Withdraw request updated")


@router.post("/withdraw-requests/{withdraw_id}/status")
def decide_withdraw_request(withdraw_id: int, req: WithdrawStatusIn, request: Request, s: Session = Depends(get_session)):
    wr = get_or_404(s, WithdrawRequest, withdraw_id, "withdraw request")
    if wr.status != WITHDRAW_PENDING:
        raise HTTPException(status_code=409, detail="withdraw request already processed")
    if req.status == WITHDRAW_APPROVED:
        w = wallet_for(s, wr.user)
        post_transaction(s, w, "debit", wr.amount, f"Withdrawal #{wr.id}")
    wr.status = req.status
    wr.note = req.note
    wr.processed_at = utcnow()
    s.add(wr); s.commit(); s.refresh(wr)
    audit(request, "withdraw_decide", withdraw_id=wr.id, status=wr.status)
    message = "Withdraw request approved" if wr.status == WITHDRAW_APPROVED else "Withdraw request rejected"
    return ok(dump(WithdrawOut, wr), message)


@router.delete("/withdraw-requests/{withdraw_id}")
def delete_withdraw_request(withdraw_id: int, request: Request, s: Session = Depends(get_session)):
    wr = get_or_404(s, WithdrawRequest, withdraw_id, "withdraw request")
    if wr.status == WITHDRAW_APPROVED:
        raise HTTPException(status_code=409, detail="approved requests cannot be deleted")
    s.delete(wr); s.commit()
    audit(request, "withdraw_delete", withdraw_id=withdraw_id)
    return ok(None, "Withdraw request deleted")
