from decimal import Decimal
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import config
from .models import User, Wallet, WalletTransaction
from .pricing import money


def wallet_for(s: Session, user: User) -> Wallet:
    """Return the user's wallet, creating an empty one on first use."""
    w = s.execute(select(Wallet).where(Wallet.user_id == user.id)).scalar_one_or_none()
    if w is None:
        w = Wallet(user_id=user.id, balance=Decimal("0"), currency=config.DEFAULT_CURRENCY)
        s.add(w)
        s.flush()
    return w


def post_transaction(
    s: Session,
    w: Wallet,
    type_: str,
    amount,
    description: Optional[str] = None,
    ride_request_id: Optional[int] = None,
) -> WalletTransaction:
    """Apply a credit or debit to ``w``; the caller commits.

    Debits never take the balance below zero (402).
    """
    amt = money(amount)
    if amt <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")
    balance = money(w.balance)
    if type_ == "debit":
        if amt > balance:
            raise HTTPException(status_code=402, detail="insufficient balance")
        balance -= amt
    elif type_ == "credit":
        balance += amt
    else:
        raise HTTPException(status_code=400, detail="type must be credit or debit")
    w.balance = balance
    txn = WalletTransaction(
        wallet_id=w.id,
        type=type_,
        amount=amt,
        balance_after=balance,
        description=description,
        ride_request_id=ride_request_id,
    )
    s.add(w)
    s.add(txn)
    return txn
