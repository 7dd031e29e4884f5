from datetime import timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..common import AUDIT_EVENTS, ok
from ..db import get_session, utcnow
from ..models import Complaint, RideRequest, SupportTicket, User, WithdrawRequest
from ..pricing import money

router = APIRouter()


def _count(s: Session, stmt) -> int:
    return int(s.execute(stmt).scalar() or 0)


def _by_status(s: Session, column, *where) -> dict:
    stmt = select(column, func.count()).group_by(column)
    for cond in where:
        stmt = stmt.where(cond)
    return {str(k): int(n) for k, n in s.execute(stmt).all()}


@router.get("/dashboard")
def dashboard(s: Session = Depends(get_session)):
    now = utcnow()
    start_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    end_today = start_today + timedelta(days=1)
    drivers = _by_status(s, User.status, User.user_type == "driver")
    rides_today = s.execute(
        select(RideRequest).where(
            RideRequest.created_at >= start_today,
            RideRequest.created_at < end_today,
        )
    ).scalars().all()
    rides_by_status: dict[str, int] = {}
    for r in rides_today:
        rides_by_status[r.status] = rides_by_status.get(r.status, 0) + 1
    completed_today = s.execute(
        select(RideRequest).where(
            RideRequest.status == "completed",
            RideRequest.completed_at >= start_today,
            RideRequest.completed_at < end_today,
        )
    ).scalars().all()
    revenue = sum((money(r.total_amount) for r in completed_today), Decimal("0"))
    commission = sum((money(r.admin_commission) for r in completed_today), Decimal("0"))
    return ok({
        "drivers": {**drivers, "total": sum(drivers.values())},
        "driversOnline": _count(
            s, select(func.count(User.id)).where(User.user_type == "driver", User.is_online.is_(True))
        ),
        "riders": _count(s, select(func.count(User.id)).where(User.user_type == "rider")),
        "fleets": _count(s, select(func.count(User.id)).where(User.user_type == "fleet")),
        "ridesTotal": _count(s, select(func.count(RideRequest.id))),
        "ridesToday": {**rides_by_status, "total": len(rides_today)},
        "revenueToday": float(money(revenue)),
        "adminCommissionToday": float(money(commission)),
        "pendingWithdrawRequests": _count(
            s, select(func.count(WithdrawRequest.id)).where(WithdrawRequest.status == 0)
        ),
        "openComplaints": _count(
            s, select(func.count(Complaint.id)).where(Complaint.status.in_(("pending", "in_progress")))
        ),
        "openTickets": _count(
            s, select(func.count(SupportTicket.id)).where(SupportTicket.status != "resolved")
        ),
    })


@router.get("/admin/audit")
def list_audit_events(limit: int = Query(200, ge=1, le=2000), action: str = ""):
    """Most recent audit events first, optionally filtered by action substring."""
    events = list(AUDIT_EVENTS)
    if action:
        needle = action.lower()
        events = [e for e in events if needle in str(e.get("action", "")).lower()]
    return ok(list(reversed(events[-limit:])))
