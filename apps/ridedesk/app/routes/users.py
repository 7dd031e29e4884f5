import logging
import time
from typing import Optional

import bcrypt
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from .. import config
from ..common import Paging, audit, dump, listing, ok, status_counts, status_given
from ..db import get_session, utcnow
from ..models import (
    ACTIVE_RIDE_STATUSES,
    Complaint,
    PushNotification,
    RideRequest,
    SupportTicket,
    TouristTrip,
    User,
    Wallet,
    WalletTransaction,
    WithdrawRequest,
)
from ..schemas import (
    AvailabilityIn,
    BulkIdsIn,
    BulkStatusIn,
    FleetOut,
    LocationIn,
    UserCreate,
    UserOut,
    UserUpdate,
)
from ..tracking import hub

router = APIRouter()
log = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    raw = password.encode("utf-8")
    if len(raw) > config.BCRYPT_MAX_PASSWORD_BYTES:
        log.warning("password exceeds %d bytes and will be truncated before hashing", config.BCRYPT_MAX_PASSWORD_BYTES)
        raw = raw[: config.BCRYPT_MAX_PASSWORD_BYTES]
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)).decode("utf-8")


def get_user_or_404(s: Session, user_id: int, user_type: Optional[str] = None) -> User:
    u = s.get(User, user_id)
    if not u or (user_type and u.user_type != user_type):
        raise HTTPException(status_code=404, detail=f"{user_type or 'user'} not found")
    return u


def require_active_driver(s: Session, driver_id: int) -> User:
    d = get_user_or_404(s, driver_id, "driver")
    if d.status != "active":
        raise HTTPException(status_code=400, detail="driver is not active")
    return d


def _check_unique_email(s: Session, user_type: str, email: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not email:
        return
    stmt = select(User.id).where(User.user_type == user_type, User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if s.execute(stmt).first():
        raise HTTPException(status_code=409, detail="email already in use")


def _check_fleet(s: Session, fleet_id: Optional[int]) -> None:
    if fleet_id is not None:
        get_user_or_404(s, fleet_id, "fleet")


def _haystack(u: User):
    return (u.full_name, u.display_name, u.email, u.contact_number)


def _list_users(user_type: str, s: Session, paging: Paging, status: str, *where) -> dict:
    stmt = select(User).where(User.user_type == user_type, *where)
    if status_given(status):
        stmt = stmt.where(User.status == status)
    stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
    schema = FleetOut if user_type == "fleet" else UserOut
    counts = status_counts(s, User.status, User.user_type == user_type)
    return listing(s, stmt, schema, paging, _haystack, counts)


def _create_user(user_type: str, req: UserCreate, request: Request, s: Session) -> User:
    _check_unique_email(s, user_type, req.email)
    if user_type == "driver":
        _check_fleet(s, req.fleet_id)
    fields = req.model_dump(exclude={"password", "fleet_id"})
    u = User(user_type=user_type, **fields)
    if user_type == "driver":
        u.fleet_id = req.fleet_id
    if req.password:
        u.password_hash = hash_password(req.password)
    s.add(u); s.commit(); s.refresh(u)
    audit(request, f"{user_type}_create", user_id=u.id)
    return u


def _update_user(u: User, req: UserUpdate, request: Request, s: Session) -> User:
    changes = req.model_dump(exclude_unset=True)
    password = changes.pop("password", None)
    if "email" in changes:
        _check_unique_email(s, u.user_type, changes["email"], exclude_id=u.id)
    if "fleet_id" in changes:
        if u.user_type != "driver":
            changes.pop("fleet_id")
        else:
            _check_fleet(s, changes["fleet_id"])
    if "status" in changes and changes["status"] is None:
        changes.pop("status")
    for key, value in changes.items():
        setattr(u, key, value)
    if password:
        u.password_hash = hash_password(password)
    s.add(u); s.commit(); s.refresh(u)
    audit(request, f"{u.user_type}_update", user_id=u.id, fields=sorted(changes))
    return u


def _detach_user(s: Session, user_id: int) -> None:
    nullable_refs = (
        (RideRequest, ("rider_id", "driver_id")),
        (Complaint, ("rider_id", "driver_id")),
        (TouristTrip, ("rider_id", "driver_id")),
        (SupportTicket, ("user_id",)),
        (PushNotification, ("user_id",)),
        (User, ("fleet_id",)),
    )
    for model, cols in nullable_refs:
        for col in cols:
            s.execute(update(model).where(getattr(model, col) == user_id).values({col: None}))
    s.execute(delete(WithdrawRequest).where(WithdrawRequest.user_id == user_id))
    wallet_ids = select(Wallet.id).where(Wallet.user_id == user_id)
    s.execute(delete(WalletTransaction).where(WalletTransaction.wallet_id.in_(wallet_ids)))
    s.execute(delete(Wallet).where(Wallet.user_id == user_id))


def _delete_user(u: User, request: Request, s: Session) -> None:
    user_id, user_type = u.id, u.user_type
    _detach_user(s, user_id)
    s.delete(u); s.commit()
    audit(request, f"{user_type}_delete", user_id=user_id)


# ---- Drivers ----
@router.get("/drivers")
def list_drivers(
    status: str = "",
    fleet_id: Optional[int] = None,
    is_online: Optional[bool] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    where = []
    if fleet_id is not None:
        where.append(User.fleet_id == fleet_id)
    if is_online is not None:
        where.append(User.is_online == is_online)
    return _list_users("driver", s, paging, status, *where)


@router.post("/drivers")
def create_driver(req: UserCreate, request: Request, s: Session = Depends(get_session)):
    return ok(dump(UserOut, _create_user("driver", req, request, s)), "Driver created")


@router.get("/drivers/{driver_id}")
def get_driver(driver_id: int, s: Session = Depends(get_session)):
    return ok(dump(UserOut, get_user_or_404(s, driver_id, "driver")))


@router.put("/drivers/{driver_id}")
def update_driver(driver_id: int, req: UserUpdate, request: Request, s: Session = Depends(get_session)):
    u = get_user_or_404(s, driver_id, "driver")
    return ok(dump(UserOut, _update_user(u, req, request, s)), "Driver updated")


@router.delete("/drivers/{driver_id}")
def delete_driver(driver_id: int, request: Request, s: Session = Depends(get_session)):
    _delete_user(get_user_or_404(s, driver_id, "driver"), request, s)
    return ok(None, "Driver deleted")


@router.post("/drivers/{driver_id}/availability")
def driver_availability(driver_id: int, req: AvailabilityIn, request: Request, s: Session = Depends(get_session)):
    d = get_user_or_404(s, driver_id, "driver")
    if req.is_online is not None:
        d.is_online = req.is_online
    if req.is_available is not None:
        d.is_available = req.is_available
    s.add(d); s.commit(); s.refresh(d)
    audit(request, "driver_availability", user_id=d.id, is_online=d.is_online, is_available=d.is_available)
    return ok(dump(UserOut, d))


@router.post("/drivers/{driver_id}/location")
def driver_location(driver_id: int, req: LocationIn, s: Session = Depends(get_session)):
    d = get_user_or_404(s, driver_id, "driver")
    d.latitude = req.lat
    d.longitude = req.lng
    d.location_updated_at = utcnow()
    s.add(d); s.commit()
    ride_ids = s.execute(
        select(RideRequest.id).where(
            RideRequest.driver_id == driver_id,
            RideRequest.status.in_(ACTIVE_RIDE_STATUSES),
        )
    ).scalars().all()
    ts = int(time.time() * 1000)
    queued = 0
    for ride_id in ride_ids:
        queued += hub.queue_publish(ride_id, {
            "event": "driver-location-update",
            "rideId": ride_id,
            "driverId": driver_id,
            "lat": req.lat,
            "lng": req.lng,
            "ts": ts,
        })
    return ok({
        "driverId": driver_id,
        "latitude": req.lat,
        "longitude": req.lng,
        "rideIds": list(ride_ids),
        "queued": queued,
    })


# ---- Riders ----
@router.get("/riders")
def list_riders(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    return _list_users("rider", s, paging, status)


@router.post("/riders")
def create_rider(req: UserCreate, request: Request, s: Session = Depends(get_session)):
    return ok(dump(UserOut, _create_user("rider", req, request, s)), "Rider created")


@router.get("/riders/{rider_id}")
def get_rider(rider_id: int, s: Session = Depends(get_session)):
    return ok(dump(UserOut, get_user_or_404(s, rider_id, "rider")))


@router.put("/riders/{rider_id}")
def update_rider(rider_id: int, req: UserUpdate, request: Request, s: Session = Depends(get_session)):
    u = get_user_or_404(s, rider_id, "rider")
    return ok(dump(UserOut, _update_user(u, req, request, s)), "Rider updated")


@router.delete("/riders/{rider_id}")
def delete_rider(rider_id: int, request: Request, s: Session = Depends(get_session)):
    _delete_user(get_user_or_404(s, rider_id, "rider"), request, s)
    return ok(None, "Rider deleted")


# ---- Fleets ----
@router.get("/fleets")
def list_fleets(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    return _list_users("fleet", s, paging, status)


@router.post("/fleets")
def create_fleet(req: UserCreate, request: Request, s: Session = Depends(get_session)):
    return ok(dump(FleetOut, _create_user("fleet", req, request, s)), "Fleet created")


@router.get("/fleets/{fleet_id}")
def get_fleet(fleet_id: int, s: Session = Depends(get_session)):
    return ok(dump(FleetOut, get_user_or_404(s, fleet_id, "fleet")))


@router.put("/fleets/{fleet_id}")
def update_fleet(fleet_id: int, req: UserUpdate, request: Request, s: Session = Depends(get_session)):
    u = get_user_or_404(s, fleet_id, "fleet")
    return ok(dump(FleetOut, _update_user(u, req, request, s)), "Fleet updated")


@router.delete("/fleets/{fleet_id}")
def delete_fleet(fleet_id: int, request: Request, s: Session = Depends(get_session)):
    _delete_user(get_user_or_404(s, fleet_id, "fleet"), request, s)
    return ok(None, "Fleet deleted")


# ---- Bulk operations ----
@router.post("/bulk-operations/drivers/delete")
def bulk_delete_drivers(req: BulkIdsIn, request: Request, s: Session = Depends(get_session)):
    drivers = s.execute(
        select(User).where(User.id.in_(set(req.ids)), User.user_type == "driver")
    ).scalars().all()
    deleted = [d.id for d in drivers]
    for d in drivers:
        _detach_user(s, d.id)
        s.delete(d)
    s.commit()
    audit(request, "driver_bulk_delete", user_ids=deleted)
    return ok({"affected": len(deleted)}, f"{len(deleted)} drivers deleted")


@router.post("/bulk-operations/users/update-status")
def bulk_update_status(req: BulkStatusIn, request: Request, s: Session = Depends(get_session)):
    users = s.execute(select(User).where(User.id.in_(set(req.ids)))).scalars().all()
    for u in users:
        u.status = req.status
        s.add(u)
    s.commit()
    audit(request, "user_bulk_status", user_ids=[u.id for u in users], status=req.status)
    return ok({"affected": len(users)}, f"{len(users)} users updated")
