from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from .. import config
from ..common import Paging, audit, dump, get_or_404, listing, ok, status_counts, status_given
from ..db import get_session, utcnow
from ..models import (
    ACTIVE_RIDE_STATUSES,
    CancellationReason,
    Complaint,
    RideRequest,
    User,
    VehicleCategory,
    WalletTransaction,
)
from ..pricing import (
    active_rule,
    calculate_fare,
    commission_split,
    eta_min_from_km,
    haversine_km,
    km_to_unit,
    money,
    zone_price_for,
)
from ..schemas import BulkIdsIn, RideIn, RideOut, RideStatusIn
from ..tracking import hub
from ..wallets import post_transaction, wallet_for
from .users import get_user_or_404, require_active_driver

router = APIRouter()

# Allowed moves of the ride state machine; everything else is a 409.
TRANSITIONS = {
    "pending": {"accepted", "cancelled"},
    "scheduled": {"pending", "accepted", "cancelled"},
    "accepted": {"in_progress", "cancelled"},
    "in_progress": {"completed"},
    "completed": set(),
    "cancelled": set(),
}


def _trip_km(r: RideRequest) -> Optional[float]:
    if r.end_latitude is None or r.end_longitude is None:
        return None
    return haversine_km(r.start_latitude, r.start_longitude, r.end_latitude, r.end_longitude)


def _naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def _ride_haystack(r: RideRequest):
    return (r.start_address, r.end_address, r.rider.full_name if r.rider else None, r.id)


@router.get("/ride-requests")
def list_rides(
    status: str = "",
    driver_id: Optional[int] = None,
    rider_id: Optional[int] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(RideRequest)
    if status_given(status):
        stmt = stmt.where(RideRequest.status == status)
    if driver_id is not None:
        stmt = stmt.where(RideRequest.driver_id == driver_id)
    if rider_id is not None:
        stmt = stmt.where(RideRequest.rider_id == rider_id)
    stmt = stmt.order_by(RideRequest.created_at.desc(), RideRequest.id.desc())
    return listing(s, stmt, RideOut, paging, _ride_haystack, status_counts(s, RideRequest.status))


@router.post("/ride-requests")
def create_ride(req: RideIn, request: Request, s: Session = Depends(get_session)):
    get_user_or_404(s, req.rider_id, "rider")
    get_or_404(s, VehicleCategory, req.service_id, "vehicle category")
    fields = req.model_dump()
    fields["schedule_datetime"] = _naive_utc(req.schedule_datetime)
    status = "pending"
    if req.is_schedule:
        if fields["schedule_datetime"] is None:
            raise HTTPException(status_code=400, detail="schedule_datetime required for scheduled rides")
        if fields["schedule_datetime"] <= utcnow():
            raise HTTPException(status_code=400, detail="schedule_datetime must be in the future")
        status = "scheduled"
    r = RideRequest(status=status, **fields)
    km = _trip_km(r)
    if r.distance is None and km is not None:
        r.distance = round(km_to_unit(km, r.distance_unit), 3)
    if r.duration is None and km is not None:
        r.duration = eta_min_from_km(km)
    rule = active_rule(s, r.service_id)
    if rule is not None and r.distance is not None:
        zone_price = zone_price_for(s, r.service_id, r.start_latitude, r.start_longitude)
        fare = calculate_fare(rule, r.distance, r.duration or 0, zone_price=zone_price)
        r.total_amount = fare.total_amount
    s.add(r); s.commit(); s.refresh(r)
    audit(request, "ride_create", ride_id=r.id, status=r.status)
    return ok(dump(RideOut, r), "Ride request created")


@router.get("/ride-requests/{ride_id}")
def get_ride(ride_id: int, s: Session = Depends(get_session)):
    return ok(dump(RideOut, get_or_404(s, RideRequest, ride_id, "ride request")))


def _other_active_ride(s: Session, driver_id: int, ride_id: int) -> Optional[int]:
    return s.execute(
        select(RideRequest.id).where(
            RideRequest.driver_id == driver_id,
            RideRequest.id != ride_id,
            RideRequest.status.in_(ACTIVE_RIDE_STATUSES),
        )
    ).scalars().first()


def _release_driver(s: Session, r: RideRequest) -> None:
    d = r.driver
    if d is None or _other_active_ride(s, d.id, r.id) is not None:
        return
    d.is_available = True
    s.add(d)


def _detach_ride(s: Session, r: RideRequest) -> None:
    if r.status in ACTIVE_RIDE_STATUSES:
        _release_driver(s, r)
    s.execute(update(Complaint).where(Complaint.ride_request_id == r.id).values(ride_request_id=None))
    s.execute(
        update(WalletTransaction).where(WalletTransaction.ride_request_id == r.id).values(ride_request_id=None)
    )


def _settle(s: Session, r: RideRequest) -> None:
    """Price a finished ride and credit the driver's share."""
    rule = active_rule(s, r.service_id)
    if r.total_amount is None and rule is not None:
        distance = r.distance
        if distance is None:
            km = _trip_km(r) or 0.0
            distance = km_to_unit(km, r.distance_unit)
        duration = r.duration
        if duration is None and r.started_at is not None:
            duration = max(1, round((r.completed_at - r.started_at).total_seconds() / 60.0))
        zone_price = zone_price_for(s, r.service_id, r.start_latitude, r.start_longitude)
        fare = calculate_fare(rule, distance, duration or 0, zone_price=zone_price)
        r.total_amount = fare.total_amount
    total = money(r.total_amount)
    r.admin_commission, r.fleet_commission, r.driver_earning = commission_split(rule, total)
    if r.driver is not None and r.payment_type != "cash" and r.driver_earning > 0:
        w = wallet_for(s, r.driver)
        post_transaction(s, w, "credit", r.driver_earning, f"Earning for ride #{r.id}", ride_request_id=r.id)


@router.put("/ride-requests/{ride_id}/status")
def update_ride_status(ride_id: int, req: RideStatusIn, request: Request, s: Session = Depends(get_session)):
    r = get_or_404(s, RideRequest, ride_id, "ride request")
    previous = r.status
    if req.status == previous:
        return ok(dump(RideOut, r), "Ride status unchanged")
    if req.status not in TRANSITIONS.get(previous, set()):
        raise HTTPException(status_code=409, detail=f"cannot move ride from {previous} to {req.status}")
    now = utcnow()
    if req.status == "accepted":
        driver_id = req.driver_id or r.driver_id
        if driver_id is None:
            raise HTTPException(status_code=400, detail="driver_id required to accept a ride")
        d = require_active_driver(s, driver_id)
        busy = _other_active_ride(s, d.id, r.id)
        if busy is not None:
            raise HTTPException(status_code=409, detail=f"driver is already on ride #{busy}")
        if r.driver_id is not None and r.driver_id != d.id:
            _release_driver(s, r)
        r.driver = d
        d.is_available = False
        r.accepted_at = now
    elif req.status == "in_progress":
        r.started_at = now
    elif req.status == "completed":
        r.completed_at = now
        _settle(s, r)
        _release_driver(s, r)
    elif req.status == "cancelled":
        if req.cancel_reason_id is not None:
            get_or_404(s, CancellationReason, req.cancel_reason_id, "cancellation reason")
            r.cancel_reason_id = req.cancel_reason_id
        r.cancelled_at = now
        _release_driver(s, r)
    r.status = req.status
    s.add(r); s.commit(); s.refresh(r)
    if r.status in ("completed", "cancelled"):
        hub.forget(r.id)
    audit(request, "ride_status", ride_id=r.id, old_status=previous, new_status=r.status)
    return ok(dump(RideOut, r), "Ride status updated")


@router.delete("/ride-requests/{ride_id}")
def delete_ride(ride_id: int, request: Request, s: Session = Depends(get_session)):
    r = get_or_404(s, RideRequest, ride_id, "ride request")
    _detach_ride(s, r)
    s.delete(r); s.commit()
    hub.forget(ride_id)
    audit(request, "ride_delete", ride_id=ride_id)
    return ok(None, "Ride request deleted")


@router.post("/bulk-operations/ride-requests/delete")
def bulk_delete_rides(req: BulkIdsIn, request: Request, s: Session = Depends(get_session)):
    rides = s.execute(select(RideRequest).where(RideRequest.id.in_(set(req.ids)))).scalars().all()
    deleted = [r.id for r in rides]
    for r in rides:
        _detach_ride(s, r)
        s.delete(r)
    s.commit()
    for ride_id in deleted:
        hub.forget(ride_id)
    audit(request, "ride_bulk_delete", ride_ids=deleted)
    return ok({"affected": len(deleted)}, f"{len(deleted)} ride requests deleted")


# ---- Live tracking ----
def tracking_snapshot(r: RideRequest) -> dict:
    pickup = {"lat": r.start_latitude, "lng": r.start_longitude, "address": r.start_address}
    dropoff = None
    if r.end_latitude is not None and r.end_longitude is not None:
        dropoff = {"lat": r.end_latitude, "lng": r.end_longitude, "address": r.end_address}
    driver = None
    if r.driver is not None:
        driver = {
            "id": r.driver.id,
            "name": r.driver.full_name,
            "lat": r.driver.latitude,
            "lng": r.driver.longitude,
            "updatedAt": r.driver.location_updated_at.isoformat() if r.driver.location_updated_at else None,
        }
    if dropoff:
        center = {"lat": (pickup["lat"] + dropoff["lat"]) / 2, "lng": (pickup["lng"] + dropoff["lng"]) / 2}
    else:
        center = {"lat": pickup["lat"], "lng": pickup["lng"]}
    points = [pickup] + ([dropoff] if dropoff else [])
    if driver and driver["lat"] is not None and driver["lng"] is not None:
        points.append(driver)
    bounds = {
        "north": max(p["lat"] for p in points),
        "south": min(p["lat"] for p in points),
        "east": max(p["lng"] for p in points),
        "west": min(p["lng"] for p in points),
    }
    return {
        "rideId": r.id,
        "status": r.status,
        "pickup": pickup,
        "dropoff": dropoff,
        "driver": driver,
        "center": center,
        "bounds": bounds,
        "pollIntervalMs": config.TRACKING_POLL_INTERVAL_MS,
    }


@router.get("/ride-requests/{ride_id}/tracking")
def ride_tracking(ride_id: int, s: Session = Depends(get_session)):
    return ok(tracking_snapshot(get_or_404(s, RideRequest, ride_id, "ride request")))


@router.get("/vehicle-tracking")
def vehicle_tracking(s: Session = Depends(get_session)):
    active = s.execute(
        select(RideRequest)
        .where(RideRequest.status.in_(ACTIVE_RIDE_STATUSES))
        .order_by(RideRequest.id.desc())
    ).scalars().all()
    busy = {r.driver_id for r in active if r.driver_id is not None}
    drivers = s.execute(
        select(User).where(
            User.user_type == "driver",
            User.latitude.is_not(None),
            User.longitude.is_not(None),
        ).order_by(User.id)
    ).scalars().all()
    out = []
    for d in drivers:
        if d.id in busy:
            state = "busy"
        elif d.is_online:
            state = "online"
        else:
            state = "offline"
        out.append({
            "id": d.id,
            "name": d.full_name,
            "lat": d.latitude,
            "lng": d.longitude,
            "status": state,
            "updatedAt": d.location_updated_at.isoformat() if d.location_updated_at else None,
        })
    return ok({"drivers": out, "activeRides": [dump(RideOut, r) for r in active]})
