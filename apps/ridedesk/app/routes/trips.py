from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..common import (
    Paging,
    apply_changes,
    audit,
    dump,
    get_or_404,
    listing,
    ok,
    reject_nulls,
    status_counts,
    status_given,
)
from ..db import get_session
from ..models import TouristTrip, VehicleCategory
from ..pricing import money
from ..schemas import TripAssignIn, TripIn, TripOut, TripStatusIn, TripUpdate
from .users import get_user_or_404, require_active_driver

router = APIRouter()

TERMINAL_TRIP_STATUSES = ("completed", "cancelled")


def _check_dates(t: TouristTrip) -> None:
    if t.end_date < t.start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")


def _check_refs(s: Session, fields: dict) -> None:
    if fields.get("rider_id") is not None:
        get_user_or_404(s, fields["rider_id"], "rider")
    if fields.get("vehicle_category_id") is not None:
        get_or_404(s, VehicleCategory, fields["vehicle_category_id"], "vehicle category")


def _clean_destinations(items) -> list:
    return [d.strip() for d in items or [] if d and d.strip()]


def _trip_haystack(t: TouristTrip):
    return (
        t.rider.full_name if t.rider else None,
        t.driver.full_name if t.driver else None,
        t.vehicle_category.name if t.vehicle_category else None,
        t.id,
    )


@router.get("/tourist-trips")
def list_trips(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    stmt = select(TouristTrip)
    if status_given(status):
        stmt = stmt.where(TouristTrip.status == status)
    stmt = stmt.order_by(TouristTrip.created_at.desc(), TouristTrip.id.desc())
    return listing(s, stmt, TripOut, paging, _trip_haystack, status_counts(s, TouristTrip.status))


@router.post("/tourist-trips")
def create_trip(req: TripIn, request: Request, s: Session = Depends(get_session)):
    fields = req.model_dump()
    _check_refs(s, fields)
    if req.driver_id is not None:
        require_active_driver(s, req.driver_id)
    fields["destinations"] = _clean_destinations(req.destinations)
    fields["total_amount"] = money(req.total_amount)
    t = TouristTrip(**fields)
    _check_dates(t)
    s.add(t); s.commit(); s.refresh(t)
    audit(request, "trip_create", trip_id=t.id)
    return ok(dump(TripOut, t), "Tourist trip created")


@router.get("/tourist-trips/{trip_id}")
def get_trip(trip_id: int, s: Session = Depends(get_session)):
    return ok(dump(TripOut, get_or_404(s, TouristTrip, trip_id, "tourist trip")))


@router.put("/tourist-trips/{trip_id}")
def update_trip(trip_id: int, req: TripUpdate, request: Request, s: Session = Depends(get_session)):
    t = get_or_404(s, TouristTrip, trip_id, "tourist trip")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "start_date", "end_date", "total_amount", "payment_status", "payment_type")
    _check_refs(s, changes)
    if "destinations" in changes:
        changes["destinations"] = _clean_destinations(changes["destinations"])
    if "total_amount" in changes:
        changes["total_amount"] = money(changes["total_amount"])
    apply_changes(t, changes)
    _check_dates(t)
    s.add(t); s.commit(); s.refresh(t)
    audit(request, "trip_update", trip_id=t.id)
    return ok(dump(TripOut, t), "Tourist trip updated")


@router.put("/tourist-trips/{trip_id}/assign-driver")
def assign_trip_driver(trip_id: int, req: TripAssignIn, request: Request, s: Session = Depends(get_session)):
    t = get_or_404(s, TouristTrip, trip_id, "tourist trip")
    if t.status in TERMINAL_TRIP_STATUSES:
        raise HTTPException(status_code=409, detail=f"cannot assign a driver to a {t.status} trip")
    d = require_active_driver(s, req.driver_id)
    t.driver_id = d.id
    if t.status == "pending":
        t.status = "confirmed"
    s.add(t); s.commit(); s.refresh(t)
    audit(request, "trip_assign_driver", trip_id=t.id, driver_id=d.id)
    return ok(dump(TripOut, t), "Driver assigned")


@router.put("/tourist-trips/{trip_id}/status")
def update_trip_status(trip_id: int, req: TripStatusIn, request: Request, s: Session = Depends(get_session)):
    t = get_or_404(s, TouristTrip, trip_id, "tourist trip")
    previous = t.status
    if previous in TERMINAL_TRIP_STATUSES and req.status != previous:
        raise HTTPException(status_code=409, detail=f"trip is already {previous}")
    t.status = req.status
    s.add(t); s.commit(); s.refresh(t)
    audit(request, "trip_status", trip_id=t.id, old_status=previous, new_status=t.status)
    return ok(dump(TripOut, t), "Trip status updated")


@router.delete("/tourist-trips/{trip_id}")
def delete_trip(trip_id: int, request: Request, s: Session = Depends(get_session)):
    t = get_or_404(s, TouristTrip, trip_id, "tourist trip")
    s.delete(t); s.commit()
    audit(request, "trip_delete", trip_id=trip_id)
    return ok(None, "Tourist trip deleted")
