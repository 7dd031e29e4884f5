from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .. import config
from ..common import (
    Paging,
    apply_changes,
    audit,
    dump,
    flag_value,
    get_or_404,
    listing,
    ok,
    reject_nulls,
    status_counts,
    status_given,
)
from ..db import get_session, utcnow
from ..models import CategoryZone, GeographicZone, Region, RideRequest, User, VehicleCategory, ZonePrice
from ..pricing import haversine_km, money, zones_at
from ..schemas import (
    CategoryZoneBulkIn,
    CategoryZoneIn,
    CategoryZoneOut,
    RegionIn,
    RegionOut,
    RegionUpdate,
    ZoneIn,
    ZoneOut,
    ZonePriceIn,
    ZonePriceOut,
    ZonePriceUpdate,
    ZoneUpdate,
)

router = APIRouter()


# ---- Regions ----
@router.get("/regions")
def list_regions(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    stmt = select(Region)
    if status_given(status):
        stmt = stmt.where(Region.status == flag_value(status))
    stmt = stmt.order_by(Region.created_at.desc(), Region.id.desc())
    return listing(s, stmt, RegionOut, paging, lambda r: (r.name, r.name_ar), status_counts(s, Region.status))


@router.post("/regions")
def create_region(req: RegionIn, request: Request, s: Session = Depends(get_session)):
    r = Region(**req.model_dump())
    s.add(r); s.commit(); s.refresh(r)
    audit(request, "region_create", region_id=r.id)
    return ok(dump(RegionOut, r), "Region created")


@router.get("/regions/{region_id}")
def get_region(region_id: int, s: Session = Depends(get_session)):
    return ok(dump(RegionOut, get_or_404(s, Region, region_id, "region")))


@router.put("/regions/{region_id}")
def update_region(region_id: int, req: RegionUpdate, request: Request, s: Session = Depends(get_session)):
    r = get_or_404(s, Region, region_id, "region")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "name", "distance_unit", "status")
    apply_changes(r, changes)
    s.add(r); s.commit(); s.refresh(r)
    audit(request, "region_update", region_id=r.id)
    return ok(dump(RegionOut, r), "Region updated")


@router.delete("/regions/{region_id}")
def delete_region(region_id: int, request: Request, s: Session = Depends(get_session)):
    r = get_or_404(s, Region, region_id, "region")
    if r.zones:
        raise HTTPException(status_code=409, detail="region still has zones")
    s.delete(r); s.commit()
    audit(request, "region_delete", region_id=region_id)
    return ok(None, "Region deleted")


# ---- Geographic zones ----
def _check_region(s: Session, region_id: Optional[int]) -> None:
    if region_id is not None:
        get_or_404(s, Region, region_id, "region")


def _zone_haystack(z: GeographicZone):
    return (z.name, z.name_ar, z.region.name if z.region else None)


@router.get("/geographic-zones")
def list_zones(
    status: str = "",
    region_id: Optional[int] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(GeographicZone)
    if status_given(status):
        stmt = stmt.where(GeographicZone.status == flag_value(status))
    if region_id is not None:
        stmt = stmt.where(GeographicZone.region_id == region_id)
    stmt = stmt.order_by(GeographicZone.created_at.desc(), GeographicZone.id.desc())
    return listing(s, stmt, ZoneOut, paging, _zone_haystack, status_counts(s, GeographicZone.status))


@router.get("/geographic-zones/resolve")
def resolve_zones(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    s: Session = Depends(get_session),
):
    """Active zones whose circle contains the point, nearest center first."""
    return ok([{**dump(ZoneOut, z), "distanceKm": round(km, 3)} for km, z in zones_at(s, lat, lng)])


@router.post("/geographic-zones")
def create_zone(req: ZoneIn, request: Request, s: Session = Depends(get_session)):
    _check_region(s, req.region_id)
    z = GeographicZone(**req.model_dump())
    s.add(z); s.commit(); s.refresh(z)
    audit(request, "zone_create", zone_id=z.id)
    return ok(dump(ZoneOut, z), "Zone created")


@router.get("/geographic-zones/{zone_id}")
def get_zone(zone_id: int, s: Session = Depends(get_session)):
    return ok(dump(ZoneOut, get_or_404(s, GeographicZone, zone_id, "zone")))


@router.put("/geographic-zones/{zone_id}")
def update_zone(zone_id: int, req: ZoneUpdate, request: Request, s: Session = Depends(get_session)):
    z = get_or_404(s, GeographicZone, zone_id, "zone")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "name", "center_lat", "center_lng", "radius", "status")
    if "region_id" in changes:
        _check_region(s, changes["region_id"])
    apply_changes(z, changes)
    s.add(z); s.commit(); s.refresh(z)
    audit(request, "zone_update", zone_id=z.id)
    return ok(dump(ZoneOut, z), "Zone updated")


@router.delete("/geographic-zones/{zone_id}")
def delete_zone(zone_id: int, request: Request, s: Session = Depends(get_session)):
    z = get_or_404(s, GeographicZone, zone_id, "zone")
    for cz in s.execute(select(CategoryZone).where(CategoryZone.geographic_zone_id == zone_id)).scalars():
        s.delete(cz)
    for zp in s.execute(select(ZonePrice).where(ZonePrice.zone_id == zone_id)).scalars():
        s.delete(zp)
    s.delete(z); s.commit()
    audit(request, "zone_delete", zone_id=zone_id)
    return ok(None, "Zone deleted")


# ---- Vehicle category <-> zone mapping ----
def _assignment(s: Session, category_id: int, zone_id: int) -> Optional[CategoryZone]:
    return s.execute(
        select(CategoryZone).where(
            CategoryZone.vehicle_category_id == category_id,
            CategoryZone.geographic_zone_id == zone_id,
        )
    ).scalar_one_or_none()


@router.get("/category-zones")
def list_category_zones(
    vehicle_category_id: Optional[int] = None,
    geographic_zone_id: Optional[int] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(CategoryZone)
    if vehicle_category_id is not None:
        stmt = stmt.where(CategoryZone.vehicle_category_id == vehicle_category_id)
    if geographic_zone_id is not None:
        stmt = stmt.where(CategoryZone.geographic_zone_id == geographic_zone_id)
    stmt = stmt.order_by(CategoryZone.id.desc())
    return listing(
        s, stmt, CategoryZoneOut, paging,
        lambda cz: (cz.vehicle_category.name, cz.geographic_zone.name),
    )


@router.post("/category-zones/assign")
def assign_category_zone(req: CategoryZoneIn, request: Request, s: Session = Depends(get_session)):
    get_or_404(s, VehicleCategory, req.vehicle_category_id, "vehicle category")
    get_or_404(s, GeographicZone, req.geographic_zone_id, "zone")
    cz = _assignment(s, req.vehicle_category_id, req.geographic_zone_id)
    if cz is None:
        cz = CategoryZone(vehicle_category_id=req.vehicle_category_id, geographic_zone_id=req.geographic_zone_id)
    cz.status = req.status
    s.add(cz); s.commit(); s.refresh(cz)
    audit(request, "category_zone_assign", category_zone_id=cz.id, status=cz.status)
    return ok(dump(CategoryZoneOut, cz), "Vehicle category assigned")


@router.post("/category-zones/bulk-assign")
def bulk_assign_category_zones(req: CategoryZoneBulkIn, request: Request, s: Session = Depends(get_session)):
    get_or_404(s, VehicleCategory, req.vehicle_category_id, "vehicle category")
    zone_ids = set(req.zone_ids)
    known = set(s.execute(select(GeographicZone.id).where(GeographicZone.id.in_(zone_ids))).scalars())
    missing = sorted(zone_ids - known)
    if missing:
        raise HTTPException(status_code=404, detail=f"zones not found: {missing}")
    created = 0
    for zone_id in sorted(zone_ids):
        if _assignment(s, req.vehicle_category_id, zone_id) is None:
            s.add(CategoryZone(vehicle_category_id=req.vehicle_category_id, geographic_zone_id=zone_id, status=1))
            created += 1
    s.commit()
    audit(request, "category_zone_bulk_assign", vehicle_category_id=req.vehicle_category_id, created=created)
    return ok({"created": created, "existing": len(zone_ids) - created}, f"{created} zones assigned")


@router.delete("/category-zones/{assignment_id}")
def delete_category_zone(assignment_id: int, request: Request, s: Session = Depends(get_session)):
    cz = get_or_404(s, CategoryZone, assignment_id, "assignment")
    s.delete(cz); s.commit()
    audit(request, "category_zone_delete", category_zone_id=assignment_id)
    return ok(None, "Assignment removed")


# ---- Zone prices ----
_ZONE_PRICE_MONEY = ("base_fare", "per_km", "per_minute")


def _zone_price_columns(values: dict) -> dict:
    return {k: money(v) if k in _ZONE_PRICE_MONEY and v is not None else v for k, v in values.items()}


def _check_zone_price(s: Session, zone_id: int, service_id: int, exclude_id: Optional[int] = None) -> None:
    get_or_404(s, GeographicZone, zone_id, "zone")
    get_or_404(s, VehicleCategory, service_id, "vehicle category")
    stmt = select(ZonePrice.id).where(ZonePrice.zone_id == zone_id, ZonePrice.service_id == service_id)
    if exclude_id is not None:
        stmt = stmt.where(ZonePrice.id != exclude_id)
    if s.execute(stmt).first():
        raise HTTPException(status_code=409, detail="zone already has a price for this vehicle category")


@router.get("/manage-zones/zone-prices")
def list_zone_prices(
    status: str = "",
    zone_id: Optional[int] = None,
    service_id: Optional[int] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(ZonePrice)
    if status_given(status):
        stmt = stmt.where(ZonePrice.status == flag_value(status))
    if zone_id is not None:
        stmt = stmt.where(ZonePrice.zone_id == zone_id)
    if service_id is not None:
        stmt = stmt.where(ZonePrice.service_id == service_id)
    stmt = stmt.order_by(ZonePrice.created_at.desc(), ZonePrice.id.desc())
    return listing(
        s, stmt, ZonePriceOut, paging,
        lambda zp: (zp.zone.name, zp.service.name),
        status_counts(s, ZonePrice.status),
    )


@router.post("/manage-zones/zone-prices")
def create_zone_price(req: ZonePriceIn, request: Request, s: Session = Depends(get_session)):
    _check_zone_price(s, req.zone_id, req.service_id)
    zp = ZonePrice(**_zone_price_columns(req.model_dump()))
    s.add(zp); s.commit(); s.refresh(zp)
    audit(request, "zone_price_create", zone_price_id=zp.id, zone_id=zp.zone_id, service_id=zp.service_id)
    return ok(dump(ZonePriceOut, zp), "Zone price created")


@router.get("/manage-zones/zone-prices/{price_id}")
def get_zone_price(price_id: int, s: Session = Depends(get_session)):
    return ok(dump(ZonePriceOut, get_or_404(s, ZonePrice, price_id, "zone price")))


@router.put("/manage-zones/zone-prices/{price_id}")
def update_zone_price(price_id: int, req: ZonePriceUpdate, request: Request, s: Session = Depends(get_session)):
    zp = get_or_404(s, ZonePrice, price_id, "zone price")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, *changes.keys())
    zone_id = changes.get("zone_id", zp.zone_id)
    service_id = changes.get("service_id", zp.service_id)
    if (zone_id, service_id) != (zp.zone_id, zp.service_id):
        _check_zone_price(s, zone_id, service_id, exclude_id=zp.id)
    apply_changes(zp, _zone_price_columns(changes))
    s.add(zp); s.commit(); s.refresh(zp)
    audit(request, "zone_price_update", zone_price_id=zp.id, fields=sorted(changes))
    return ok(dump(ZonePriceOut, zp), "Zone price updated")


@router.delete("/manage-zones/zone-prices/{price_id}")
def delete_zone_price(price_id: int, request: Request, s: Session = Depends(get_session)):
    zp = get_or_404(s, ZonePrice, price_id, "zone price")
    s.delete(zp); s.commit()
    audit(request, "zone_price_delete", zone_price_id=price_id)
    return ok(None, "Zone price deleted")


# ---- Demand map ----
def demand_intensity(ride_count: int) -> str:
    if ride_count >= config.DEMAND_RED_THRESHOLD:
        return "red"
    if ride_count >= config.DEMAND_ORANGE_THRESHOLD:
        return "orange"
    return "green"


@router.get("/demand-map/zones")
def demand_map(s: Session = Depends(get_session)):
    since = utcnow() - timedelta(hours=config.DEMAND_WINDOW_HOURS)
    pickups = s.execute(
        select(RideRequest.start_latitude, RideRequest.start_longitude).where(
            RideRequest.created_at >= since,
            RideRequest.status != "cancelled",
        )
    ).all()
    zones = s.execute(
        select(GeographicZone).where(GeographicZone.status == 1).order_by(GeographicZone.id)
    ).scalars().all()
    out_zones = []
    for z in zones:
        n = sum(1 for lat, lng in pickups if haversine_km(lat, lng, z.center_lat, z.center_lng) <= z.radius)
        out_zones.append({
            "id": z.id,
            "name": z.name,
            "nameAr": z.name_ar,
            "lat": z.center_lat,
            "lng": z.center_lng,
            "radius": z.radius,
            "rideCount": n,
            "intensity": demand_intensity(n),
        })
    drivers = s.execute(
        select(User).where(
            User.user_type == "driver",
            User.status == "active",
            User.latitude.is_not(None),
            User.longitude.is_not(None),
        ).order_by(User.id)
    ).scalars().all()
    out_drivers = [
        {
            "id": d.id,
            "name": d.full_name,
            "latitude": d.latitude,
            "longitude": d.longitude,
            "isOnline": d.is_online,
            "isAvailable": d.is_available,
        }
        for d in drivers
    ]
    total = s.execute(select(func.count(RideRequest.id)).where(RideRequest.created_at >= since)).scalar() or 0
    return ok({
        "zones": out_zones,
        "drivers": out_drivers,
        "windowHours": config.DEMAND_WINDOW_HOURS,
        "ridesInWindow": int(total),
    })
