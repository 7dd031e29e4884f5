import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import httpx
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from . import config
from .models import GeographicZone, PricingRule, ZonePrice

log = logging.getLogger(__name__)

CENT = Decimal("0.01")
KM_PER_MILE = 1.609344


def money(value) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class Fare:
    base_fare: Decimal
    extra_distance: Decimal
    distance_charge: Decimal
    time_charge: Decimal
    waiting_charge: Decimal
    minimum_fare_applied: bool
    total_amount: Decimal
    admin_commission: Decimal
    fleet_commission: Decimal
    driver_earning: Decimal
    zone_price_id: Optional[int] = None

    def as_dict(self) -> dict:
        return {
            "totalAmount": float(self.total_amount),
            "zonePriceId": self.zone_price_id,
            "breakdown": {
                "baseFare": float(self.base_fare),
                "extraDistance": float(self.extra_distance),
                "distanceCharge": float(self.distance_charge),
                "timeCharge": float(self.time_charge),
                "waitingCharge": float(self.waiting_charge),
                "minimumFareApplied": self.minimum_fare_applied,
                "adminCommission": float(self.admin_commission),
                "fleetCommission": float(self.fleet_commission),
                "driverEarning": float(self.driver_earning),
            },
        }


def _commission(rule: PricingRule, rate, total: Decimal) -> Decimal:
    rate = Decimal(str(rate or 0))
    if rule.commission_type == "fixed":
        return min(money(rate), total)
    return money(total * rate / Decimal(100))


def commission_split(rule: Optional[PricingRule], total: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """Split a fare into (admin, fleet, driver) shares."""
    total = money(total)
    if rule is None:
        return Decimal("0.00"), Decimal("0.00"), total
    admin_fee = _commission(rule, rule.admin_commission, total)
    fleet_fee = min(_commission(rule, rule.fleet_commission, total), total - admin_fee)
    return admin_fee, fleet_fee, total - admin_fee - fleet_fee


def calculate_fare(
    rule: PricingRule,
    distance: float,
    duration: float,
    waiting_time: float = 0,
    zone_price: Optional[ZonePrice] = None,
) -> Fare:
    """Evaluate a pricing rule for a trip.

    ``distance`` is in the rule's distance unit (km unless the region says
    otherwise), ``duration`` and ``waiting_time`` in minutes. Only the
    distance beyond ``base_distance`` is charged per unit, and waiting is
    free up to ``waiting_time_limit``.

    A ``zone_price`` replaces the base fare, the per-distance rate and the
    per-minute drive rate; minimum fare, waiting and commissions still come
    from the rule.
    """
    base_fare, per_distance, per_minute = rule.base_fare, rule.per_distance_after_base, rule.per_minute_drive
    if zone_price is not None:
        base_fare, per_distance, per_minute = zone_price.base_fare, zone_price.per_km, zone_price.per_minute
    base = money(base_fare)
    extra = max(Decimal(0), Decimal(str(distance)) - Decimal(str(rule.base_distance or 0)))
    distance_charge = money(extra * Decimal(str(per_distance or 0)))
    time_charge = money(Decimal(str(duration)) * Decimal(str(per_minute or 0)))
    billable_wait = max(Decimal(0), Decimal(str(waiting_time)) - Decimal(str(rule.waiting_time_limit or 0)))
    waiting_charge = money(billable_wait * Decimal(str(rule.per_minute_wait or 0)))
    subtotal = base + distance_charge + time_charge + waiting_charge
    minimum = money(rule.minimum_fare)
    total = max(subtotal, minimum)
    admin_fee, fleet_fee, driver_earning = commission_split(rule, total)
    return Fare(
        base_fare=base,
        extra_distance=money(extra),
        distance_charge=distance_charge,
        time_charge=time_charge,
        waiting_charge=waiting_charge,
        minimum_fare_applied=subtotal < minimum,
        total_amount=total,
        admin_commission=admin_fee,
        fleet_commission=fleet_fee,
        driver_earning=driver_earning,
        zone_price_id=zone_price.id if zone_price is not None else None,
    )


def active_rule(s: Session, vehicle_category_id: Optional[int]) -> Optional[PricingRule]:
    if vehicle_category_id is None:
        return None
    return s.execute(
        select(PricingRule).where(
            PricingRule.vehicle_category_id == vehicle_category_id,
            PricingRule.status == 1,
        )
    ).scalar_one_or_none()


def active_rule_or_404(s: Session, vehicle_category_id: int) -> PricingRule:
    rule = active_rule(s, vehicle_category_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="no active pricing rule for vehicle category")
    return rule


# ---- Geo helpers ----
def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    # Returns great-circle distance in kilometers
    r = 6371.0
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def eta_min_from_km(km: float) -> int:
    speed = config.AVG_SPEED_KMH if config.AVG_SPEED_KMH > 0 else 30.0
    return max(1, int(round(km / speed * 60.0)))


def route_distance_eta_km(lat1: float, lon1: float, lat2: float, lon2: float) -> tuple[float, int, str]:
    """Best-effort road distance and ETA.

    Uses OSRM when OSRM_BASE_URL is configured and falls back to the
    haversine distance at AVG_SPEED_KMH. Returns (km, eta_minutes, source).
    """
    if config.OSRM_BASE:
        url = config.OSRM_BASE.rstrip("/") + f"/route/v1/driving/{lon1},{lat1};{lon2},{lat2}"
        try:
            r = httpx.get(url, params={"overview": "false"}, timeout=5)
            r.raise_for_status()
            body = r.json()
            routes = body.get("routes") if isinstance(body, dict) else None
            if isinstance(routes, list) and routes and isinstance(routes[0], dict):
                dist_m = routes[0].get("distance") or 0
                dur_s = routes[0].get("duration") or 0
                km = max(0.0, float(dist_m) / 1000.0)
                eta_min = max(1, int(round(float(dur_s) / 60.0)))
                return km, eta_min, "osrm"
        except (httpx.HTTPError, ValueError, TypeError) as e:
            log.warning("osrm route failed, using haversine", extra={"error": str(e)})
    km = haversine_km(lat1, lon1, lat2, lon2)
    return km, eta_min_from_km(km), "haversine"


def km_to_unit(km: float, unit: str) -> float:
    return km / KM_PER_MILE if unit == "mi" else km


def zones_at(s: Session, lat: float, lng: float) -> list[tuple[float, GeographicZone]]:
    """Active zones whose circle contains the point as (km, zone), nearest center first."""
    hits = []
    for z in s.execute(select(GeographicZone).where(GeographicZone.status == 1)).scalars():
        km = haversine_km(lat, lng, z.center_lat, z.center_lng)
        if km <= z.radius:
            hits.append((km, z))
    hits.sort(key=lambda h: h[0])
    return hits


def zone_price_for(s: Session, service_id: Optional[int], lat: Optional[float], lng: Optional[float]) -> Optional[ZonePrice]:
    """Active price of the nearest zone around the pickup that prices ``service_id``."""
    if service_id is None or lat is None or lng is None:
        return None
    hits = zones_at(s, lat, lng)
    if not hits:
        return None
    prices = {
        zp.zone_id: zp
        for zp in s.execute(
            select(ZonePrice).where(
                ZonePrice.service_id == service_id,
                ZonePrice.status == 1,
                ZonePrice.zone_id.in_([z.id for _, z in hits]),
            )
        ).scalars()
    }
    for _, z in hits:
        if z.id in prices:
            return prices[z.id]
    return None
