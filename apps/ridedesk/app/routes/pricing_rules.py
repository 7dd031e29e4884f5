from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

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
from ..db import get_session
from ..models import PricingRule, VehicleCategory
from ..pricing import active_rule_or_404, calculate_fare, route_distance_eta_km, zone_price_for
from ..schemas import FareCalcIn, FareEstimateIn, PricingRuleIn, PricingRuleOut, PricingRuleUpdate

router = APIRouter()

_MONEY_FIELDS = (
    "base_fare",
    "minimum_fare",
    "per_distance_after_base",
    "per_minute_drive",
    "per_minute_wait",
    "cancellation_fee",
    "admin_commission",
    "fleet_commission",
)


def _to_columns(values: dict) -> dict:
    return {k: Decimal(str(v)) if k in _MONEY_FIELDS and v is not None else v for k, v in values.items()}


def _check_category(s: Session, category_id: int, exclude_rule_id: Optional[int] = None) -> None:
    get_or_404(s, VehicleCategory, category_id, "vehicle category")
    stmt = select(PricingRule.id).where(PricingRule.vehicle_category_id == category_id)
    if exclude_rule_id is not None:
        stmt = stmt.where(PricingRule.id != exclude_rule_id)
    if s.execute(stmt).first():
        raise HTTPException(status_code=409, detail="vehicle category already has a pricing rule")


def _check_commission(rule: PricingRule) -> None:
    if rule.commission_type != "percentage":
        return
    admin_pct = Decimal(str(rule.admin_commission or 0))
    fleet_pct = Decimal(str(rule.fleet_commission or 0))
    if admin_pct > 100 or fleet_pct > 100 or admin_pct + fleet_pct > 100:
        raise HTTPException(status_code=400, detail="percentage commissions cannot exceed 100")


@router.get("/pricing-rules")
def list_pricing_rules(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    stmt = select(PricingRule)
    if status_given(status):
        stmt = stmt.where(PricingRule.status == flag_value(status))
    stmt = stmt.order_by(PricingRule.created_at.desc(), PricingRule.id.desc())
    return listing(
        s, stmt, PricingRuleOut, paging,
        lambda r: (r.vehicle_category.name if r.vehicle_category else None, r.commission_type),
        status_counts(s, PricingRule.status),
    )


@router.post("/pricing-rules")
def create_pricing_rule(req: PricingRuleIn, request: Request, s: Session = Depends(get_session)):
    _check_category(s, req.vehicle_category_id)
    rule = PricingRule(**_to_columns(req.model_dump()))
    _check_commission(rule)
    s.add(rule); s.commit(); s.refresh(rule)
    audit(request, "pricing_rule_create", pricing_rule_id=rule.id, vehicle_category_id=rule.vehicle_category_id)
    return ok(dump(PricingRuleOut, rule), "Pricing rule created")


@router.post("/pricing-rules/calculate")
def calculate(req: FareCalcIn, s: Session = Depends(get_session)):
    rule = active_rule_or_404(s, req.vehicle_category_id)
    fare = calculate_fare(rule, req.distance, req.duration, req.waiting_time)
    return ok({
        "vehicleCategoryId": req.vehicle_category_id,
        "pricingRuleId": rule.id,
        "distance": req.distance,
        "duration": req.duration,
        "waitingTime": req.waiting_time,
        **fare.as_dict(),
    })


@router.post("/pricing-rules/estimate")
def estimate(req: FareEstimateIn, s: Session = Depends(get_session)):
    rule = active_rule_or_404(s, req.vehicle_category_id)
    km, eta_min, source = route_distance_eta_km(
        req.start_latitude, req.start_longitude, req.end_latitude, req.end_longitude
    )
    zone_price = zone_price_for(s, req.vehicle_category_id, req.start_latitude, req.start_longitude)
    fare = calculate_fare(rule, km, eta_min, req.waiting_time, zone_price)
    return ok({
        "vehicleCategoryId": req.vehicle_category_id,
        "pricingRuleId": rule.id,
        "zoneId": zone_price.zone_id if zone_price is not None else None,
        "distance": round(km, 3),
        "duration": eta_min,
        "routeSource": source,
        **fare.as_dict(),
    })


@router.get("/pricing-rules/{rule_id}")
def get_pricing_rule(rule_id: int, s: Session = Depends(get_session)):
    return ok(dump(PricingRuleOut, get_or_404(s, PricingRule, rule_id, "pricing rule")))


@router.put("/pricing-rules/{rule_id}")
def update_pricing_rule(rule_id: int, req: PricingRuleUpdate, request: Request, s: Session = Depends(get_session)):
    rule = get_or_404(s, PricingRule, rule_id, "pricing rule")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, *changes.keys())
    if "vehicle_category_id" in changes and changes["vehicle_category_id"] != rule.vehicle_category_id:
        _check_category(s, changes["vehicle_category_id"], exclude_rule_id=rule.id)
    apply_changes(rule, _to_columns(changes))
    _check_commission(rule)
    s.add(rule); s.commit(); s.refresh(rule)
    audit(request, "pricing_rule_update", pricing_rule_id=rule.id, fields=sorted(changes))
    return ok(dump(PricingRuleOut, rule), "Pricing rule updated")


@router.delete("/pricing-rules/{rule_id}")
def delete_pricing_rule(rule_id: int, request: Request, s: Session = Depends(get_session)):
    rule = get_or_404(s, PricingRule, rule_id, "pricing rule")
    s.delete(rule); s.commit()
    audit(request, "pricing_rule_delete", pricing_rule_id=rule_id)
    return ok(None, "Pricing rule deleted")
