import re
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from sqlalchemy import delete, select, update
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
from ..db import get_session
from ..models import (
    CancellationReason,
    CategoryFeature,
    CategoryZone,
    Faq,
    PricingRule,
    RideRequest,
    Setting,
    SosContact,
    TouristTrip,
    VehicleCategory,
    ZonePrice,
)
from ..schemas import (
    CancelReasonIn,
    CancelReasonOut,
    CancelReasonUpdate,
    CategoryFeatureIn,
    CategoryFeatureOut,
    CategoryFeatureUpdate,
    CategoryIn,
    CategoryOut,
    CategoryUpdate,
    FaqIn,
    FaqOut,
    FaqUpdate,
    SosIn,
    SosOut,
    SosUpdate,
)

router = APIRouter()


# ---- Vehicle categories ----
def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")
    return slug or "category"


def _check_slug(s: Session, slug: str, exclude_id: Optional[int] = None) -> None:
    stmt = select(VehicleCategory.id).where(VehicleCategory.slug == slug)
    if exclude_id is not None:
        stmt = stmt.where(VehicleCategory.id != exclude_id)
    if s.execute(stmt).first():
        raise HTTPException(status_code=409, detail="slug already in use")


@router.get("/vehicle-categories")
def list_categories(
    status: str = "",
    category_type: str = "",
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(VehicleCategory)
    if status_given(status):
        stmt = stmt.where(VehicleCategory.status == flag_value(status))
    if category_type:
        stmt = stmt.where(VehicleCategory.category_type == category_type)
    stmt = stmt.order_by(VehicleCategory.created_at.desc(), VehicleCategory.id.desc())
    return listing(
        s, stmt, CategoryOut, paging,
        lambda c: (c.name, c.name_ar, c.slug),
        status_counts(s, VehicleCategory.status),
    )


@router.post("/vehicle-categories")
def create_category(req: CategoryIn, request: Request, s: Session = Depends(get_session)):
    fields = req.model_dump()
    fields["slug"] = slugify(req.slug or req.name)
    _check_slug(s, fields["slug"])
    c = VehicleCategory(**fields)
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "vehicle_category_create", vehicle_category_id=c.id)
    return ok(dump(CategoryOut, c), "Vehicle category created")


@router.get("/vehicle-categories/{category_id}")
def get_category(category_id: int, s: Session = Depends(get_session)):
    return ok(dump(CategoryOut, get_or_404(s, VehicleCategory, category_id, "vehicle category")))


@router.put("/vehicle-categories/{category_id}")
def update_category(category_id: int, req: CategoryUpdate, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, VehicleCategory, category_id, "vehicle category")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "name", "capacity", "category_type", "status")
    if changes.get("slug"):
        changes["slug"] = slugify(changes["slug"])
        _check_slug(s, changes["slug"], exclude_id=c.id)
    else:
        changes.pop("slug", None)
    apply_changes(c, changes)
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "vehicle_category_update", vehicle_category_id=c.id)
    return ok(dump(CategoryOut, c), "Vehicle category updated")


@router.delete("/vehicle-categories/{category_id}")
def delete_category(category_id: int, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, VehicleCategory, category_id, "vehicle category")
    s.execute(delete(PricingRule).where(PricingRule.vehicle_category_id == category_id))
    s.execute(delete(CategoryZone).where(CategoryZone.vehicle_category_id == category_id))
    s.execute(delete(ZonePrice).where(ZonePrice.service_id == category_id))
    s.execute(delete(CategoryFeature).where(CategoryFeature.vehicle_category_id == category_id))
    s.execute(update(RideRequest).where(RideRequest.service_id == category_id).values(service_id=None))
    s.execute(update(TouristTrip).where(TouristTrip.vehicle_category_id == category_id).values(vehicle_category_id=None))
    s.delete(c); s.commit()
    audit(request, "vehicle_category_delete", vehicle_category_id=category_id)
    return ok(None, "Vehicle category deleted")


# ---- Category features ----
@router.get("/category-features")
def list_category_features(
    status: str = "",
    vehicle_category_id: Optional[int] = None,
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(CategoryFeature)
    if status_given(status):
        stmt = stmt.where(CategoryFeature.status == flag_value(status))
    if vehicle_category_id is not None:
        stmt = stmt.where(CategoryFeature.vehicle_category_id == vehicle_category_id)
    stmt = stmt.order_by(CategoryFeature.created_at.desc(), CategoryFeature.id.desc())
    return listing(
        s, stmt, CategoryFeatureOut, paging,
        lambda f: (f.name, f.name_ar, f.vehicle_category.name),
        status_counts(s, CategoryFeature.status),
    )


@router.post("/category-features")
def create_category_feature(req: CategoryFeatureIn, request: Request, s: Session = Depends(get_session)):
    get_or_404(s, VehicleCategory, req.vehicle_category_id, "vehicle category")
    feature = CategoryFeature(**req.model_dump())
    s.add(feature); s.commit(); s.refresh(feature)
    audit(request, "category_feature_create", category_feature_id=feature.id)
    return ok(dump(CategoryFeatureOut, feature), "Feature created")


@router.put("/category-features/{feature_id}")
def update_category_feature(
    feature_id: int, req: CategoryFeatureUpdate, request: Request, s: Session = Depends(get_session)
):
    feature = get_or_404(s, CategoryFeature, feature_id, "feature")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "vehicle_category_id", "name", "status")
    if "vehicle_category_id" in changes:
        get_or_404(s, VehicleCategory, changes["vehicle_category_id"], "vehicle category")
    apply_changes(feature, changes)
    s.add(feature); s.commit(); s.refresh(feature)
    audit(request, "category_feature_update", category_feature_id=feature.id)
    return ok(dump(CategoryFeatureOut, feature), "Feature updated")


@router.delete("/category-features/{feature_id}")
def delete_category_feature(feature_id: int, request: Request, s: Session = Depends(get_session)):
    feature = get_or_404(s, CategoryFeature, feature_id, "feature")
    s.delete(feature); s.commit()
    audit(request, "category_feature_delete", category_feature_id=feature_id)
    return ok(None, "Feature deleted")


# ---- Cancellation reasons ----
@router.get("/cancellations")
def list_cancellations(
    status: str = "",
    type: str = "",
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(CancellationReason)
    if status_given(status):
        stmt = stmt.where(CancellationReason.status == flag_value(status))
    if type and type != "all":
        stmt = stmt.where(CancellationReason.type == type)
    stmt = stmt.order_by(CancellationReason.created_at.desc(), CancellationReason.id.desc())
    return listing(s, stmt, CancelReasonOut, paging, lambda c: (c.name, c.name_ar))


@router.post("/cancellations")
def create_cancellation(req: CancelReasonIn, request: Request, s: Session = Depends(get_session)):
    c = CancellationReason(**req.model_dump())
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "cancellation_reason_create", cancellation_reason_id=c.id)
    return ok(dump(CancelReasonOut, c), "Cancellation reason created")


@router.get("/cancellations/{reason_id}")
def get_cancellation(reason_id: int, s: Session = Depends(get_session)):
    return ok(dump(CancelReasonOut, get_or_404(s, CancellationReason, reason_id, "cancellation reason")))


@router.put("/cancellations/{reason_id}")
def update_cancellation(reason_id: int, req: CancelReasonUpdate, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, CancellationReason, reason_id, "cancellation reason")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "name", "type", "status")
    apply_changes(c, changes)
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "cancellation_reason_update", cancellation_reason_id=c.id)
    return ok(dump(CancelReasonOut, c), "Cancellation reason updated")


@router.delete("/cancellations/{reason_id}")
def delete_cancellation(reason_id: int, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, CancellationReason, reason_id, "cancellation reason")
    s.delete(c); s.commit()
    audit(request, "cancellation_reason_delete", cancellation_reason_id=reason_id)
    return ok(None, "Cancellation reason deleted")


# ---- SOS contacts ----
@router.get("/sos")
def list_sos(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    stmt = select(SosContact)
    if status_given(status):
        stmt = stmt.where(SosContact.status == flag_value(status))
    stmt = stmt.order_by(SosContact.created_at.desc(), SosContact.id.desc())
    return listing(s, stmt, SosOut, paging, lambda c: (c.name, c.contact_number))


@router.post("/sos")
def create_sos(req: SosIn, request: Request, s: Session = Depends(get_session)):
    c = SosContact(**req.model_dump())
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "sos_create", sos_id=c.id)
    return ok(dump(SosOut, c), "SOS contact created")


@router.put("/sos/{sos_id}")
def update_sos(sos_id: int, req: SosUpdate, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, SosContact, sos_id, "sos contact")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "name", "contact_number", "status")
    apply_changes(c, changes)
    s.add(c); s.commit(); s.refresh(c)
    audit(request, "sos_update", sos_id=c.id)
    return ok(dump(SosOut, c), "SOS contact updated")


@router.delete("/sos/{sos_id}")
def delete_sos(sos_id: int, request: Request, s: Session = Depends(get_session)):
    c = get_or_404(s, SosContact, sos_id, "sos contact")
    s.delete(c); s.commit()
    audit(request, "sos_delete", sos_id=sos_id)
    return ok(None, "SOS contact deleted")


# ---- FAQs ----
@router.get("/faqs")
def list_faqs(
    status: str = "",
    type: str = "",
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(Faq)
    if status_given(status):
        stmt = stmt.where(Faq.status == flag_value(status))
    if type and type != "all":
        stmt = stmt.where(Faq.type == type)
    stmt = stmt.order_by(Faq.created_at.desc(), Faq.id.desc())
    return listing(s, stmt, FaqOut, paging, lambda f: (f.question, f.answer, f.id), status_counts(s, Faq.status))


@router.post("/faqs")
def create_faq(req: FaqIn, request: Request, s: Session = Depends(get_session)):
    f = Faq(**req.model_dump())
    s.add(f); s.commit(); s.refresh(f)
    audit(request, "faq_create", faq_id=f.id)
    return ok(dump(FaqOut, f), "FAQ created")


@router.get("/faqs/{faq_id}")
def get_faq(faq_id: int, s: Session = Depends(get_session)):
    return ok(dump(FaqOut, get_or_404(s, Faq, faq_id, "faq")))


@router.put("/faqs/{faq_id}")
def update_faq(faq_id: int, req: FaqUpdate, request: Request, s: Session = Depends(get_session)):
    f = get_or_404(s, Faq, faq_id, "faq")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "question", "answer", "type", "status")
    apply_changes(f, changes)
    s.add(f); s.commit(); s.refresh(f)
    audit(request, "faq_update", faq_id=f.id)
    return ok(dump(FaqOut, f), "FAQ updated")


@router.delete("/faqs/{faq_id}")
def delete_faq(faq_id: int, request: Request, s: Session = Depends(get_session)):
    f = get_or_404(s, Faq, faq_id, "faq")
    s.delete(f); s.commit()
    audit(request, "faq_delete", faq_id=faq_id)
    return ok(None, "FAQ deleted")


# ---- Settings ----
def default_settings() -> dict[str, str]:
    return {
        "appName": "Ridedesk",
        "currency": config.DEFAULT_CURRENCY,
        "distanceUnit": "km",
        "rideAcceptTimeout": "60",
        "supportEmail": "",
        "supportPhone": "",
    }


def _settings(s: Session) -> dict[str, str]:
    out = default_settings()
    for row in s.execute(select(Setting)).scalars():
        out[row.key] = row.value or ""
    return out


@router.get("/settings")
def get_settings(s: Session = Depends(get_session)):
    return ok(_settings(s))


@router.post("/settings")
def update_settings(request: Request, req: dict = Body(...), s: Session = Depends(get_session)):
    if not req:
        raise HTTPException(status_code=400, detail="no settings given")
    for key, value in req.items():
        if not isinstance(key, str) or not key.strip() or len(key) > 64:
            raise HTTPException(status_code=400, detail="invalid setting key")
        if isinstance(value, (dict, list)):
            raise HTTPException(status_code=400, detail=f"{key} must be a scalar")
        if isinstance(value, bool):
            value = "true" if value else "false"
        value = "" if value is None else str(value)
        if len(value) > 512:
            raise HTTPException(status_code=400, detail=f"{key} is too long")
        cfg = s.get(Setting, key)
        if not cfg:
            cfg = Setting(key=key, value=value)
        else:
            cfg.value = value
        s.add(cfg)
    s.commit()
    audit(request, "settings_update", keys=sorted(req))
    return ok(_settings(s), "Settings saved")
