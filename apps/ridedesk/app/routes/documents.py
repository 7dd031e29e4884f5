from datetime import date
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
from ..db import get_session, utcnow
from ..models import DocumentType, DriverDocument
from ..schemas import (
    DocumentTypeIn,
    DocumentTypeOut,
    DocumentTypeUpdate,
    DriverDocumentIn,
    DriverDocumentOut,
    DriverDocumentUpdate,
)
from .users import get_user_or_404

router = APIRouter()


def _today() -> date:
    return utcnow().date()


def check_verifiable(doc: DriverDocument) -> None:
    """A document with an expiry can only be verified while it is still valid."""
    if not doc.is_verified or not doc.document.has_expiry_date:
        return
    if doc.expire_date is None:
        raise HTTPException(status_code=400, detail="expire_date required to verify this document")
    if doc.expire_date < _today():
        raise HTTPException(status_code=400, detail="document has expired")


# ---- Document types ----
@router.get("/documents")
def list_document_types(status: str = "", paging: Paging = Depends(), s: Session = Depends(get_session)):
    stmt = select(DocumentType)
    if status_given(status):
        stmt = stmt.where(DocumentType.status == flag_value(status))
    stmt = stmt.order_by(DocumentType.created_at.desc(), DocumentType.id.desc())
    return listing(
        s, stmt, DocumentTypeOut, paging,
        lambda d: (d.name, d.name_ar, d.type),
        status_counts(s, DocumentType.status),
    )


@router.post("/documents")
def create_document_type(req: DocumentTypeIn, request: Request, s: Session = Depends(get_session)):
    d = DocumentType(**req.model_dump())
    s.add(d); s.commit(); s.refresh(d)
    audit(request, "document_type_create", document_id=d.id)
    return ok(dump(DocumentTypeOut, d), "Document created")


@router.get("/documents/{document_id}")
def get_document_type(document_id: int, s: Session = Depends(get_session)):
    return ok(dump(DocumentTypeOut, get_or_404(s, DocumentType, document_id, "document")))


@router.put("/documents/{document_id}")
def update_document_type(document_id: int, req: DocumentTypeUpdate, request: Request, s: Session = Depends(get_session)):
    d = get_or_404(s, DocumentType, document_id, "document")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "name", "type", "status", "is_required", "has_expiry_date")
    apply_changes(d, changes)
    s.add(d); s.commit(); s.refresh(d)
    audit(request, "document_type_update", document_id=d.id)
    return ok(dump(DocumentTypeOut, d), "Document updated")


@router.delete("/documents/{document_id}")
def delete_document_type(document_id: int, request: Request, s: Session = Depends(get_session)):
    d = get_or_404(s, DocumentType, document_id, "document")
    for dd in s.execute(select(DriverDocument).where(DriverDocument.document_id == document_id)).scalars():
        s.delete(dd)
    s.delete(d); s.commit()
    audit(request, "document_type_delete", document_id=document_id)
    return ok(None, "Document deleted")


# ---- Driver documents ----
def _driver_document_haystack(dd: DriverDocument):
    return (dd.driver.full_name if dd.driver else None, dd.document.name if dd.document else None)


@router.get("/driver-documents")
def list_driver_documents(
    document_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    verified: str = "",
    paging: Paging = Depends(),
    s: Session = Depends(get_session),
):
    stmt = select(DriverDocument)
    if document_id is not None:
        stmt = stmt.where(DriverDocument.document_id == document_id)
    if driver_id is not None:
        stmt = stmt.where(DriverDocument.driver_id == driver_id)
    if verified == "verified":
        stmt = stmt.where(DriverDocument.is_verified.is_(True))
    elif verified == "unverified":
        stmt = stmt.where(DriverDocument.is_verified.is_(False))
    elif verified and verified != "all":
        raise HTTPException(status_code=400, detail="verified must be verified or unverified")
    stmt = stmt.order_by(DriverDocument.created_at.desc(), DriverDocument.id.desc())
    return listing(s, stmt, DriverDocumentOut, paging, _driver_document_haystack)


@router.post("/driver-documents")
def create_driver_document(req: DriverDocumentIn, request: Request, s: Session = Depends(get_session)):
    get_user_or_404(s, req.driver_id, "driver")
    get_or_404(s, DocumentType, req.document_id, "document")
    exists = s.execute(
        select(DriverDocument.id).where(
            DriverDocument.driver_id == req.driver_id,
            DriverDocument.document_id == req.document_id,
        )
    ).first()
    if exists:
        raise HTTPException(status_code=409, detail="driver already has this document")
    dd = DriverDocument(**req.model_dump())
    s.add(dd)
    s.flush()
    check_verifiable(dd)
    s.commit(); s.refresh(dd)
    audit(request, "driver_document_create", driver_document_id=dd.id, driver_id=dd.driver_id)
    return ok(dump(DriverDocumentOut, dd), "Driver document created")


@router.get("/driver-documents/{doc_id}")
def get_driver_document(doc_id: int, s: Session = Depends(get_session)):
    return ok(dump(DriverDocumentOut, get_or_404(s, DriverDocument, doc_id, "driver document")))


@router.put("/driver-documents/{doc_id}")
def update_driver_document(doc_id: int, req: DriverDocumentUpdate, request: Request, s: Session = Depends(get_session)):
    dd = get_or_404(s, DriverDocument, doc_id, "driver document")
    changes = req.model_dump(exclude_unset=True)
    reject_nulls(changes, "is_verified")
    apply_changes(dd, changes)
    check_verifiable(dd)
    s.add(dd); s.commit(); s.refresh(dd)
    audit(request, "driver_document_update", driver_document_id=dd.id, is_verified=dd.is_verified)
    return ok(dump(DriverDocumentOut, dd), "Driver document updated")


@router.delete("/driver-documents/{doc_id}")
def delete_driver_document(doc_id: int, request: Request, s: Session = Depends(get_session)):
    dd = get_or_404(s, DriverDocument, doc_id, "driver document")
    s.delete(dd); s.commit()
    audit(request, "driver_document_delete", driver_document_id=doc_id)
    return ok(None, "Driver document deleted")


@router.get("/drivers/{driver_id}/document-status")
def driver_document_status(driver_id: int, s: Session = Depends(get_session)):
    """Compliance of a driver against the active required driver documents."""
    driver = get_user_or_404(s, driver_id, "driver")
    required = s.execute(
        select(DocumentType).where(
            DocumentType.type == "driver",
            DocumentType.status == 1,
            DocumentType.is_required.is_(True),
        ).order_by(DocumentType.id)
    ).scalars().all()
    uploaded = {dd.document_id: dd for dd in driver.documents}
    today = _today()
    missing, unverified, expired = [], [], []
    for doc in required:
        dd = uploaded.get(doc.id)
        entry = {"documentId": doc.id, "name": doc.name}
        if dd is None:
            missing.append(entry)
            continue
        if doc.has_expiry_date and dd.expire_date is not None and dd.expire_date < today:
            expired.append({**entry, "expireDate": dd.expire_date.isoformat()})
        elif not dd.is_verified:
            unverified.append(entry)
    return ok({
        "driverId": driver.id,
        "compliant": not (missing or unverified or expired),
        "required": len(required),
        "missing": missing,
        "unverified": unverified,
        "expired": expired,
    })
