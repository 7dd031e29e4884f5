import logging
import math
import time
from typing import Any, Callable, Iterable, Optional, Type

from fastapi import HTTPException, Query, Request
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import config


def dump(schema: Type[BaseModel], obj: Any) -> dict:
    return schema.model_validate(obj).model_dump(mode="json", by_alias=True)


def ok(data: Any = None, message: Optional[str] = None, **extra: Any) -> dict:
    out: dict[str, Any] = {"success": True, "data": data}
    if message:
        out["message"] = message
    out.update(extra)
    return out


def get_or_404(s: Session, model, obj_id: int, label: str):
    obj = s.get(model, obj_id)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


def reject_nulls(changes: dict, *keys: str) -> None:
    for key in keys:
        if key in changes and changes[key] is None:
            raise HTTPException(status_code=400, detail=f"{key} cannot be empty")


def apply_changes(obj: Any, changes: dict) -> None:
    for key, value in changes.items():
        setattr(obj, key, value)


# ---- Admin guard ----
def require_admin(request: Request) -> str:
    """Router dependency: check ``X-Admin-Token`` when ADMIN_API_TOKEN is set.

    Without a configured token the API is open, which is how local
    development and the test suite run it.
    """
    if not config.ADMIN_API_TOKEN:
        return admin_identity(request)
    token = request.headers.get("X-Admin-Token")
    if not token:
        raise HTTPException(status_code=401, detail="admin token required")
    if token != config.ADMIN_API_TOKEN:
        raise HTTPException(status_code=403, detail="forbidden")
    return admin_identity(request)


def admin_identity(request: Optional[Request]) -> str:
    if request is None:
        return "system"
    return (request.headers.get("X-Admin-User") or "").strip()[:120] or "admin"


# ---- Listing ----
class Paging:
    def __init__(
        self,
        search: str = "",
        page: int = Query(1, ge=1),
        per_page: int = Query(config.DEFAULT_PER_PAGE, ge=1, le=config.MAX_PER_PAGE),
    ):
        self.search = search.strip()
        self.page = page
        self.per_page = per_page


def status_given(status: Optional[str]) -> bool:
    return bool(status) and status.lower() != "all"


def flag_value(status: str) -> int:
    """Map ``active``/``inactive``/``1``/``0`` to the 1/0 status flag."""
    st = status.strip().lower()
    if st in ("1", "active"):
        return 1
    if st in ("0", "inactive"):
        return 0
    raise HTTPException(status_code=400, detail="status must be active or inactive")


def matches(needle: str, haystack: Iterable[Any]) -> bool:
    needle = needle.lower()
    return any(needle in str(v).lower() for v in haystack if v is not None)


def status_counts(s: Session, column, *where) -> dict:
    stmt = select(column, func.count()).group_by(column)
    for cond in where:
        stmt = stmt.where(cond)
    counts = {str(k): int(n) for k, n in s.execute(stmt).all()}
    counts["total"] = sum(counts.values())
    return counts


def listing(
    s: Session,
    stmt,
    schema: Type[BaseModel],
    paging: Paging,
    haystack: Optional[Callable[[Any], Iterable[Any]]] = None,
    counts: Optional[dict] = None,
) -> dict:
    rows = s.execute(stmt).scalars().all()
    if paging.search and haystack is not None:
        rows = [r for r in rows if matches(paging.search, haystack(r))]
    total = len(rows)
    start = (paging.page - 1) * paging.per_page
    data = [dump(schema, r) for r in rows[start:start + paging.per_page]]
    out = ok(
        data,
        pagination={
            "page": paging.page,
            "perPage": paging.per_page,
            "total": total,
            "lastPage": max(1, math.ceil(total / paging.per_page)),
        },
    )
    if counts is not None:
        out["counts"] = counts
    return out


# ---- Audit ----
_audit_logger = logging.getLogger("ridedesk.audit")
AUDIT_EVENTS: list[dict[str, Any]] = []
MAX_AUDIT_EVENTS = 2000


class _AuditInMemoryHandler(logging.Handler):
    """Keeps the latest audit events in memory for /api/admin/audit."""

    def emit(self, record: logging.LogRecord) -> None:
        msg = record.msg
        if isinstance(msg, dict):
            payload = dict(msg)
        else:
            payload = {"event": "audit", "action": record.getMessage()}
        payload.setdefault("ts_ms", int(time.time() * 1000))
        AUDIT_EVENTS.append(payload)
        if len(AUDIT_EVENTS) > MAX_AUDIT_EVENTS:
            del AUDIT_EVENTS[: len(AUDIT_EVENTS) - MAX_AUDIT_EVENTS]


_audit_logger.addHandler(_AuditInMemoryHandler())
_audit_logger.setLevel(logging.INFO)


def audit(request: Optional[Request], action: str, **extra: Any) -> None:
    _audit_logger.info({"event": "audit", "action": action, "admin": admin_identity(request), **extra})
