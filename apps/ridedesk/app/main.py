import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ridedesk_shared import RequestIDMiddleware, add_standard_health, configure_cors, get_request_id, setup_json_logging

from . import config
from .common import require_admin
from .db import init_db
from .routes import (
    catalog,
    dashboard,
    documents,
    finance,
    notifications,
    pricing_rules,
    reports,
    rides,
    support,
    trips,
    users,
    zones,
)
from .tracking import hub, router_ws

log = logging.getLogger("ridedesk.errors")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    hub.start()
    yield
    await hub.stop()


app = FastAPI(title="Ridedesk API", version="0.1.0", lifespan=lifespan)

setup_json_logging(config.LOG_LEVEL)
app.add_middleware(RequestIDMiddleware)
configure_cors(app, config.ALLOWED_ORIGINS)
add_standard_health(app)


def _error(status_code: int, message: Any, request: Request) -> JSONResponse:
    rid = request.headers.get("X-Request-ID") or get_request_id()
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "request_id": rid},
        headers={"X-Request-ID": rid},
    )


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    # Scrub server-side error details in prod/staging.
    if config.is_prod_env() and exc.status_code >= 500:
        return _error(exc.status_code, "internal error", request)
    return _error(exc.status_code, exc.detail, request)


@app.exception_handler(RequestValidationError)
async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "invalid request"
    if errors:
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    return _error(422, message, request)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("unhandled exception", extra={"path": request.url.path})
    if config.is_prod_env():
        return _error(500, "internal error", request)
    # dev/test: keep a useful error message for debugging.
    return _error(500, str(exc), request)


_admin = [Depends(require_admin)]
for module in (
    users,
    zones,
    catalog,
    pricing_rules,
    rides,
    support,
    documents,
    finance,
    trips,
    notifications,
    reports,
    dashboard,
):
    app.include_router(module.router, prefix="/api", dependencies=_admin)

# The tracking socket checks ?token= itself; HTTP header guards do not apply.
app.include_router(router_ws, prefix="/api")
