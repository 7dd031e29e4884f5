from __future__ import annotations

import logging
from typing import Iterable
from urllib.parse import urlsplit

from fastapi.middleware.cors import CORSMiddleware

log = logging.getLogger(__name__)

# Vite dev server of the dashboard.
DEV_ORIGINS = ("http://localhost:5173", "http://127.0.0.1:5173")

# The dashboard reads the request id for support tickets and the file name
# of CSV report exports.
EXPOSED_HEADERS = ["X-Request-ID", "Content-Disposition"]
ALLOWED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Content-Type", "Authorization", "X-Admin-Token", "X-Admin-User", "X-Request-ID"]


def parse_origins(allowed: str | Iterable[str] | None) -> list[str]:
    """Split ``ALLOWED_ORIGINS`` into normalised origins.

    Entries that are not ``*`` or a bare ``http(s)://host[:port]`` origin are
    dropped with a warning; a trailing slash is tolerated.
    """
    if allowed is None:
        items: Iterable[str] = ()
    elif isinstance(allowed, str):
        items = allowed.split(",")
    else:
        items = allowed
    origins: list[str] = []
    for raw in items:
        o = raw.strip().rstrip("/")
        if not o:
            continue
        if o == "*":
            origins.append(o)
            continue
        parts = urlsplit(o)
        if parts.scheme not in ("http", "https") or not parts.netloc or parts.path or parts.query:
            log.warning("ignoring invalid CORS origin", extra={"origin": raw.strip()})
            continue
        if o not in origins:
            origins.append(o)
    return origins


def configure_cors(app, allowed: str | Iterable[str] | None, max_age: int = 600):
    origins = parse_origins(allowed) or list(DEV_ORIGINS)

    if "*" in origins:
        # Wildcard origins must not be combined with credentialed requests.
        origins = ["*"]
        allow_credentials = False
    else:
        allow_credentials = True

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=ALLOWED_METHODS,
        allow_headers=ALLOWED_HEADERS,
        expose_headers=EXPOSED_HEADERS,
        max_age=max_age,
    )
    return origins
