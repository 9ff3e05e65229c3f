from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Dict

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from tpn_notes.api.observability.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_TOTAL,
    normalize_path,
)
from tpn_notes.core.collaborators import HeaderIdentity

log = logging.getLogger("tpn.request")

REQUEST_ID_HEADER = "X-Request-Id"

_SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    # rendered notes carry inline styles but never scripts
    "Content-Security-Policy": "default-src 'none'; style-src 'unsafe-inline'",
}


def _access_line(**fields: Any) -> None:
    # parameter values and note bodies stay out of the access log
    log.info("%s", {"event": "request", **fields})


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id and the caller identity, then records
    latency metrics and, for API routes, one access log line.

    Sets ``request.state.request_id`` and ``request.state.identity`` and
    echoes the id in the ``X-Request-Id`` response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        identity = HeaderIdentity.from_headers(request.headers)
        request.state.request_id = request_id
        request.state.identity = identity

        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started
        response.headers[REQUEST_ID_HEADER] = request_id

        route = normalize_path(request.url.path)
        method = request.method.upper()
        HTTP_REQUESTS_TOTAL.labels(method=method, path=route, status=str(response.status_code)).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=route).observe(elapsed)

        if request.url.path.startswith("/api/"):
            _access_line(
                request_id=request_id,
                method=method,
                route=route,
                status_code=response.status_code,
                duration_ms=round(elapsed * 1000, 1),
                user=identity.user_id,
            )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds browser hardening headers; off in dev unless enabled."""

    def __init__(self, app, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        if self.enabled:
            for name, value in _SECURITY_HEADERS.items():
                response.headers.setdefault(name, value)
        return response
