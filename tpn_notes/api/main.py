from __future__ import annotations

import logging

from fastapi import FastAPI

from tpn_notes.api.endpoints import documents, health, notes, parameters, sessions, validation
from tpn_notes.api.endpoints import metrics as metrics_ep
from tpn_notes.api.middleware.error_shaping import SafeErrorMiddleware
from tpn_notes.api.middleware.request_context import RequestContextMiddleware, SecurityHeadersMiddleware
from tpn_notes.settings import load_settings

logging.getLogger("tpn").addHandler(logging.NullHandler())

settings = load_settings()

app = FastAPI(
    title="TPN Notes API",
    version="0.1.0",
)

# ------------------------------------------------------------
# Middleware stack: the LAST add_middleware call is the OUTERMOST wrapper.
# Runtime order: SafeErrorMiddleware -> SecurityHeaders -> RequestContext -> handler
# ------------------------------------------------------------
app.add_middleware(RequestContextMiddleware)
app.add_middleware(SecurityHeadersMiddleware, enabled=settings.security_headers_enabled)
app.add_middleware(SafeErrorMiddleware)

app.include_router(health.router)
app.include_router(metrics_ep.router)
app.include_router(notes.router)
app.include_router(parameters.router)
app.include_router(validation.router)
app.include_router(sessions.router)
app.include_router(documents.router)
