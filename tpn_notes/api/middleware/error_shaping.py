from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

log = logging.getLogger("tpn.errors")


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id")


class SafeErrorMiddleware(BaseHTTPMiddleware):
    """
    Outermost guard: an unhandled exception becomes a bare 500 carrying the
    request id. The traceback goes to the ``tpn.errors`` log only.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            rid = _request_id(request)
            log.exception("Unhandled %s on %s %s rid=%s", type(exc).__name__, request.method, request.url.path, rid)
            body: Dict[str, str] = {"detail": "Internal Server Error"}
            if rid:
                body["request_id"] = rid
            return JSONResponse(status_code=500, content=body)
