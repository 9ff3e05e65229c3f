from __future__ import annotations

import re
from typing import Pattern, Tuple

from prometheus_client import Counter, Histogram

# Route shapes whose path segments carry ids or parameter keys.
_PATH_RULES: Tuple[Tuple[Pattern[str], str], ...] = (
    (re.compile(r"^/api/v1/sessions/[^/]+"), "/api/v1/sessions/:session"),
    (re.compile(r"/values/[^/]+$"), "/values/:key"),
    (re.compile(r"^/api/v1/documents/[^/]+$"), "/api/v1/documents/:document"),
    (re.compile(r"^/api/v1/parameters/[^/]+$"), "/api/v1/parameters/:key"),
)


def normalize_path(path: str) -> str:
    """Collapse ids and keys so metric label cardinality stays bounded."""
    p = path or "/"
    for pattern, replacement in _PATH_RULES:
        p = pattern.sub(replacement, p)
    return p


HTTP_REQUESTS_TOTAL = Counter(
    "tpn_http_requests_total",
    "HTTP requests by method, route shape and status",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "tpn_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)
