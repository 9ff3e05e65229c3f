"""Prometheus scrape endpoint plus the in-process counter snapshot."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from tpn_notes.core.evaluator.extensions import DEFAULT_CACHE
from tpn_notes.core.observability.metrics import snapshot_named

router = APIRouter()


@router.get("/metrics", include_in_schema=False)
def prometheus_metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/metrics/snapshot")
def metrics_snapshot():
    body = snapshot_named()
    body["compiled_cache"] = DEFAULT_CACHE.stats()
    return body
