from __future__ import annotations

from fastapi import APIRouter

from tpn_notes.api.schemas.notes import ValidationCheckRequest, ValidationCheckResponse
from tpn_notes.core.observability.metrics import inc_validation
from tpn_notes.core.params.keys import canonicalize
from tpn_notes.core.validation.range_loader import load_reference_ranges, lookup
from tpn_notes.core.validation.ranges import check_value, create_checker

router = APIRouter(prefix="/api/v1/validation", tags=["validation"])


@router.post("/check", response_model=ValidationCheckResponse)
def check(req: ValidationCheckRequest):
    """Classify one value. Read-only: nothing is logged to a session or the audit trail."""
    entry = lookup(load_reference_ranges(), req.key)
    checker = entry.checker
    if req.reference_range is not None:
        checker = create_checker([t.model_dump() for t in req.reference_range])
    uom = entry.uom if req.uom is None else req.uom

    result = check_value(req.value, checker, key=entry.key, uom=uom)
    inc_validation(result.severity.value)
    return {
        "key": canonicalize(req.key),
        "status": result.status,
        "severity": result.severity.value,
        "message": result.message,
        "threshold": result.threshold,
        "threshold_name": result.threshold_name,
    }
