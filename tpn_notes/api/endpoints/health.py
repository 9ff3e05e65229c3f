from __future__ import annotations

from fastapi import APIRouter
from starlette.responses import JSONResponse

from tpn_notes.core.observability.metrics import inc_named
from tpn_notes.core.validation.range_loader import load_reference_ranges
from tpn_notes.settings import load_settings

router = APIRouter()


@router.get("/health/live")
def live():
    inc_named("health_live")
    return {"status": "ok"}


@router.get("/health/ready")
def ready():
    """Ready once the reference range table loads and the audit directory is writable."""
    inc_named("health_ready")
    settings = load_settings()
    problems: list[str] = []

    if not load_reference_ranges():
        problems.append("reference_ranges_empty")

    if settings.audit_enabled:
        try:
            settings.audit_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            problems.append(f"audit_dir_not_writable err={type(e).__name__}")

    if problems:
        return JSONResponse(status_code=503, content={"status": "not_ready", "problems": problems})
    return {"status": "ready"}
