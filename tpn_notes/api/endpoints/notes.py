from __future__ import annotations

from typing import List, Tuple

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse

from tpn_notes.api.schemas.notes import (
    DependenciesRequest,
    DependenciesResponse,
    EvaluationContext,
    ParseRequest,
    RenderRequest,
    RenderResponse,
    SegmentsResponse,
    SerializeRequest,
    TestCasesRunRequest,
)
from tpn_notes.core.evaluator.api import ApiSurface, build_base_api
from tpn_notes.core.evaluator.extensions import ExtensionError, merge_extensions
from tpn_notes.core.evaluator.renderer import render_document, render_preview_page
from tpn_notes.core.notes.codec import parse_notes, serialize_segments
from tpn_notes.core.notes.test_runner import run_test_cases, summary_dict
from tpn_notes.core.params.dependencies import expand_dependencies, extract_direct, is_derived
from tpn_notes.core.params.store import ParameterStore

router = APIRouter(prefix="/api/v1/notes", tags=["notes"])


def _surface(ctx: EvaluationContext) -> Tuple[ParameterStore, ApiSurface, List[str], List[str]]:
    store = ParameterStore()
    ignored = list(store.set_values(ctx.values))
    conflicts: List[str] = []
    api = build_base_api(store, ctx.preferences)
    if ctx.custom_functions:
        try:
            api = merge_extensions(
                api,
                ctx.custom_functions,
                allow_override=ctx.allow_override,
                on_conflict=conflicts.append,
            )
        except ExtensionError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return store, api, ignored, conflicts


@router.post("/parse", response_model=SegmentsResponse)
def parse(req: ParseRequest):
    return {"segments": parse_notes(req.lines)}


@router.post("/serialize")
def serialize(req: SerializeRequest):
    return {"lines": [line.model_dump(by_alias=True) for line in serialize_segments(req.segments)]}


@router.post("/dependencies", response_model=DependenciesResponse)
def dependencies(req: DependenciesRequest):
    sources = [req.code] if req.code is not None else [s.content for s in req.segments if s.is_dynamic]
    direct = set()
    for code in sources:
        direct |= extract_direct(code)
    transitive = expand_dependencies(direct)
    return {
        "direct": sorted(direct),
        "transitive": sorted(transitive),
        "required_inputs": sorted(k for k in transitive if not is_derived(k)),
    }


@router.post("/render", response_model=RenderResponse)
def render(req: RenderRequest):
    segments = req.segments if req.segments or req.lines is None else parse_notes(req.lines)
    store, api, ignored, conflicts = _surface(req)
    body = render_document(segments, store, bindings=req.bindings, api=api)
    return {
        "html": body,
        "segment_count": len(segments),
        "ignored_keys": ignored,
        "conflicts": conflicts,
    }


@router.post("/render/page", response_class=HTMLResponse)
def render_page(req: RenderRequest):
    segments = req.segments if req.segments or req.lines is None else parse_notes(req.lines)
    store, api, _, _ = _surface(req)
    return render_preview_page(segments, store, title=req.title, bindings=req.bindings, api=api)


@router.post("/test-cases/run")
def run_segment_test_cases(req: TestCasesRunRequest):
    if not req.segment.is_dynamic:
        raise HTTPException(status_code=400, detail="Test cases apply to dynamic segments only")
    cases = req.segment.test_cases
    if req.names is not None:
        cases = [tc for tc in cases if tc.name in set(req.names)]
        missing = sorted(set(req.names) - {tc.name for tc in cases})
        if missing:
            raise HTTPException(status_code=404, detail=f"Unknown test cases: {', '.join(missing)}")
    store, api, _, _ = _surface(req)
    summary = run_test_cases(req.segment, store, test_cases=cases, api=api)
    return summary_dict(summary)
