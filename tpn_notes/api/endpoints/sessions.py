from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request

from tpn_notes.api import deps
from tpn_notes.api.schemas.sessions import (
    SessionCreateRequest,
    SessionRenderRequest,
    TestCaseLoadRequest,
    ValueChangeRequest,
    ValueChangeResponse,
    ValuesUpdateRequest,
)
from tpn_notes.core.collaborators import DocumentNotFound, StaticDecision
from tpn_notes.core.evaluator.extensions import ExtensionError
from tpn_notes.core.notes.codec import parse_notes
from tpn_notes.core.notes.models import Segment
from tpn_notes.core.params.keys import canonicalize, default_input_values
from tpn_notes.core.session import EditingSession, SessionNotFound, TestCaseNotFound

router = APIRouter(prefix="/api/v1/sessions", tags=["sessions"])


def _get(session_id: str) -> EditingSession:
    try:
        return deps.sessions.get(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")


def _initial_segments(req: SessionCreateRequest) -> List[Segment]:
    if req.document_id:
        try:
            segments, _ = deps.documents.load(req.document_id)
        except DocumentNotFound:
            raise HTTPException(status_code=404, detail="Document not found")
        return segments
    if req.segments is not None:
        return list(req.segments)
    return parse_notes(req.lines or [])


@router.post("", status_code=201)
def create_session(req: SessionCreateRequest, request: Request):
    segments = _initial_segments(req)
    values = {**default_input_values(), **req.values} if req.use_defaults else req.values
    session = deps.sessions.create(
        segments=segments,
        values=values,
        preferences=req.preferences,
        custom_functions=req.custom_functions,
        identity=deps.identity_of(request),
    )
    try:
        session.api()
    except ExtensionError as e:
        deps.sessions.delete(session.id)
        raise HTTPException(status_code=400, detail=str(e))
    body = session.to_dict()
    body["required_inputs"] = session.required_inputs()
    return body


@router.get("/{session_id}")
def get_session(session_id: str):
    return _get(session_id).to_dict()


@router.delete("/{session_id}", status_code=204)
def delete_session(session_id: str):
    try:
        deps.sessions.delete(session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")


@router.put("/{session_id}/values")
def update_values(session_id: str, req: ValuesUpdateRequest):
    session = _get(session_id)
    ignored = session.set_values(req.values)
    return {"values": session.store.snapshot(), "ignored_keys": ignored}


@router.get("/{session_id}/values/{key}")
def get_value(session_id: str, key: str):
    session = _get(session_id)
    ck = canonicalize(key)
    return {"key": ck, "value": session.get_value(ck), "stored": session.store.has(ck)}


@router.post("/{session_id}/test-cases/load")
def load_test_case(session_id: str, req: TestCaseLoadRequest):
    session = _get(session_id)
    try:
        variables = session.load_test_case(req.segment_id, req.name)
    except TestCaseNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"loaded": variables, "values": session.store.snapshot()}


@router.post("/{session_id}/value-change", response_model=ValueChangeResponse)
def value_change(session_id: str, req: ValueChangeRequest, request: Request):
    """
    Gate one entered value through the reference range state machine.
    ``confirm`` answers the firm-severity prompt; it defaults to declined.
    """
    session = _get(session_id)
    prompt = StaticDecision(confirm=req.confirm)
    outcome = session.change_value(
        req.key,
        req.value,
        prompt,
        old=req.old_value,
        identity=deps.identity_of(request),
    )
    return {
        "key": outcome.key,
        "old_value": outcome.old_value,
        "entered_value": outcome.entered_value,
        "accepted_value": outcome.accepted_value,
        "user_action": outcome.user_action.value,
        "warning": outcome.warning,
        "severity": outcome.result.severity.value,
        "status": outcome.result.status,
        "threshold": outcome.result.threshold,
        "threshold_name": outcome.result.threshold_name,
        "message": outcome.result.message,
        "alerts": prompt.alerts,
        "confirmations": prompt.confirmations,
    }


@router.get("/{session_id}/validation-events")
def list_validation_events(session_id: str, key: Optional[str] = None):
    session = _get(session_id)
    events = session.log.events(key=canonicalize(key) if key else None)
    return {"events": [e.to_dict() for e in events], "count": len(events)}


@router.delete("/{session_id}/validation-events")
def clear_validation_events(session_id: str):
    session = _get(session_id)
    return {"cleared": session.log.clear()}


@router.post("/{session_id}/render")
def render_session(session_id: str, req: Optional[SessionRenderRequest] = None):
    session = _get(session_id)
    use_test_cases = bool(req and req.use_test_cases)
    return {"html": session.render(use_test_cases=use_test_cases), "segment_count": len(session.segments)}
