"""
Template Evaluator: turns parsed segments into HTML.

Static segments are sanitised; dynamic segments run in the sandbox against
an ApiSurface bound to the (possibly test-bound) parameter store. Failures
are contained per segment and rendered as an inline error marker, so one
broken segment never blanks the rest of the note.
"""
from __future__ import annotations

import html
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from tpn_notes.core.notes.models import Segment
from tpn_notes.core.notes.sanitize import newlines_to_breaks, sanitize_html
from tpn_notes.core.observability.metrics import inc_render
from tpn_notes.core.params.store import ParameterStore
from tpn_notes.core.sandbox import (
    CompiledCache,
    ExecutionLimits,
    ExecutionTimeout,
    SandboxError,
    compile_source,
    display_string,
    execute,
)

from .api import ApiSurface, build_base_api
from .extensions import DEFAULT_CACHE, default_limits, merge_extensions

_log = logging.getLogger("tpn.render")

TEMPLATES_DIR = Path(__file__).resolve().parents[2] / "templates"

SEGMENT_SEPARATOR = "<br>"


def error_marker(exc: BaseException) -> str:
    kind = getattr(exc, "kind", None) or type(exc).__name__
    message = getattr(exc, "message", None) or str(exc) or kind
    return (
        f'<span class="tpn-error" data-error="{html.escape(kind)}">'
        f"[Error: {html.escape(message)}]</span>"
    )


def evaluate_code(
    code: str,
    api: ApiSurface,
    *,
    limits: Optional[ExecutionLimits] = None,
    cache: Optional[CompiledCache] = None,
) -> Any:
    """Compile (cached) and run ``code`` with ``api`` bound as ``api`` and ``me``."""
    program = compile_source(code, DEFAULT_CACHE if cache is None else cache)
    return execute(program, {"api": api, "me": api}, limits or default_limits())


def surface_for(
    store: ParameterStore,
    api: Optional[ApiSurface] = None,
    preferences: Optional[Mapping[str, Any]] = None,
) -> ApiSurface:
    """An API surface reading ``store``, carrying over ``api``'s preferences and extensions."""
    if api is None:
        return build_base_api(store, preferences)
    if api.store is store:
        return api
    base = build_base_api(store, api.preferences)
    if not api.extensions:
        return base
    return merge_extensions(base, api.extensions, allow_override=api.allow_override)


def render_segment(
    segment: Segment,
    store: ParameterStore,
    *,
    bindings: Optional[Mapping[str, Any]] = None,
    api: Optional[ApiSurface] = None,
    preferences: Optional[Mapping[str, Any]] = None,
    limits: Optional[ExecutionLimits] = None,
) -> str:
    if not segment.is_dynamic:
        inc_render("static", "ok")
        return newlines_to_breaks(sanitize_html(segment.content))

    effective = store.with_overrides(bindings) if bindings else store
    try:
        surface = surface_for(effective, api, preferences)
        text = display_string(evaluate_code(segment.content, surface, limits=limits))
    except SandboxError as exc:
        _log.info("Segment %s failed: %s", segment.id, exc)
        inc_render("dynamic", "timeout" if isinstance(exc, ExecutionTimeout) else "error")
        return error_marker(exc)
    except Exception as exc:
        _log.exception("Unexpected failure rendering segment %s", segment.id)
        inc_render("dynamic", "error")
        return error_marker(exc)

    inc_render("dynamic", "ok")
    return newlines_to_breaks(sanitize_html(text))


def render_document(
    segments: Iterable[Segment],
    store: ParameterStore,
    *,
    bindings: Optional[Mapping[int, Mapping[str, Any]]] = None,
    api: Optional[ApiSurface] = None,
    preferences: Optional[Mapping[str, Any]] = None,
    limits: Optional[ExecutionLimits] = None,
) -> str:
    """
    Render every segment in order and join the fragments with ``<br>``.
    ``bindings`` maps a segment id to the test-case variables active for it.
    """
    if api is None:
        api = build_base_api(store, preferences)
    fragments = []
    for segment in segments:
        seg_bindings = (bindings or {}).get(segment.id)
        fragments.append(
            render_segment(segment, store, bindings=seg_bindings, api=api, limits=limits)
        )
    return SEGMENT_SEPARATOR.join(fragments)


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html", "j2")),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_preview_page(
    segments: Iterable[Segment],
    store: ParameterStore,
    *,
    title: str = "Note preview",
    **kwargs: Any,
) -> str:
    """Standalone HTML page around ``render_document`` output."""
    segments = list(segments)
    body = render_document(segments, store, **kwargs)
    template = _environment().get_template("preview.html.j2")
    return template.render(
        title=title,
        body=body,
        segment_count=len(segments),
        dynamic_count=sum(1 for s in segments if s.is_dynamic),
    )
