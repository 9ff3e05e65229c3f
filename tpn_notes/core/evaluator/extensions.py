"""
User-defined functions layered onto the API surface.

Each CustomFunction is validated, compiled once through the process-wide
CompiledCache and exposed as a callable entry. Name collisions with the base
surface keep the base entry unless the caller opts into overrides; every
collision is reported to ``on_conflict``.
"""
from __future__ import annotations

import logging
import re
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from tpn_notes.core.sandbox import (
    CompiledCache,
    ExecutionLimits,
    ExecutionTimeout,
    UNDEFINED,
    SandboxSyntaxError,
    execute,
    make_cache_key,
    prepare_source,
)
from tpn_notes.core.sandbox.lexer import KEYWORDS
from tpn_notes.core.sandbox.nodes import Program
from tpn_notes.settings import load_settings

from .api import ApiSurface

_log = logging.getLogger("tpn.sandbox")

MAX_SOURCE_BYTES = 10 * 1024
MAX_EXTENSION_NESTING = 8

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")

DEFAULT_CACHE = CompiledCache(max_entries=load_settings().extension_cache_size)

_nesting = threading.local()


def default_limits() -> ExecutionLimits:
    settings = load_settings()
    return ExecutionLimits(
        max_steps=settings.eval_max_steps,
        timeout_seconds=settings.eval_timeout_seconds,
    )


class ExtensionError(ValueError):
    pass


class CustomFunction(BaseModel):
    name: str
    parameters: List[str] = Field(default_factory=list)
    code: str
    description: str = ""


def validate_custom_function(fn: CustomFunction) -> None:
    if not _IDENTIFIER_RE.match(fn.name or ""):
        raise ExtensionError(f"Invalid function name {fn.name!r}")
    if fn.name in KEYWORDS:
        raise ExtensionError(f"Function name {fn.name!r} is a reserved word")
    if fn.name.startswith("_"):
        raise ExtensionError(f"Function name {fn.name!r} may not start with '_'")
    for param in fn.parameters:
        if not _IDENTIFIER_RE.match(param or "") or param in KEYWORDS:
            raise ExtensionError(f"Invalid parameter name {param!r} in {fn.name}")
    if len(set(fn.parameters)) != len(fn.parameters):
        raise ExtensionError(f"Duplicate parameter names in {fn.name}")
    if len(fn.code.encode("utf-8")) > MAX_SOURCE_BYTES:
        raise ExtensionError(f"Source of {fn.name} exceeds {MAX_SOURCE_BYTES} bytes")


def compile_custom_function(fn: CustomFunction, cache: Optional[CompiledCache] = None) -> Program:
    """Validate and parse ``fn``; repeated sources are served from the cache."""
    validate_custom_function(fn)
    cache = DEFAULT_CACHE if cache is None else cache
    key = make_cache_key(fn.code, fn.parameters, kind="extension")
    program = cache.get(key)
    if program is not None:
        return program
    try:
        program = prepare_source(fn.code)
    except SandboxSyntaxError as exc:
        raise ExtensionError(f"{fn.name}: {exc}") from exc
    cache.set(key, program)
    return program


class ExtensionFunction:
    """Host-callable wrapper that runs a compiled custom function."""

    def __init__(self, definition: CustomFunction, program: Program, limits: Optional[ExecutionLimits] = None):
        self.definition = definition
        self.program = program
        self.limits = limits
        self.api: Optional[ApiSurface] = None

    @property
    def name(self) -> str:
        return self.definition.name

    def __call__(self, *args: Any) -> Any:
        depth = getattr(_nesting, "depth", 0)
        if depth >= MAX_EXTENSION_NESTING:
            raise ExecutionTimeout("Maximum call stack size exceeded")
        params: Dict[str, Any] = {}
        for i, param in enumerate(self.definition.parameters):
            params[param] = args[i] if i < len(args) else UNDEFINED
        _nesting.depth = depth + 1
        try:
            limits = self.limits or default_limits()
            return execute(self.program, {"api": self.api, "me": self.api}, limits, params)
        finally:
            _nesting.depth = depth

    def __repr__(self) -> str:
        return f"<ExtensionFunction {self.name}({', '.join(self.definition.parameters)})>"


def merge_extensions(
    base_api: ApiSurface,
    custom_functions: Iterable[CustomFunction],
    *,
    allow_override: bool = False,
    on_conflict: Optional[Callable[[str], None]] = None,
    cache: Optional[CompiledCache] = None,
    limits: Optional[ExecutionLimits] = None,
) -> ApiSurface:
    """
    New surface with ``custom_functions`` added to ``base_api``.

    Raises ExtensionError for an invalid function; the base surface is never
    modified.
    """
    limits = limits or default_limits()
    entries: Dict[str, Any] = dict(base_api)
    definitions = list(custom_functions)
    added: List[ExtensionFunction] = []

    for definition in definitions:
        program = compile_custom_function(definition, cache)
        if definition.name in entries:
            _log.info("Custom function %s collides with an existing API entry", definition.name)
            if on_conflict is not None:
                on_conflict(definition.name)
            if not allow_override:
                continue
        fn = ExtensionFunction(definition, program, limits)
        entries[definition.name] = fn
        added.append(fn)

    surface = ApiSurface(
        entries,
        store=base_api.store,
        preferences=base_api.preferences,
        extensions=tuple(base_api.extensions) + tuple(definitions),
        allow_override=allow_override or base_api.allow_override,
    )
    for fn in added:
        fn.api = surface
    return surface
