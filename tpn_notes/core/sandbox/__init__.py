from .compiler import CompiledCache, compile_source, execute, make_cache_key, prepare_source
from .errors import (
    ExecutionTimeout,
    SandboxError,
    SandboxRangeError,
    SandboxReferenceError,
    SandboxSyntaxError,
    SandboxTypeError,
)
from .interpreter import ExecutionLimits, SandboxFunction
from .parser import parse
from .values import UNDEFINED, NamespaceObject, SandboxObject, display_string

__all__ = [
    "CompiledCache",
    "ExecutionLimits",
    "ExecutionTimeout",
    "NamespaceObject",
    "SandboxError",
    "SandboxFunction",
    "SandboxObject",
    "SandboxRangeError",
    "SandboxReferenceError",
    "SandboxSyntaxError",
    "SandboxTypeError",
    "UNDEFINED",
    "compile_source",
    "display_string",
    "execute",
    "make_cache_key",
    "parse",
    "prepare_source",
]
