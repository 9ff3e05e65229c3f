from __future__ import annotations

import hashlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

from . import nodes as n
from .builtins import global_scope
from .errors import SandboxSyntaxError
from .interpreter import ExecutionLimits, Interpreter
from .lexer import tokenize
from .parser import parse

_log = logging.getLogger("tpn.sandbox")


@dataclass
class CacheEntry:
    created_at: float
    program: n.Program


class CompiledCache:
    """Parsed programs keyed by a content hash; oldest entry is evicted first."""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._store: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _evict_if_needed(self) -> None:
        while len(self._store) > self.max_entries:
            oldest_key = min(self._store.items(), key=lambda kv: kv[1].created_at)[0]
            self._store.pop(oldest_key, None)

    def get(self, key: str) -> Optional[n.Program]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self.misses += 1
                return None
            self.hits += 1
            return entry.program

    def set(self, key: str, program: n.Program) -> None:
        with self._lock:
            self._store[key] = CacheEntry(created_at=time.monotonic(), program=program)
            self._evict_if_needed()

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._store)

    def stats(self) -> Dict[str, int]:
        return {"entries": len(self._store), "hits": self.hits, "misses": self.misses}


def make_cache_key(source: str, params: Sequence[str] = (), kind: str = "segment") -> str:
    raw = "\x00".join([kind, ",".join(params), source]).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


def _has_return(code: str) -> bool:
    try:
        tokens = tokenize(code)
    except SandboxSyntaxError:
        return True
    return any(tok.type == "keyword" and tok.value == "return" for tok in tokens)


def prepare_source(code: str) -> n.Program:
    """
    Parse segment code. Code without a ``return`` statement is first tried as
    a single returned expression; if that does not parse, the raw source is
    used. The word inside string literals or comments does not count.
    """
    if not _has_return(code):
        try:
            return parse(f"return (\n{code}\n);")
        except SandboxSyntaxError:
            _log.debug("Expression wrap did not parse; running code as statements")
    return parse(code)


def compile_source(code: str, cache: Optional[CompiledCache] = None) -> n.Program:
    if cache is None:
        return prepare_source(code)
    key = make_cache_key(code)
    program = cache.get(key)
    if program is None:
        program = prepare_source(code)
        cache.set(key, program)
    return program


def execute(
    program: n.Program,
    globals_: Mapping[str, Any],
    limits: Optional[ExecutionLimits] = None,
    locals_: Optional[Mapping[str, Any]] = None,
) -> Any:
    """
    Run ``program`` with the pure globals plus ``globals_`` (e.g. api/me).
    ``locals_`` are ordinary mutable variables of the program scope.
    """
    scope = global_scope()
    scope.update(globals_)
    return Interpreter(scope, limits).run(program, locals_)
