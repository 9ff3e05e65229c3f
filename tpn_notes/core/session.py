"""
Editing sessions: one parameter store, segment list and validation log per
session. Sessions share only the read-only dependency and reference range
tables.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from tpn_notes.core.collaborators import DecisionPrompt, IdentityProvider, StaticDecision
from tpn_notes.core.evaluator.api import ApiSurface, build_base_api
from tpn_notes.core.evaluator.extensions import CustomFunction, merge_extensions
from tpn_notes.core.evaluator.renderer import render_document
from tpn_notes.core.notes.models import Segment
from tpn_notes.core.params.dependencies import required_inputs
from tpn_notes.core.params.formulas import get_value
from tpn_notes.core.params.store import ParameterStore
from tpn_notes.core.validation.history import ValidationLog
from tpn_notes.core.validation.interactive import ValueChangeHandler, ValueChangeOutcome
from tpn_notes.core.validation.range_loader import RangeEntry, load_reference_ranges
from tpn_notes.settings import load_settings

_log = logging.getLogger("tpn.session")


class SessionNotFound(KeyError):
    pass


class TestCaseNotFound(LookupError):
    __test__ = False


class EditingSession:
    def __init__(
        self,
        session_id: str,
        *,
        segments: Optional[Sequence[Segment]] = None,
        values: Optional[Mapping[str, Any]] = None,
        preferences: Optional[Mapping[str, Any]] = None,
        custom_functions: Sequence[CustomFunction] = (),
        ranges: Optional[Mapping[str, RangeEntry]] = None,
        identity: Optional[IdentityProvider] = None,
    ):
        self.id = session_id
        self.created_at = time.time()
        self.segments: List[Segment] = list(segments or [])
        self.store = ParameterStore(values)
        self.preferences: Dict[str, Any] = dict(preferences or {})
        self.custom_functions: List[CustomFunction] = list(custom_functions)
        self.ranges = ranges if ranges is not None else load_reference_ranges()
        self.identity = identity
        self.log = ValidationLog()
        self.warnings: set = set()
        self.active_test_cases: Dict[int, str] = {}

    def api(self) -> ApiSurface:
        base = build_base_api(self.store, self.preferences)
        if not self.custom_functions:
            return base
        return merge_extensions(base, self.custom_functions)

    def replace_segments(self, segments: Sequence[Segment]) -> None:
        self.segments = list(segments)
        self.active_test_cases.clear()

    def set_values(self, values: Mapping[str, Any]) -> List[str]:
        return list(self.store.set_values(values))

    def get_value(self, key: str) -> Any:
        return get_value(self.store, key)

    def required_inputs(self) -> List[str]:
        keys: List[str] = []
        for segment in self.segments:
            if segment.is_dynamic:
                keys.extend(k for k in required_inputs(segment.content) if k not in keys)
        return keys

    def load_test_case(self, segment_id: int, name: str) -> Dict[str, Any]:
        """Copy a named test case's variables into the store."""
        for segment in self.segments:
            if segment.id != segment_id:
                continue
            tc = segment.find_test_case(name)
            if tc is None:
                break
            self.store.set_values(tc.variables)
            self.active_test_cases[segment_id] = name
            _log.debug("Session %s loaded test case %r for segment %s", self.id, name, segment_id)
            return dict(tc.variables)
        raise TestCaseNotFound(f"Segment {segment_id} has no test case {name!r}")

    def change_value(
        self,
        key: str,
        entered: Any,
        prompt: Optional[DecisionPrompt] = None,
        *,
        old: Any = None,
        identity: Optional[IdentityProvider] = None,
    ) -> ValueChangeOutcome:
        """Run the range state machine and store the accepted value."""
        previous = self.store.get_stored(key) if old is None else old
        handler = ValueChangeHandler(
            self.ranges,
            prompt or StaticDecision(confirm=False),
            self.log,
            identity=identity or self.identity,
            session_id=self.id,
            warnings=self.warnings,
        )
        outcome = handler.handle(key, previous, entered)
        if outcome.accepted_value is None:
            self.store.remove(outcome.key)
        else:
            self.store.set_value(outcome.key, outcome.accepted_value)
        return outcome

    def render(self, *, use_test_cases: bool = False) -> str:
        bindings: Dict[int, Mapping[str, Any]] = {}
        if use_test_cases:
            for segment in self.segments:
                name = self.active_test_cases.get(segment.id)
                tc = segment.find_test_case(name) if name else None
                if tc is not None:
                    bindings[segment.id] = tc.variables
        return render_document(self.segments, self.store, bindings=bindings, api=self.api())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "segments": [s.model_dump(by_alias=False) for s in self.segments],
            "values": self.store.snapshot(),
            "preferences": dict(self.preferences),
            "custom_functions": [f.model_dump() for f in self.custom_functions],
            "warnings": sorted(self.warnings),
            "validation_event_count": len(self.log),
        }


class SessionRegistry:
    """
    In-memory sessions. Sessions idle longer than ``idle_seconds`` are dropped,
    and creating a session beyond ``max_sessions`` evicts the least recently
    used one.
    """

    def __init__(
        self,
        ranges: Optional[Mapping[str, RangeEntry]] = None,
        *,
        max_sessions: Optional[int] = None,
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        settings = load_settings()
        self._sessions: Dict[str, EditingSession] = {}
        self._last_access: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._ranges = ranges
        self.max_sessions = max_sessions if max_sessions is not None else settings.session_max
        self.idle_seconds = idle_seconds if idle_seconds is not None else settings.session_idle_seconds
        self._clock = clock

    def _range_table(self) -> Mapping[str, RangeEntry]:
        if self._ranges is None:
            self._ranges = load_reference_ranges()
        return self._ranges

    def _drop(self, session_id: str, reason: str) -> None:
        self._sessions.pop(session_id, None)
        self._last_access.pop(session_id, None)
        _log.info("Evicted session %s (%s)", session_id, reason)

    def _prune(self, now: float) -> None:
        # caller holds the lock
        cutoff = now - self.idle_seconds
        for session_id in [sid for sid, seen in self._last_access.items() if seen < cutoff]:
            self._drop(session_id, "idle")
        while self._sessions and len(self._sessions) >= self.max_sessions:
            oldest = min(self._last_access, key=self._last_access.__getitem__)
            self._drop(oldest, "capacity")

    def create(self, **kwargs: Any) -> EditingSession:
        kwargs.setdefault("ranges", self._range_table())
        session = EditingSession(uuid.uuid4().hex, **kwargs)
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._sessions[session.id] = session
            self._last_access[session.id] = now
        _log.info("Created session %s", session.id)
        return session

    def get(self, session_id: str) -> EditingSession:
        with self._lock:
            now = self._clock()
            session = self._sessions.get(session_id)
            if session is not None and now - self._last_access[session_id] > self.idle_seconds:
                self._drop(session_id, "idle")
                session = None
            if session is not None:
                self._last_access[session_id] = now
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def delete(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is None:
                raise SessionNotFound(session_id)
            self._last_access.pop(session_id, None)
        _log.info("Deleted session %s", session_id)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
            self._last_access.clear()

    def __len__(self) -> int:
        return len(self._sessions)
