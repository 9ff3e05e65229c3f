from __future__ import annotations

import threading
from typing import Iterator, List, Optional

from .models import Severity, ValidationEvent


class ValidationLog:
    """Append-only per-session record of threshold violations; cleared only on request."""

    def __init__(self):
        self._events: List[ValidationEvent] = []
        self._lock = threading.Lock()

    def append(self, event: ValidationEvent) -> None:
        with self._lock:
            self._events.append(event)

    def events(self, key: Optional[str] = None, severity: Optional[Severity] = None) -> List[ValidationEvent]:
        with self._lock:
            out = list(self._events)
        if key is not None:
            out = [e for e in out if e.key == key]
        if severity is not None:
            out = [e for e in out if e.severity == severity]
        return out

    def recent(self, limit: int = 50) -> List[ValidationEvent]:
        """Newest first."""
        with self._lock:
            return list(reversed(self._events[-limit:])) if limit > 0 else []

    def clear(self) -> int:
        with self._lock:
            count = len(self._events)
            self._events.clear()
        return count

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[ValidationEvent]:
        return iter(self.events())
