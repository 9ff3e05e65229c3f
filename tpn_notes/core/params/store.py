from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from .dependencies import is_derived
from .keys import canonicalize

_log = logging.getLogger("tpn.params")


class ParameterStore:
    """
    Canonicalised input values for one editing session.

    Derived keys are never stored: formulas compute them on every read.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        if values:
            self.set_values(values)

    def set_value(self, key: str, value: Any) -> bool:
        ck = canonicalize(key)
        if not ck:
            return False
        if is_derived(ck):
            _log.debug("Ignoring write to derived parameter %s", ck)
            return False
        self._values[ck] = value
        return True

    def set_values(self, values: Mapping[str, Any]) -> Tuple[str, ...]:
        """Merge inputs; returns the derived keys that were ignored."""
        ignored = []
        for key, value in values.items():
            if not self.set_value(key, value):
                ignored.append(canonicalize(key))
        return tuple(ignored)

    def remove(self, key: str) -> None:
        self._values.pop(canonicalize(key), None)

    def clear(self) -> None:
        self._values.clear()

    def has(self, key: str) -> bool:
        return canonicalize(key) in self._values

    def get_stored(self, key: str, default: Any = None) -> Any:
        return self._values.get(canonicalize(key), default)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)

    def with_overrides(self, bindings: Optional[Mapping[str, Any]]) -> "ParameterStore":
        """Copy of this store with ``bindings`` layered on top (this store is untouched)."""
        clone = ParameterStore()
        clone._values = dict(self._values)
        if bindings:
            clone.set_values(bindings)
        return clone

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"ParameterStore({self._values!r})"
