"""
Three-tier reference range classification.

Feasible bounds are blocking (hard), Critical bounds need confirmation
(firm), Normal bounds only warn (soft). Results are always returned, never
raised.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from tpn_notes.core.sandbox.values import number_to_string, to_number

from .models import THRESHOLD_NAMES, THRESHOLD_ORDER, VALID_RESULT, RangeChecker, ValidationResult

ThresholdInput = Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]

_NAME_INDEX = {name.lower(): name for name in THRESHOLD_NAMES}


def _threshold_name(raw: Any) -> Optional[str]:
    text = str(raw or "").strip().replace(" ", "_").lower()
    return _NAME_INDEX.get(text)


def _as_bound(raw: Any) -> Optional[float]:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(value) else value


def _entries(thresholds: Optional[ThresholdInput]) -> Iterable[tuple]:
    if not thresholds:
        return []
    if isinstance(thresholds, Mapping):
        return list(thresholds.items())
    return [(item.get("THRESHOLD"), item.get("VALUE")) for item in thresholds if isinstance(item, Mapping)]


def create_checker(thresholds: Optional[ThresholdInput]) -> RangeChecker:
    """
    Build a checker from ``[{"THRESHOLD": "Critical High", "VALUE": 800}, ...]``
    or ``{"Critical_High": 800}``. Unknown names and non-numeric values are
    ignored; an empty list never reports a violation.
    """
    bounds: Dict[str, float] = {}
    for raw_name, raw_value in _entries(thresholds):
        name = _threshold_name(raw_name)
        value = _as_bound(raw_value)
        if name is None or value is None:
            continue
        bounds[name.lower()] = value
    return RangeChecker(constraints=len(bounds), **bounds)


def _fmt(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return number_to_string(value)
    return str(value)


def check_value(value: Any, checker: RangeChecker, *, key: str = "", uom: str = "") -> ValidationResult:
    if value is None or (isinstance(value, str) and not value.strip()):
        return VALID_RESULT
    numeric = to_number(value)
    if not isinstance(numeric, (int, float)) or math.isnan(numeric):
        return VALID_RESULT

    for name, direction, severity in THRESHOLD_ORDER:
        bound = checker.bound(name)
        if bound is None:
            continue
        violated = numeric < bound if direction == "below" else numeric > bound
        if not violated:
            continue
        unit = f" {uom}" if uom else ""
        message = (
            f"The value of {_fmt(numeric)}{unit} is {direction} the "
            f"{name.replace('_', ' ')} of {_fmt(bound)}{unit}"
        )
        return ValidationResult(
            status=severity.value,
            severity=severity,
            message=message,
            threshold=bound,
            threshold_name=name,
        )
    return VALID_RESULT
