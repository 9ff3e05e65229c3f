from __future__ import annotations

from collections import Counter
from typing import Dict

from prometheus_client import Counter as PromCounter

# Named counters (in-process, test friendly)
_NAMED = Counter()

SEGMENT_RENDERS_TOTAL = PromCounter(
    "tpn_segment_renders_total",
    "Rendered note segments",
    ["kind", "outcome"],
)

VALIDATIONS_TOTAL = PromCounter(
    "tpn_validations_total",
    "Reference range classifications",
    ["severity"],
)


def reset_metrics() -> None:
    """
    Test helper: clears the in-process counters to avoid cross-test leakage.
    Prometheus collectors are process-global and are left alone.
    """
    _NAMED.clear()


def inc_render(kind: str, outcome: str) -> None:
    _NAMED[f"render_{kind}_{outcome}"] += 1
    SEGMENT_RENDERS_TOTAL.labels(kind=kind, outcome=outcome).inc()


def inc_validation(severity: str) -> None:
    _NAMED[f"validation_{severity}"] += 1
    VALIDATIONS_TOTAL.labels(severity=severity).inc()


def inc_named(name: str, value: int = 1) -> None:
    if not name:
        return
    _NAMED[name] += int(value)


def snapshot_named() -> Dict[str, int]:
    return dict(_NAMED)
