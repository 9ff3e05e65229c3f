from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class Severity(str, Enum):
    HARD = "hard"
    FIRM = "firm"
    SOFT = "soft"
    VALID = "valid"


class UserAction(str, Enum):
    ACCEPTED = "accepted"
    REVERTED = "reverted"
    CONFIRMED = "confirmed"
    CONTINUED = "continued"


# Evaluation order; the first violated threshold wins.
THRESHOLD_ORDER: Tuple[Tuple[str, str, Severity], ...] = (
    ("Feasible_Low", "below", Severity.HARD),
    ("Feasible_High", "above", Severity.HARD),
    ("Critical_Low", "below", Severity.FIRM),
    ("Critical_High", "above", Severity.FIRM),
    ("Normal_Low", "below", Severity.SOFT),
    ("Normal_High", "above", Severity.SOFT),
)

THRESHOLD_NAMES: Tuple[str, ...] = tuple(name for name, _, _ in THRESHOLD_ORDER)


@dataclass(frozen=True)
class RangeChecker:
    feasible_low: Optional[float] = None
    feasible_high: Optional[float] = None
    critical_low: Optional[float] = None
    critical_high: Optional[float] = None
    normal_low: Optional[float] = None
    normal_high: Optional[float] = None
    constraints: int = 0

    def bound(self, threshold: str) -> Optional[float]:
        return getattr(self, threshold.lower())

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {name: self.bound(name) for name in THRESHOLD_NAMES}
        out["constraints"] = self.constraints
        return out


@dataclass(frozen=True)
class ValidationResult:
    status: str
    severity: Severity
    message: str = ""
    threshold: Optional[float] = None
    threshold_name: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.severity == Severity.VALID


VALID_RESULT = ValidationResult(status="valid", severity=Severity.VALID)


@dataclass(frozen=True)
class ValidationEvent:
    timestamp: float
    key: str
    old_value: Any
    entered_value: Any
    accepted_value: Any
    severity: Severity
    threshold: Optional[float]
    message: str
    user_action: UserAction
    actor: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "key": self.key,
            "oldValue": self.old_value,
            "enteredValue": self.entered_value,
            "acceptedValue": self.accepted_value,
            "severity": self.severity.value,
            "threshold": self.threshold,
            "message": self.message,
            "userAction": self.user_action.value,
            "actor": self.actor,
        }
