from .history import ValidationLog
from .interactive import ValueChangeHandler, ValueChangeOutcome
from .models import RangeChecker, Severity, UserAction, ValidationEvent, ValidationResult
from .range_loader import RangeEntry, load_reference_ranges, lookup
from .ranges import check_value, create_checker

__all__ = [
    "RangeChecker",
    "RangeEntry",
    "Severity",
    "UserAction",
    "ValidationEvent",
    "ValidationLog",
    "ValidationResult",
    "ValueChangeHandler",
    "ValueChangeOutcome",
    "check_value",
    "create_checker",
    "load_reference_ranges",
    "lookup",
]
