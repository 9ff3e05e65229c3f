"""
Value-change state machine.

hard  -> alert, revert to the old value, clear the warning
firm  -> warn; a changed value needs confirmation (declined reverts)
soft  -> accept and keep the warning
valid -> accept and clear the warning
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from tpn_notes.core.collaborators import DecisionPrompt, IdentityProvider
from tpn_notes.core.observability.audit import audit_event
from tpn_notes.core.observability.metrics import inc_validation
from tpn_notes.core.params.keys import canonicalize
from tpn_notes.core.sandbox.values import number_to_string, to_number

from .history import ValidationLog
from .models import Severity, UserAction, ValidationEvent, ValidationResult
from .range_loader import RangeEntry, lookup
from .ranges import check_value

_log = logging.getLogger("tpn.validation")


@dataclass(frozen=True)
class ValueChangeOutcome:
    key: str
    old_value: Any
    entered_value: Any
    accepted_value: Any
    user_action: UserAction
    warning: bool
    result: ValidationResult
    event: Optional[ValidationEvent] = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "oldValue": self.old_value,
            "enteredValue": self.entered_value,
            "acceptedValue": self.accepted_value,
            "userAction": self.user_action.value,
            "warning": self.warning,
            "severity": self.result.severity.value,
            "status": self.result.status,
            "threshold": self.result.threshold,
            "thresholdName": self.result.threshold_name,
            "message": self.result.message,
        }


def round_to_precision(value: Any, precision: int) -> Any:
    """Half-up rounding to ``precision`` places; unparseable input becomes 0."""
    num = to_number(value)
    if not isinstance(num, (int, float)) or math.isnan(num):
        return 0
    if math.isinf(num):
        return num
    try:
        rounded = Decimal(repr(num)).quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return num
    return int(rounded) if rounded == rounded.to_integral_value() else float(rounded)


def _fmt(value: Any) -> str:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return number_to_string(value)
    return "" if value is None else str(value)


class ValueChangeHandler:
    def __init__(
        self,
        ranges: Mapping[str, RangeEntry],
        prompt: DecisionPrompt,
        log: Optional[ValidationLog] = None,
        *,
        identity: Optional[IdentityProvider] = None,
        session_id: Optional[str] = None,
        audit: bool = True,
        warnings: Optional[set] = None,
    ):
        self.ranges = ranges
        self.prompt = prompt
        self.log = log if log is not None else ValidationLog()
        self.identity = identity
        self.session_id = session_id
        self.audit = audit
        self.warnings: set = warnings if warnings is not None else set()

    def _actor(self) -> Optional[str]:
        if self.identity is None:
            return None
        return str(self.identity.current_user().get("id") or "") or None

    def handle(self, key: str, old_value: Any, entered_value: Any) -> ValueChangeOutcome:
        entry = lookup(self.ranges, key)
        ck = canonicalize(key)
        unit = f" {entry.uom}" if entry.uom else ""
        if entered_value is None or (isinstance(entered_value, str) and not entered_value.strip()):
            rounded = None
        else:
            rounded = round_to_precision(entered_value, entry.precision)
        result = check_value(rounded, entry.checker, key=ck, uom=entry.uom)

        accepted = rounded
        action = UserAction.ACCEPTED
        warning = False

        if result.severity == Severity.HARD:
            self.prompt.alert(
                f"{entry.display}:\n\n{result.message}\n\n"
                f"The value will be reset to {_fmt(old_value)}{unit}"
            )
            accepted = old_value
            action = UserAction.REVERTED
        elif result.severity == Severity.FIRM:
            warning = True
            if to_number(old_value) != rounded:
                confirmed = self.prompt.confirm(
                    f"{entry.display}:\n\n{result.message}\n\n"
                    f"OK: Continue with {_fmt(rounded)}{unit}\n"
                    f"Cancel: Revert to {_fmt(old_value)}{unit}"
                )
                if confirmed:
                    action = UserAction.CONFIRMED
                else:
                    accepted = old_value
                    action = UserAction.REVERTED
                    warning = False
        elif result.severity == Severity.SOFT:
            warning = True
            action = UserAction.CONTINUED

        if warning:
            self.warnings.add(ck)
        else:
            self.warnings.discard(ck)

        event = None
        if not result.is_valid:
            event = self._record(ck, old_value, entered_value, accepted, result, action)

        return ValueChangeOutcome(
            key=ck,
            old_value=old_value,
            entered_value=entered_value,
            accepted_value=accepted,
            user_action=action,
            warning=warning,
            result=result,
            event=event,
        )

    def _record(
        self,
        key: str,
        old_value: Any,
        entered_value: Any,
        accepted_value: Any,
        result: ValidationResult,
        action: UserAction,
    ) -> ValidationEvent:
        actor = self._actor()
        event = ValidationEvent(
            timestamp=time.time(),
            key=key,
            old_value=old_value,
            entered_value=entered_value,
            accepted_value=accepted_value,
            severity=result.severity,
            threshold=result.threshold,
            message=result.message,
            user_action=action,
            actor=actor,
        )
        self.log.append(event)
        inc_validation(result.severity.value)
        _log.info("%s %s on %s: %s", result.severity.value, action.value, key, result.message)
        if self.audit:
            audit_event("validation", actor, session_id=self.session_id, extra=event.to_dict())
        return event
