"""
Value model for sandboxed code.

Sandbox values are plain Python data: int/float for numbers, str, bool,
None for ``null``, the UNDEFINED sentinel, lists for arrays, dicts for
objects, plus SandboxObject instances that publish an explicit member
allow-list. Conversions follow the JavaScript rules the stored notes were
written against.
"""
from __future__ import annotations

import math
import re
from typing import Any, Callable, Dict, Optional

from .errors import SandboxRangeError

MAX_STRING_LENGTH = 1_000_000
MAX_ARRAY_LENGTH = 100_000


def checked_string(text: str) -> str:
    if len(text) > MAX_STRING_LENGTH:
        raise SandboxRangeError("Invalid string length")
    return text


def checked_array_growth(current: int, extra: int) -> None:
    if current + extra > MAX_ARRAY_LENGTH:
        raise SandboxRangeError("Invalid array length")


class _Undefined:
    _instance: Optional["_Undefined"] = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "undefined"


UNDEFINED = _Undefined()


class SandboxObject:
    """
    Host object reachable from dynamic code.

    Only names returned by ``sandbox_member`` exist; everything else reads as
    undefined. Subclasses never expose attributes starting with ``_``.
    """

    sandbox_type_name = "Object"

    def sandbox_member(self, name: str) -> Any:
        return UNDEFINED

    def sandbox_members(self) -> Dict[str, Any]:
        return {}


class NamespaceObject(SandboxObject):
    """Fixed mapping of member names to values (Math, console, JSON)."""

    def __init__(self, type_name: str, members: Dict[str, Any]):
        self.sandbox_type_name = type_name
        self._members = dict(members)

    def sandbox_member(self, name: str) -> Any:
        return self._members.get(name, UNDEFINED)

    def sandbox_members(self) -> Dict[str, Any]:
        return dict(self._members)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_callable_value(value: Any) -> bool:
    return callable(value) and not isinstance(value, type)


def _num_from_string(text: str) -> float:
    s = text.strip()
    if not s:
        return 0
    if s in ("Infinity", "+Infinity"):
        return math.inf
    if s == "-Infinity":
        return -math.inf
    if s.lower() in ("inf", "+inf", "-inf", "nan", "infinity", "-infinity"):
        return math.nan
    try:
        if s.lower().startswith(("0x", "-0x")):
            return int(s, 16)
        number = float(s.replace("_", "x"))  # JS does not accept separators
        return int(number) if number.is_integer() and "e" not in s.lower() and "." not in s else number
    except ValueError:
        return math.nan


def to_number(value: Any) -> Any:
    if isinstance(value, bool):
        return int(value)
    if is_number(value):
        return value
    if value is None:
        return 0
    if value is UNDEFINED:
        return math.nan
    if isinstance(value, str):
        return _num_from_string(value)
    if isinstance(value, list):
        if not value:
            return 0
        if len(value) == 1:
            return to_number(to_primitive_string(value[0]))
        return math.nan
    return math.nan


_EXP_RE = re.compile(r"e([+-])0*(\d+)")


def number_to_string(value: Any) -> str:
    if isinstance(value, int):
        return str(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    return _EXP_RE.sub(lambda m: "e" + m.group(1) + m.group(2), text)


def to_primitive_string(value: Any) -> str:
    """Array-element flavour of ToString: null/undefined become ''."""
    if value is None or value is UNDEFINED:
        return ""
    return to_js_string(value)


def to_js_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if value is UNDEFINED:
        return "undefined"
    if is_number(value):
        return number_to_string(value)
    if isinstance(value, list):
        return ",".join(to_primitive_string(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    if isinstance(value, SandboxObject):
        return f"[object {value.sandbox_type_name}]"
    if is_callable_value(value):
        return "function () { [native code] }"
    return "[object Object]"


def display_string(value: Any) -> str:
    """How an evaluated segment result is shown in the note."""
    if value is None or value is UNDEFINED:
        return ""
    return to_js_string(value)


def truthy(value: Any) -> bool:
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    return True


def type_of(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_callable_value(value) and not isinstance(value, SandboxObject):
        return "function"
    return "object"


def _category(value: Any) -> str:
    return type_of(value) if value is not None else "null"


def strict_equals(a: Any, b: Any) -> bool:
    ca, cb = _category(a), _category(b)
    if ca != cb:
        return False
    if ca in ("number", "string", "boolean"):
        return a == b
    if ca in ("undefined", "null"):
        return True
    return a is b


def loose_equals(a: Any, b: Any) -> bool:
    nullish = (None, UNDEFINED)
    if a in nullish or b in nullish:
        return (a in nullish) and (b in nullish)
    ca, cb = _category(a), _category(b)
    if ca == cb:
        return strict_equals(a, b)
    if ca == "boolean":
        return loose_equals(to_number(a), b)
    if cb == "boolean":
        return loose_equals(a, to_number(b))
    if {ca, cb} == {"number", "string"}:
        return to_number(a) == to_number(b)
    if ca == "object" and cb in ("number", "string"):
        return loose_equals(to_js_string(a), b)
    if cb == "object" and ca in ("number", "string"):
        return loose_equals(a, to_js_string(b))
    return False


def _to_primitive(value: Any) -> Any:
    if isinstance(value, (list, dict, SandboxObject)) or is_callable_value(value):
        return to_js_string(value)
    return value


def add(a: Any, b: Any) -> Any:
    pa, pb = _to_primitive(a), _to_primitive(b)
    if isinstance(pa, str) or isinstance(pb, str):
        return checked_string(to_js_string(pa) + to_js_string(pb))
    return to_number(pa) + to_number(pb)


def divide(a: Any, b: Any) -> Any:
    x, y = to_number(a), to_number(b)
    if y == 0:
        if x == 0 or math.isnan(x):
            return math.nan
        negative = (x < 0) != (math.copysign(1.0, y) < 0)
        return -math.inf if negative else math.inf
    result = x / y
    return int(result) if isinstance(result, float) and result.is_integer() and abs(result) < 2 ** 53 else result


def modulo(a: Any, b: Any) -> Any:
    x, y = to_number(a), to_number(b)
    if y == 0 or math.isinf(x) or math.isnan(x) or math.isnan(y):
        return math.nan
    if math.isinf(y):
        return x
    if isinstance(x, int) and isinstance(y, int):
        return int(math.fmod(x, y))
    return math.fmod(x, y)


def compare(a: Any, b: Any, op: str) -> bool:
    pa, pb = _to_primitive(a), _to_primitive(b)
    if isinstance(pa, str) and isinstance(pb, str):
        x, y = pa, pb
    else:
        x, y = to_number(pa), to_number(pb)
        if math.isnan(x) or math.isnan(y):
            return False
    ops: Dict[str, Callable[[Any, Any], bool]] = {
        "<": lambda p, q: p < q,
        ">": lambda p, q: p > q,
        "<=": lambda p, q: p <= q,
        ">=": lambda p, q: p >= q,
    }
    return ops[op](x, y)
