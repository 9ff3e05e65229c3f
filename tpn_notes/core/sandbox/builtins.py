"""
Pure globals and primitive methods visible to dynamic code.

Everything here is deterministic and touches no host state; ``console``
writes to the ``tpn.sandbox`` logger only.
"""
from __future__ import annotations

import functools
import json
import logging
import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional

from .errors import SandboxRangeError, SandboxTypeError
from .values import (
    MAX_STRING_LENGTH,
    UNDEFINED,
    NamespaceObject,
    SandboxObject,
    checked_array_growth,
    checked_string,
    is_callable_value,
    is_number,
    number_to_string,
    strict_equals,
    to_js_string,
    to_number,
    truthy,
)

_log = logging.getLogger("tpn.sandbox")

_FLOAT_PREFIX = re.compile(r"^[+-]?(Infinity|(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?)")


def _arg(args: tuple, idx: int, default: Any = UNDEFINED) -> Any:
    return args[idx] if len(args) > idx else default


def _int_arg(value: Any, default: int = 0) -> int:
    if value is UNDEFINED:
        return default
    num = to_number(value)
    if isinstance(num, float):
        if math.isnan(num):
            return 0
        if math.isinf(num):
            return 2 ** 31 if num > 0 else -(2 ** 31)
    return int(num)


def _normalize(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer() and abs(value) < 2 ** 53:
        return int(value)
    return value


# --- global functions -----------------------------------------------------

def js_parse_float(value: Any = UNDEFINED, *_: Any) -> Any:
    m = _FLOAT_PREFIX.match(to_js_string(value).strip())
    if not m:
        return math.nan
    text = m.group(0)
    if text.lstrip("+-") == "Infinity":
        return -math.inf if text.startswith("-") else math.inf
    return _normalize(float(text))


def js_parse_int(value: Any = UNDEFINED, radix: Any = UNDEFINED, *_: Any) -> Any:
    text = to_js_string(value).strip()
    base = _int_arg(radix, 10) or 10
    sign = 1
    if text[:1] in "+-" and text:
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if base == 16 and text.lower().startswith("0x"):
        text = text[2:]
    elif radix is UNDEFINED and text.lower().startswith("0x"):
        base, text = 16, text[2:]
    if not 2 <= base <= 36:
        return math.nan
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"[:base]
    end = 0
    while end < len(text) and text[end].lower() in digits:
        end += 1
    if end == 0:
        return math.nan
    return sign * int(text[:end], base)


def js_is_nan(value: Any = UNDEFINED, *_: Any) -> bool:
    num = to_number(value)
    return isinstance(num, float) and math.isnan(num)


def js_is_finite(value: Any = UNDEFINED, *_: Any) -> bool:
    num = to_number(value)
    return not (isinstance(num, float) and (math.isnan(num) or math.isinf(num)))


def js_number(value: Any = 0, *_: Any) -> Any:
    return to_number(value)


def js_string(value: Any = "", *_: Any) -> str:
    return to_js_string(value)


def js_boolean(value: Any = UNDEFINED, *_: Any) -> bool:
    return truthy(value)


# --- Math -----------------------------------------------------------------

def _math1(fn: Callable[[float], float]) -> Callable[..., Any]:
    def wrapped(x: Any = UNDEFINED, *_: Any) -> Any:
        num = to_number(x)
        if isinstance(num, float) and (math.isnan(num) or math.isinf(num)):
            return num if fn in (math.floor, math.ceil, abs, math.trunc) else _safe(fn, num)
        return _normalize(_safe(fn, num))
    return wrapped


def _safe(fn: Callable[[float], float], x: Any) -> Any:
    try:
        return fn(x)
    except (ValueError, OverflowError):
        return math.nan


def js_round(x: Any = UNDEFINED, *_: Any) -> Any:
    num = to_number(x)
    if isinstance(num, float) and (math.isnan(num) or math.isinf(num)):
        return num
    return int(math.floor(num + 0.5))


def js_max(*args: Any) -> Any:
    nums = [to_number(a) for a in args]
    if any(isinstance(v, float) and math.isnan(v) for v in nums):
        return math.nan
    return max(nums) if nums else -math.inf


def js_min(*args: Any) -> Any:
    nums = [to_number(a) for a in args]
    if any(isinstance(v, float) and math.isnan(v) for v in nums):
        return math.nan
    return min(nums) if nums else math.inf


def _js_pow(base: Any = UNDEFINED, exponent: Any = UNDEFINED, *_: Any) -> Any:
    return power(base, exponent)


def power(base: Any, exponent: Any) -> Any:
    b, e = to_number(base), to_number(exponent)
    if isinstance(b, int) and isinstance(e, int) and 0 <= e <= 64 and abs(b) < 2 ** 20:
        return b ** e
    if b == 0 and e < 0:
        return math.inf
    try:
        return _normalize(math.pow(b, e))
    except ZeroDivisionError:
        return math.inf
    except OverflowError:
        return math.inf if b > 0 or float(e) % 2 == 0 else -math.inf
    except ValueError:
        return math.nan


def _js_sign(x: Any = UNDEFINED, *_: Any) -> Any:
    num = to_number(x)
    if isinstance(num, float) and math.isnan(num):
        return num
    return (num > 0) - (num < 0)


MATH = NamespaceObject("Math", {
    "PI": math.pi,
    "E": math.e,
    "LN2": math.log(2),
    "LN10": math.log(10),
    "SQRT2": math.sqrt(2),
    "abs": _math1(abs),
    "floor": _math1(math.floor),
    "ceil": _math1(math.ceil),
    "trunc": _math1(math.trunc),
    "sqrt": _math1(math.sqrt),
    "log": _math1(math.log),
    "log10": _math1(math.log10),
    "exp": _math1(math.exp),
    "round": js_round,
    "max": js_max,
    "min": js_min,
    "pow": _js_pow,
    "sign": _js_sign,
})


def _console_log(*args: Any) -> Any:
    _log.debug("console: %s", " ".join(to_js_string(a) for a in args))
    return UNDEFINED


CONSOLE = NamespaceObject("console", {"log": _console_log, "warn": _console_log, "info": _console_log})


def _to_json_data(value: Any, depth: int = 0) -> Any:
    if depth > 32:
        raise SandboxTypeError("Converting circular structure to JSON")
    if isinstance(value, list):
        return [None if v is UNDEFINED else _to_json_data(v, depth + 1) for v in value]
    if isinstance(value, dict):
        return {k: _to_json_data(v, depth + 1) for k, v in value.items() if v is not UNDEFINED}
    if is_number(value) and isinstance(value, float) and not math.isfinite(value):
        return None
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return None


def _json_stringify(value: Any = UNDEFINED, *_: Any) -> Any:
    if value is UNDEFINED or is_callable_value(value):
        return UNDEFINED
    return json.dumps(_to_json_data(value), separators=(",", ":"), ensure_ascii=False)


JSON = NamespaceObject("JSON", {"stringify": _json_stringify})


def global_scope() -> Dict[str, Any]:
    """Fresh mapping of the pure globals (callers add ``api``/``me``)."""
    return {
        "undefined": UNDEFINED,
        "NaN": math.nan,
        "Infinity": math.inf,
        "Math": MATH,
        "JSON": JSON,
        "console": CONSOLE,
        "Number": js_number,
        "String": js_string,
        "Boolean": js_boolean,
        "parseFloat": js_parse_float,
        "parseInt": js_parse_int,
        "isNaN": js_is_nan,
        "isFinite": js_is_finite,
    }


# --- primitive methods ----------------------------------------------------

def to_fixed(value: Any, digits: Any = UNDEFINED) -> str:
    places = _int_arg(digits, 0)
    if not 0 <= places <= 100:
        raise SandboxRangeError("toFixed() digits argument must be between 0 and 100")
    num = to_number(value)
    if isinstance(num, float) and not math.isfinite(num):
        return number_to_string(num)
    if abs(num) >= 1e21:
        return number_to_string(num)
    try:
        rounded = Decimal(num).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return number_to_string(num)
    return f"{rounded:f}"


def _slice_bounds(length: int, start: Any, end: Any) -> tuple:
    s = _int_arg(start, 0)
    e = _int_arg(end, length)
    if s < 0:
        s = max(length + s, 0)
    if e < 0:
        e = max(length + e, 0)
    return min(s, length), min(e, length)


def _pad(text: str, length: Any, filler: Any, at_start: bool) -> str:
    target = _int_arg(length, 0)
    fill = " " if filler is UNDEFINED else to_js_string(filler)
    if target <= len(text) or not fill:
        return text
    if target > MAX_STRING_LENGTH:
        raise SandboxRangeError("Invalid string length")
    needed = target - len(text)
    pad = (fill * (needed // len(fill) + 1))[:needed]
    return pad + text if at_start else text + pad


def _split(text: str, sep: Any = UNDEFINED, limit: Any = UNDEFINED) -> List[str]:
    if sep is UNDEFINED:
        parts = [text]
    else:
        s = to_js_string(sep)
        parts = list(text) if s == "" else text.split(s)
    if limit is not UNDEFINED:
        parts = parts[:max(_int_arg(limit), 0)]
    return parts


def _index_of(text: str, needle: Any, start: Any = UNDEFINED) -> int:
    return text.find(to_js_string(needle), max(_int_arg(start, 0), 0))


def _replace(text: str, pattern: Any, replacement: Any, count: int) -> str:
    old = to_js_string(pattern)
    if is_callable_value(replacement):
        new = to_js_string(replacement(old))
    else:
        new = to_js_string(replacement)
    return checked_string(text.replace(old, new, count))


def string_method(text: str, name: str) -> Any:
    methods: Dict[str, Callable[..., Any]] = {
        "toUpperCase": lambda *a: text.upper(),
        "toLowerCase": lambda *a: text.lower(),
        "trim": lambda *a: text.strip(),
        "trimStart": lambda *a: text.lstrip(),
        "trimEnd": lambda *a: text.rstrip(),
        "toString": lambda *a: text,
        "includes": lambda needle=UNDEFINED, *a: to_js_string(needle) in text,
        "startsWith": lambda p=UNDEFINED, *a: text.startswith(to_js_string(p)),
        "endsWith": lambda p=UNDEFINED, *a: text.endswith(to_js_string(p)),
        "indexOf": lambda needle=UNDEFINED, start=UNDEFINED, *a: _index_of(text, needle, start),
        "lastIndexOf": lambda needle=UNDEFINED, *a: text.rfind(to_js_string(needle)),
        "slice": lambda start=UNDEFINED, end=UNDEFINED, *a: text[slice(*_slice_bounds(len(text), start, end))],
        "substring": lambda start=UNDEFINED, end=UNDEFINED, *a: _substring(text, start, end),
        "charAt": lambda i=UNDEFINED, *a: _char_at(text, i),
        "split": lambda sep=UNDEFINED, limit=UNDEFINED, *a: _split(text, sep, limit),
        "replace": lambda p=UNDEFINED, r=UNDEFINED, *a: _replace(text, p, r, 1),
        "replaceAll": lambda p=UNDEFINED, r=UNDEFINED, *a: _replace(text, p, r, -1),
        "repeat": lambda count=UNDEFINED, *a: _repeat(text, count),
        "padStart": lambda length=UNDEFINED, fill=UNDEFINED, *a: _pad(text, length, fill, True),
        "padEnd": lambda length=UNDEFINED, fill=UNDEFINED, *a: _pad(text, length, fill, False),
        "concat": lambda *parts: checked_string(text + "".join(to_js_string(p) for p in parts)),
    }
    if name == "length":
        return len(text)
    return methods.get(name, UNDEFINED)


def _substring(text: str, start: Any, end: Any) -> str:
    s = min(max(_int_arg(start, 0), 0), len(text))
    e = min(max(_int_arg(end, len(text)), 0), len(text))
    if s > e:
        s, e = e, s
    return text[s:e]


def _char_at(text: str, index: Any) -> str:
    i = _int_arg(index, 0)
    return text[i] if 0 <= i < len(text) else ""


def _repeat(text: str, count: Any) -> str:
    times = _int_arg(count, 0)
    if times < 0:
        raise SandboxRangeError("Invalid count value")
    if len(text) * times > MAX_STRING_LENGTH:
        raise SandboxRangeError("Invalid string length")
    return text * times


def number_method(value: Any, name: str) -> Any:
    if name == "toFixed":
        return lambda digits=UNDEFINED, *a: to_fixed(value, digits)
    if name == "toString":
        return lambda *a: to_js_string(value)
    if name == "toPrecision":
        return lambda digits=UNDEFINED, *a: _to_precision(value, digits)
    return UNDEFINED


def _to_precision(value: Any, digits: Any) -> str:
    if digits is UNDEFINED:
        return to_js_string(value)
    places = _int_arg(digits)
    if not 1 <= places <= 100:
        raise SandboxRangeError("toPrecision() argument must be between 1 and 100")
    num = to_number(value)
    if isinstance(num, float) and not math.isfinite(num):
        return number_to_string(num)
    if num == 0:
        return to_fixed(0, places - 1)
    magnitude = math.floor(math.log10(abs(num)))
    return to_fixed(num, max(places - 1 - magnitude, 0))


def _callback(fn: Any, method: str) -> Callable[..., Any]:
    if not is_callable_value(fn) or isinstance(fn, SandboxObject):
        raise SandboxTypeError(f"{to_js_string(fn)} is not a function (in Array.{method})")
    return fn


def _reduce(items: List[Any], args: tuple) -> Any:
    fn = _callback(_arg(args, 0), "reduce")
    if len(args) > 1:
        acc, start = args[1], 0
    elif items:
        acc, start = items[0], 1
    else:
        raise SandboxTypeError("Reduce of empty array with no initial value")
    for i in range(start, len(items)):
        acc = fn(acc, items[i], i)
    return acc


def _find(items: List[Any], fn: Any) -> Any:
    cb = _callback(fn, "find")
    for i, item in enumerate(items):
        if truthy(cb(item, i)):
            return item
    return UNDEFINED


def _index_in(items: List[Any], needle: Any) -> int:
    for i, item in enumerate(items):
        if strict_equals(item, needle):
            return i
    return -1


def _push(items: List[Any], values: tuple) -> int:
    checked_array_growth(len(items), len(values))
    items.extend(values)
    return len(items)


def _pop(items: List[Any]) -> Any:
    return items.pop() if items else UNDEFINED


def _concat(items: List[Any], others: tuple) -> List[Any]:
    out = list(items)
    for other in others:
        extra = other if isinstance(other, list) else [other]
        checked_array_growth(len(out), len(extra))
        out.extend(extra)
    return out


def _join(items: List[Any], sep: Any) -> str:
    s = "," if sep is UNDEFINED else to_js_string(sep)
    return checked_string(s.join("" if v is None or v is UNDEFINED else to_js_string(v) for v in items))


def _sort(items: List[Any], compare_fn: Any) -> List[Any]:
    if compare_fn is UNDEFINED:
        items.sort(key=to_js_string)
    else:
        cb = _callback(compare_fn, "sort")
        items.sort(key=functools.cmp_to_key(lambda a, b: _sign(to_number(cb(a, b)))))
    return items


def _sign(num: Any) -> int:
    if isinstance(num, float) and math.isnan(num):
        return 0
    return (num > 0) - (num < 0)


def array_method(items: List[Any], name: str) -> Any:
    if name == "length":
        return len(items)
    methods: Dict[str, Callable[..., Any]] = {
        "join": lambda sep=UNDEFINED, *a: _join(items, sep),
        "toString": lambda *a: _join(items, UNDEFINED),
        "includes": lambda needle=UNDEFINED, *a: any(
            strict_equals(v, needle) or (js_is_nan(v) and js_is_nan(needle) and is_number(v)) for v in items),
        "indexOf": lambda needle=UNDEFINED, *a: _index_in(items, needle),
        "push": lambda *values: _push(items, values),
        "pop": lambda *a: _pop(items),
        "shift": lambda *a: items.pop(0) if items else UNDEFINED,
        "slice": lambda start=UNDEFINED, end=UNDEFINED, *a: items[slice(*_slice_bounds(len(items), start, end))],
        "concat": lambda *others: _concat(items, others),
        "reverse": lambda *a: (items.reverse(), items)[1],
        "sort": lambda fn=UNDEFINED, *a: _sort(items, fn),
        "map": lambda fn=UNDEFINED, *a: [_callback(fn, "map")(v, i) for i, v in enumerate(list(items))],
        "filter": lambda fn=UNDEFINED, *a: [v for i, v in enumerate(list(items)) if truthy(_callback(fn, "filter")(v, i))],
        "forEach": lambda fn=UNDEFINED, *a: ([_callback(fn, "forEach")(v, i) for i, v in enumerate(list(items))], UNDEFINED)[1],
        "some": lambda fn=UNDEFINED, *a: any(truthy(_callback(fn, "some")(v, i)) for i, v in enumerate(list(items))),
        "every": lambda fn=UNDEFINED, *a: all(truthy(_callback(fn, "every")(v, i)) for i, v in enumerate(list(items))),
        "find": lambda fn=UNDEFINED, *a: _find(items, fn),
        "reduce": lambda *args: _reduce(items, args),
    }
    return methods.get(name, UNDEFINED)


def primitive_member(value: Any, name: str) -> Optional[Any]:
    """Member of a str/number/bool/list, or None when the type has no members."""
    if isinstance(value, str):
        return string_method(value, name)
    if isinstance(value, bool):
        return (lambda *a: to_js_string(value)) if name == "toString" else UNDEFINED
    if is_number(value):
        return number_method(value, name)
    if isinstance(value, list):
        return array_method(value, name)
    return None

