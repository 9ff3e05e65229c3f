"""
Built-in helper library available to dynamic code (``api.redText(...)``,
``api.formatWeight(...)`` and friends, also grouped under ``api.kpt``).

Helpers receive raw sandbox values, so every argument is converted the way
the note author would expect from the legacy editor: text is interpolated
with JS string conversion, numbers go through JS numeric conversion.
"""
from __future__ import annotations

import math
from typing import Any, Callable, Dict, List

from tpn_notes.core.params.formulas import format_number
from tpn_notes.core.sandbox.builtins import js_max, js_min, js_round, string_method
from tpn_notes.core.sandbox.values import (
    UNDEFINED,
    compare,
    divide,
    modulo,
    strict_equals,
    to_js_string,
    to_number,
    truthy,
)

_ALERT_COLORS = {
    "info": ("#d1ecf1", "#bee5eb"),
    "warning": ("#fff3cd", "#ffeeba"),
    "error": ("#f8d7da", "#f5c6cb"),
    "success": ("#d4edda", "#c3e6cb"),
}


def _text(value: Any) -> str:
    return to_js_string(value)


def _fmt(value: Any, precision: int) -> str:
    return to_js_string(format_number(to_number(value), precision))


# --- text formatting ------------------------------------------------------

def red_text(text: Any = UNDEFINED, *_: Any) -> str:
    return f'<span style="color: red; font-weight: bold;">{_text(text)}</span>'


def green_text(text: Any = UNDEFINED, *_: Any) -> str:
    return f'<span style="color: green; font-weight: bold;">{_text(text)}</span>'


def blue_text(text: Any = UNDEFINED, *_: Any) -> str:
    return f'<span style="color: blue; font-weight: bold;">{_text(text)}</span>'


def bold_text(text: Any = UNDEFINED, *_: Any) -> str:
    return f"<strong>{_text(text)}</strong>"


def italic_text(text: Any = UNDEFINED, *_: Any) -> str:
    return f"<em>{_text(text)}</em>"


def highlight_text(text: Any = UNDEFINED, color: Any = UNDEFINED, *_: Any) -> str:
    shade = "#ffff00" if color is UNDEFINED else _text(color)
    return (
        f'<span style="background-color: {shade}; padding: 2px 4px; border-radius: 2px;">'
        f"{_text(text)}</span>"
    )


# --- numbers --------------------------------------------------------------

def round_to(num: Any = UNDEFINED, decimals: Any = 2, *_: Any) -> Any:
    places = 2 if decimals is UNDEFINED else to_number(decimals)
    if isinstance(places, float) and not math.isfinite(places):
        places = 0
    places = max(-20, min(20, int(places)))
    factor = 10 ** places
    return divide(js_round(to_number(num) * factor), factor)


def format_percent(num: Any = UNDEFINED, decimals: Any = 1, *_: Any) -> str:
    places = 1 if decimals is UNDEFINED else decimals
    return _fmt(num, places) + "%"


def format_currency(num: Any = UNDEFINED, currency: Any = "$", *_: Any) -> str:
    symbol = "$" if currency is UNDEFINED else _text(currency)
    return symbol + _fmt(num, 2)


def format_weight(weight: Any = UNDEFINED, unit: Any = "kg", *_: Any) -> str:
    return f"{_fmt(weight, 1)} {'kg' if unit is UNDEFINED else _text(unit)}"


def format_volume(volume: Any = UNDEFINED, unit: Any = "mL", *_: Any) -> str:
    return f"{_fmt(volume, 0)} {'mL' if unit is UNDEFINED else _text(unit)}"


def format_dose(dose: Any = UNDEFINED, unit: Any = "mg/kg/day", *_: Any) -> str:
    return f"{_fmt(dose, 2)} {'mg/kg/day' if unit is UNDEFINED else _text(unit)}"


def format_concentration(concentration: Any = UNDEFINED, *_: Any) -> str:
    return _fmt(to_number(concentration) * 100, 1) + "%"


# --- conditional display --------------------------------------------------

def show_if(condition: Any = UNDEFINED, content: Any = "", *_: Any) -> Any:
    return content if truthy(condition) else ""


def hide_if(condition: Any = UNDEFINED, content: Any = "", *_: Any) -> Any:
    return "" if truthy(condition) else content


def when_above(value: Any = UNDEFINED, threshold: Any = UNDEFINED, content: Any = "", *_: Any) -> Any:
    return content if compare(value, threshold, ">") else ""


def when_below(value: Any = UNDEFINED, threshold: Any = UNDEFINED, content: Any = "", *_: Any) -> Any:
    return content if compare(value, threshold, "<") else ""


def when_in_range(
    value: Any = UNDEFINED, low: Any = UNDEFINED, high: Any = UNDEFINED, content: Any = "", *_: Any
) -> Any:
    return content if compare(value, low, ">=") and compare(value, high, "<=") else ""


# --- range checks ---------------------------------------------------------

def _pair(value: Any, default: List[Any]) -> List[Any]:
    if isinstance(value, list) and len(value) >= 2:
        return value
    return default


def check_range(value: Any = UNDEFINED, normal: Any = UNDEFINED, critical: Any = UNDEFINED, *_: Any) -> str:
    n_low, n_high = _pair(normal, [0, 100])[:2]
    c_low, c_high = _pair(critical, [0, 200])[:2]
    if compare(value, c_low, "<") or compare(value, c_high, ">"):
        return red_text("CRITICAL")
    if compare(value, n_low, "<") or compare(value, n_high, ">"):
        return '<span style="color: orange; font-weight: bold;">WARNING</span>'
    return green_text("NORMAL")


def is_normal(value: Any = UNDEFINED, low: Any = UNDEFINED, high: Any = UNDEFINED, *_: Any) -> bool:
    return compare(value, low, ">=") and compare(value, high, "<=")


def is_critical(value: Any = UNDEFINED, low: Any = UNDEFINED, high: Any = UNDEFINED, *_: Any) -> bool:
    return compare(value, low, "<") or compare(value, high, ">")


# --- HTML building --------------------------------------------------------

def create_table(data: Any = UNDEFINED, headers: Any = UNDEFINED, *_: Any) -> str:
    parts = ['<table border="1" style="border-collapse: collapse; margin: 10px 0;">']
    if isinstance(headers, list):
        parts.append("<thead><tr>")
        for header in headers:
            parts.append(
                f'<th style="padding: 8px; background-color: #f5f5f5; font-weight: bold;">{_text(header)}</th>'
            )
        parts.append("</tr></thead>")
    parts.append("<tbody>")
    for row in data if isinstance(data, list) else []:
        parts.append("<tr>")
        for cell in row if isinstance(row, list) else [row]:
            parts.append(f'<td style="padding: 8px; border: 1px solid #ddd;">{_text(cell)}</td>')
        parts.append("</tr>")
    parts.append("</tbody></table>")
    return "".join(parts)


def create_list(items: Any = UNDEFINED, ordered: Any = False, *_: Any) -> str:
    tag = "ol" if truthy(ordered) else "ul"
    body = "".join(f"<li>{_text(item)}</li>" for item in (items if isinstance(items, list) else []))
    return f"<{tag}>{body}</{tag}>"


def create_alert(message: Any = UNDEFINED, kind: Any = "info", *_: Any) -> str:
    background, border = _ALERT_COLORS.get(_text(kind), _ALERT_COLORS["info"])
    return (
        f'<div style="padding: 12px; margin: 10px 0; border: 1px solid {border}; '
        f'border-radius: 4px; background-color: {background};">{_text(message)}</div>'
    )


# --- text utilities -------------------------------------------------------

def capitalize(text: Any = UNDEFINED, *_: Any) -> str:
    s = _text(text)
    return s[:1].upper() + s[1:].lower()


def pluralize(count: Any = UNDEFINED, singular: Any = "", plural: Any = UNDEFINED, *_: Any) -> str:
    if strict_equals(count, 1):
        return _text(singular)
    return _text(plural) if truthy(plural) else _text(singular) + "s"


def abbreviate(text: Any = UNDEFINED, max_length: Any = UNDEFINED, *_: Any) -> str:
    s = _text(text)
    limit = to_number(max_length)
    if compare(len(s), limit, "<="):
        return s
    return string_method(s, "slice")(0, limit - 3) + "..."


# --- math utilities -------------------------------------------------------

def clamp(value: Any = UNDEFINED, low: Any = UNDEFINED, high: Any = UNDEFINED, *_: Any) -> Any:
    return js_min(js_max(value, low), high)


def percentage(part: Any = UNDEFINED, total: Any = UNDEFINED, *_: Any) -> Any:
    if strict_equals(total, 0):
        return 0
    return divide(part, total) * 100


def _gcd(x: Any, y: Any) -> Any:
    for _ in range(64):
        if y == 0 or (isinstance(y, float) and math.isnan(y)):
            return x
        x, y = y, modulo(x, y)
    return x


def ratio(a: Any = UNDEFINED, b: Any = UNDEFINED, *_: Any) -> str:
    x, y = to_number(a), to_number(b)
    divisor = _gcd(x, y)
    return f"{to_js_string(divide(x, divisor))}:{to_js_string(divide(y, divisor))}"


HELPERS: Dict[str, Callable[..., Any]] = {
    "redText": red_text,
    "greenText": green_text,
    "blueText": blue_text,
    "boldText": bold_text,
    "italicText": italic_text,
    "highlightText": highlight_text,
    "roundTo": round_to,
    "formatPercent": format_percent,
    "formatCurrency": format_currency,
    "formatWeight": format_weight,
    "formatVolume": format_volume,
    "formatDose": format_dose,
    "formatConcentration": format_concentration,
    "showIf": show_if,
    "hideIf": hide_if,
    "whenAbove": when_above,
    "whenBelow": when_below,
    "whenInRange": when_in_range,
    "checkRange": check_range,
    "isNormal": is_normal,
    "isCritical": is_critical,
    "createTable": create_table,
    "createList": create_list,
    "createAlert": create_alert,
    "capitalize": capitalize,
    "pluralize": pluralize,
    "abbreviate": abbreviate,
    "clamp": clamp,
    "percentage": percentage,
    "ratio": ratio,
}
