"""
The API surface injected into dynamic code as ``api`` (and ``me``).

An ApiSurface is an immutable name -> value mapping. Dynamic code can only
reach the entries it lists; element accessors returned by ``getObject``
read the parameter store and never write to it.
"""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple

from tpn_notes.core.params.formulas import format_number, get_value
from tpn_notes.core.params.keys import canonicalize, key_unit
from tpn_notes.core.params.store import ParameterStore
from tpn_notes.core.sandbox.values import (
    UNDEFINED,
    NamespaceObject,
    SandboxObject,
    to_js_string,
    to_number,
    truthy,
)

from .helpers import HELPERS, clamp

_log = logging.getLogger("tpn.render")

KG_PER_LB = 2.20462

PREFERENCE_DEFAULTS: Mapping[str, Any] = MappingProxyType({
    "ADVISOR_TITLE": "TPN Advisor",
    "CENTER_NAME": "Medical Center",
    "GLUCOSE_CONVERSION": 5.551,
    "UNIT_AMT_PER_KG_DAY": "amount/kg/day",
    "UNIT_MOLAR": "mmol/L",
    "UNIT_MEQ": "mEq",
    "UNIT_WEIGHT": "kg",
    "WEIGHT_REQUIRED_TEXT": "Dose Weight is required",
    "VOLUME_REQUIRED_TEXT": "TPN Volume is required",
    "ADMINSITE_BLANK_TEXT": "Administration Site is required",
    "PRECISION_MINVOL_DISPLAY": "2",
    "PRECISION_MINVOL_BREAKDOWN": "2",
    "PREF_SALT_PHOSPHATE": "Potassium",
    "ACETATE_CHLORIDE_DEFAULT": "1ac:1ch",
    "ADMIXTURE_DEFAULT": "3:1",
    "ORDERSTART_DEFAULT": "2100",
    "TPNINFUSEOVER_DEFAULT": "24",
    "LIPIDINFUSEOVER_DEFAULT": "24",
})


class ApiSurface(SandboxObject, Mapping[str, Any]):
    """
    Immutable mapping of the names dynamic code may call.

    ``store``, ``preferences`` and ``extensions`` record how the surface was
    built so the renderer can rebuild it over a store with test bindings.
    """

    sandbox_type_name = "Api"

    def __init__(
        self,
        entries: Mapping[str, Any],
        *,
        store: Optional[ParameterStore] = None,
        preferences: Optional[Mapping[str, Any]] = None,
        extensions: Sequence[Any] = (),
        allow_override: bool = False,
    ):
        self._entries = MappingProxyType(dict(entries))
        self.store = store
        self.preferences: Mapping[str, Any] = MappingProxyType(dict(preferences or {}))
        self.extensions: Tuple[Any, ...] = tuple(extensions)
        self.allow_override = allow_override

    def sandbox_member(self, name: str) -> Any:
        return self._entries.get(name, UNDEFINED)

    def sandbox_members(self) -> Dict[str, Any]:
        return dict(self._entries)

    def __getitem__(self, name: str) -> Any:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ApiSurface({len(self._entries)} entries)"


class ElementAccessor(SandboxObject):
    """
    Read-only stand-in for the legacy ``me.getObject('#Field')`` element.

    Values come from the store keyed by the canonicalised selector. Mutating
    calls (``val(x)``, ``addClass``) are accepted for chaining but change
    nothing.
    """

    sandbox_type_name = "Element"

    def __init__(self, selector: str, store: ParameterStore):
        self.selector = selector
        self._store = store

    def _key(self) -> str:
        # "#DoseWeightKG" and "DoseWeightKG" address the same parameter
        if self.selector.startswith("#") and " " not in self.selector:
            return self.selector[1:]
        return self.selector

    def _stored(self) -> Any:
        return self._store.get_stored(self._key(), UNDEFINED)

    def val(self, *args: Any) -> Any:
        if args and args[0] is not UNDEFINED:
            return self
        value = self._stored()
        return "" if value is UNDEFINED or value is None else value

    def text(self, *args: Any) -> Any:
        return self.val(*args)

    def data(self, key: Any = UNDEFINED, *_: Any) -> Any:
        if to_js_string(key) != "uom":
            return UNDEFINED
        unit = key_unit(canonicalize(self._key()))
        if unit:
            return unit
        if "PerKG" in self.selector:
            return "/kg/day"
        return UNDEFINED

    def prop(self, key: Any = UNDEFINED, *args: Any) -> Any:
        if args and args[0] is not UNDEFINED:
            return self
        value = self._stored()
        return UNDEFINED if value is None else value

    def is_(self, selector: Any = UNDEFINED, *_: Any) -> bool:
        if to_js_string(selector) == ":checked":
            return truthy(self._stored())
        return False

    def find(self, selector: Any = UNDEFINED, *_: Any) -> "ElementAccessor":
        return ElementAccessor(f"{self.selector} {to_js_string(selector)}", self._store)

    def closest(self, selector: Any = UNDEFINED, *_: Any) -> "ElementAccessor":
        return ElementAccessor(to_js_string(selector), self._store)

    def _chain(self, *_: Any) -> "ElementAccessor":
        return self

    def sandbox_member(self, name: str) -> Any:
        members: Dict[str, Any] = {
            "val": self.val,
            "text": self.text,
            "data": self.data,
            "prop": self.prop,
            "is": self.is_,
            "find": self.find,
            "closest": self.closest,
            "addClass": self._chain,
            "removeClass": self._chain,
            "length": 1,
            "selector": self.selector,
        }
        return members.get(name, UNDEFINED)


def _preference_getter(preferences: Mapping[str, Any]) -> Callable[..., Any]:
    def get_preference(key: Any = UNDEFINED, default: Any = UNDEFINED, *_: Any) -> Any:
        name = to_js_string(key)
        if name in preferences:
            return preferences[name]
        if name in PREFERENCE_DEFAULTS:
            return PREFERENCE_DEFAULTS[name]
        return "" if default is UNDEFINED else default
    return get_preference


def _electrolytes_to_salts(read: Callable[[str], Any]) -> Dict[str, Any]:
    """Simplified salt breakdown; cations are reported as entered."""
    return {
        "SodiumChloride": 0,
        "SodiumAcetate": 0,
        "SodiumPhosphate": 0,
        "PotassiumChloride": 0,
        "PotassiumAcetate": 0,
        "PotassiumPhosphate": 0,
        "CalciumGluconate": read("Calcium"),
        "MagnesiumSulfate": read("Magnesium"),
        "Chloride": read("Chloride"),
        "Acetate": read("Acetate"),
        "KorNaPhos": read("prefKNa"),
        "log": [],
        "Error": "",
    }


def build_base_api(
    store: ParameterStore,
    preferences: Optional[Mapping[str, Any]] = None,
) -> ApiSurface:
    """Core accessors plus the helper library, bound to ``store``."""
    prefs = dict(preferences or {})

    def read(key: Any = UNDEFINED, *_: Any) -> Any:
        value = get_value(store, to_js_string(key))
        return UNDEFINED if value is None else value

    def get_object(selector: Any = UNDEFINED, *_: Any) -> ElementAccessor:
        return ElementAccessor(to_js_string(selector), store)

    def max_p(value: Any = UNDEFINED, precision: Any = 2, *_: Any) -> Any:
        return format_number(value, 2 if precision is UNDEFINED else precision)

    def minmax_p(value: Any = UNDEFINED, low: Any = UNDEFINED, high: Any = UNDEFINED, precision: Any = 2, *_: Any) -> Any:
        return max_p(clamp(value, low, high), precision)

    get_preference = _preference_getter(prefs)

    entries: Dict[str, Any] = {
        "getValue": read,
        "calc": read,
        "formatNumber": max_p,
        "maxP": max_p,
        "minmaxP": minmax_p,
        "getPreference": get_preference,
        "pref": get_preference,
        "getObject": get_object,
        "kgToLb": lambda kg=UNDEFINED, *_: to_number(kg) * KG_PER_LB,
        "lbToKg": lambda lb=UNDEFINED, *_: to_number(lb) / KG_PER_LB,
        "iss_true": lambda value=UNDEFINED, *_: truthy(value),
        "iss_false": lambda value=UNDEFINED, *_: not truthy(value),
        "EtoS": lambda *_: _electrolytes_to_salts(read),
    }
    entries.update(HELPERS)
    entries["kpt"] = NamespaceObject("kpt", {**HELPERS, "formatNumber": max_p})
    return ApiSurface(entries, store=store, preferences=prefs)
