"""
Calculation engine: stateless formulas over a ParameterStore.

``get_value`` recomputes derived values on every call; nothing is cached.
Parameter counts are small (tens of keys) so repeated lookups stay cheap.
"""
from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, Union

from .keys import canonicalize
from .store import ParameterStore

Number = Union[int, float]

# used when the key is neither stored nor computed
DEFAULTS: Dict[str, Any] = {
    "InfuseOver": 24,
    "LipidInfuseOver": 24,
    "IVAdminSite": "Central",
    "prefKNa": "Potassium",
    "ratioCLAc": "1ac:1ch",
    "prefFatConcentration": 0.2,
    "prefProteinConcentration": 0.1,
    "PeripheralOsmoMax": 800,
    "gender": "Male",
    "EditMode": "Compound",
    "wtIdeal": 50,
    "wtActual": 70,
    "wtObese": 60,
}

DEFAULT_FAT_CONCENTRATION = 0.2
DEXTROSE_MOSM_PER_PERCENT = 50


def to_number(value: Any) -> Number:
    """Lenient numeric coercion for stored inputs (form fields arrive as strings)."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if value is None:
        return 0
    try:
        text = str(value).strip()
        return float(text) if text else 0
    except ValueError:
        return 0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _n(store: ParameterStore, key: str) -> Number:
    return to_number(get_value(store, key))


def _total_volume(store: ParameterStore) -> Number:
    return _n(store, "VolumePerKG") * _n(store, "DoseWeightKG")


def _lipid_vol_total(store: ParameterStore) -> Number:
    conc = _n(store, "prefFatConcentration") or DEFAULT_FAT_CONCENTRATION
    return (_n(store, "Fat") * _n(store, "DoseWeightKG")) / conc


def _non_lipid_vol_total(store: ParameterStore) -> Number:
    return _n(store, "TotalVolume") - _n(store, "LipidVolTotal")


def _admixture(store: ParameterStore) -> str:
    if get_value(store, "EditMode") == "Standard":
        return "3:1"
    return "2:1" if store.get_stored("admixturecheckbox") else "3:1"


def _dex_percent(store: ParameterStore) -> Number:
    carbs = _n(store, "Carbohydrates")
    weight = _n(store, "DoseWeightKG")
    if get_value(store, "admixture") == "3:1":
        denominator = _n(store, "TotalVolume")
    else:
        denominator = _n(store, "NonLipidVolTotal")
    if denominator <= 0:
        return 0
    return 100 * carbs * weight / denominator


def _osmo_value(store: ParameterStore) -> Number:
    # simplified placeholder, not a clinically exact osmolarity
    volume = _n(store, "NonLipidVolTotal")
    if volume <= 0:
        return 0
    dex_osmo = _n(store, "DexPercent") * DEXTROSE_MOSM_PER_PERCENT
    protein_osmo = (_n(store, "Protein") * _n(store, "DoseWeightKG") / volume) * 100
    return round_half_up(dex_osmo + protein_osmo)


def _total_energy(store: ParameterStore) -> Number:
    return 4 * _n(store, "Protein") + 3.4 * _n(store, "Carbohydrates") + 10 * _n(store, "Fat")


def _rate(volume_key: str, hours_key: str) -> Callable[[ParameterStore], Number]:
    def compute(store: ParameterStore) -> Number:
        hours = _n(store, hours_key)
        if hours <= 0:
            return 0
        return _n(store, volume_key) / hours
    return compute


def _percent_text(conc_key: str) -> Callable[[ParameterStore], str]:
    def compute(store: ParameterStore) -> str:
        return format_number(_n(store, conc_key) * 100, 2) + "%"
    return compute


FORMULAS: Dict[str, Callable[[ParameterStore], Any]] = {
    "TotalVolume": _total_volume,
    "LipidVolTotal": _lipid_vol_total,
    "NonLipidVolTotal": _non_lipid_vol_total,
    "admixture": _admixture,
    "DexPercent": _dex_percent,
    "OsmoValue": _osmo_value,
    "TotalEnergy": _total_energy,
    "NLrate": _rate("NonLipidVolTotal", "InfuseOver"),
    "Lrate": _rate("LipidVolTotal", "LipidInfuseOver"),
    "TPNrate": _rate("TotalVolume", "InfuseOver"),
    "prefFatText": _percent_text("prefFatConcentration"),
    "prefProteinText": _percent_text("prefProteinConcentration"),
}


def get_value(store: ParameterStore, key: str) -> Any:
    """Stored value, else formula, else catalogued default, else 0."""
    ck = canonicalize(key)
    if store.has(ck):
        return store.get_stored(ck)
    formula = FORMULAS.get(ck)
    if formula is not None:
        return formula(store)
    return DEFAULTS.get(ck, 0)


def format_number(value: Any, precision: Any = 2) -> Any:
    """
    Round half-up to ``precision`` places, then drop trailing zeros and a
    trailing decimal point. Non-numeric input comes back unchanged.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    if isinstance(value, float) and not math.isfinite(value):
        if math.isnan(value):
            return "NaN"
        return "Infinity" if value > 0 else "-Infinity"

    try:
        places = max(0, min(20, int(precision)))
    except (TypeError, ValueError):
        places = 2

    try:
        quantum = Decimal(1).scaleb(-places)
        rounded = Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return str(value)

    text = f"{rounded:f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        text = "0"
    return text
