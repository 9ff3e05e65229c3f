"""
TPN parameter key catalog.

Every read and write of a parameter goes through ``canonicalize``; no other
module compares against alias spellings.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple

KEY_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "BASIC_PARAMETERS": ("DoseWeightKG", "VolumePerKG", "InfuseOver", "LipidInfuseOver", "OrderStart"),
    "ROUTE": ("IVAdminSite", "IVAdminSite_Central", "IVAdminSite_Peripheral"),
    "MACRONUTRIENTS": ("Protein", "Carbohydrates", "Fat", "TotalEnergy"),
    "ELECTROLYTES": ("Potassium", "Sodium", "Calcium", "Magnesium", "Phosphate", "Chloride", "Acetate"),
    "SALTS": (
        "SodiumChloride", "SodiumAcetate", "SodiumPhosphate", "PotassiumChloride",
        "PotassiumAcetate", "PotassiumPhosphate", "CalciumGluconate", "MagnesiumSulfate",
    ),
    "ADDITIVES": (
        "MultiVitamin", "PediatricMultiVitamin", "AdultMultiVitamin", "NeonatalMultiVitamin",
        "MVI", "MVP", "TraceElements", "Tralement", "PedTE", "PretermTraceCombo", "Trace4",
        "Trace4C", "Trace5", "Trace5C", "ZincSulfate", "Selenium", "Copper", "Chromium",
        "Manganese", "Insulin", "Heparin", "Famotidine", "Ranitidine", "VitaminK",
        "Levocarnitine", "Thiamine", "FolicAcid", "Multrys", "Pyridoxine", "AscorbicAcid",
        "Cysteine",
    ),
    "PREFERENCES": (
        "prefKNa", "ratioCLAc", "prefFatConcentration", "prefProteinConcentration",
        "prefFatText", "prefProteinText", "admixturecheckbox", "EditMode",
    ),
    "CALCULATED_VOLUMES": ("TotalVolume", "LipidVolTotal", "NonLipidVolTotal", "NLrate", "Lrate", "TPNrate"),
    "CLINICAL_CALCULATIONS": ("DexPercent", "OsmoValue", "PeripheralOsmoMax", "admixture"),
    "WEIGHT_CALCULATIONS": ("wtIdeal", "wtActual", "wtObese", "gender"),
    "ORDER_COMMENTS": ("UserOrderComments", "LipidOrderComments", "OtherAdditives"),
}

# legacy spellings -> canonical
LEGACY_ALIASES: Dict[str, str] = {
    "DoseWeightKg": "DoseWeightKG",
    "Volume": "VolumePerKG",
    "NonLipidVolume": "NonLipidVolTotal",
    "Osmolarity": "OsmoValue",
    "FatGPerKgPerDay": "Fat",
    "FatConcentration": "prefFatConcentration",
    "ProteinGPerKgPerDay": "Protein",
    "CarbohydratesGPerKgPerDay": "Carbohydrates",
    "ProteinConcentration": "prefProteinConcentration",
}

KEY_UNITS: Dict[str, str] = {
    "DoseWeightKG": "kg",
    "VolumePerKG": "mL/kg/day",
    "InfuseOver": "hours",
    "LipidInfuseOver": "hours",
    "OrderStart": "HHMM",
    "Protein": "g/kg/day",
    "Carbohydrates": "g/kg/day",
    "Fat": "g/kg/day",
    "TotalEnergy": "Kcal/kg/day",
    "Potassium": "mEq/kg/day",
    "Sodium": "mEq/kg/day",
    "Calcium": "mEq/kg/day",
    "Magnesium": "mEq/kg/day",
    "Phosphate": "mmol/kg/day",
    "Chloride": "mEq/kg/day",
    "Acetate": "mEq/kg/day",
    "TotalVolume": "mL",
    "LipidVolTotal": "mL",
    "NonLipidVolTotal": "mL",
    "NLrate": "mL/hr",
    "Lrate": "mL/hr",
    "TPNrate": "mL/hr",
    "DexPercent": "%",
    "OsmoValue": "mOsm/L",
    "PeripheralOsmoMax": "mOsm/L",
    "MultiVitamin": "mL/kg/day",
    "TraceElements": "mL/kg/day",
    "Insulin": "units/kg/day",
    "Heparin": "units/mL",
}

_ALL_KEYS: Tuple[str, ...] = tuple(dict.fromkeys(k for keys in KEY_CATEGORIES.values() for k in keys))

_LOWER_INDEX: Dict[str, str] = {k.lower(): k for k in _ALL_KEYS}
for _alias, _target in LEGACY_ALIASES.items():
    _LOWER_INDEX.setdefault(_alias.lower(), _target)


def canonicalize(key: str) -> str:
    """Single canonical spelling for a parameter name; unknown keys pass through trimmed."""
    if key is None:
        return ""
    k = str(key).strip()
    if k in LEGACY_ALIASES:
        return LEGACY_ALIASES[k]
    return _LOWER_INDEX.get(k.lower(), k)


def all_keys() -> List[str]:
    return list(_ALL_KEYS)


def is_known_key(key: str) -> bool:
    return canonicalize(key) in _ALL_KEYS


def key_category(key: str) -> Optional[str]:
    ck = canonicalize(key)
    for category, keys in KEY_CATEGORIES.items():
        if ck in keys:
            return category

    lower = ck.lower()
    if "vitamin" in lower or "trace" in lower or lower in ("multrys", "mvi", "mvp", "pedte"):
        return "ADDITIVES"
    if any(part in lower for part in ("chloride", "acetate", "phosphate", "gluconate", "sulfate")):
        return "ELECTROLYTES"
    return None


def key_unit(key: str) -> str:
    return KEY_UNITS.get(canonicalize(key), "")


def input_keys() -> List[str]:
    """Keys a caller enters directly (everything a formula does not produce)."""
    return [
        *KEY_CATEGORIES["BASIC_PARAMETERS"],
        *(k for k in KEY_CATEGORIES["MACRONUTRIENTS"] if k != "TotalEnergy"),
        *KEY_CATEGORIES["ELECTROLYTES"],
        *KEY_CATEGORIES["ADDITIVES"],
        *KEY_CATEGORIES["ORDER_COMMENTS"],
    ]


def default_input_values() -> Dict[str, object]:
    """Starter values for a fresh editing session."""
    values: Dict[str, object] = {
        "DoseWeightKG": 70,
        "VolumePerKG": 100,
        "InfuseOver": 24,
        "LipidInfuseOver": 24,
        "OrderStart": 2100,
        "Protein": 2.5,
        "Carbohydrates": 15,
        "Fat": 3,
        "Potassium": 2,
        "Sodium": 3,
        "Calcium": 0.5,
        "Magnesium": 0.3,
        "Phosphate": 1,
        "Chloride": 0,
        "Acetate": 0,
        "prefKNa": "Potassium",
        "ratioCLAc": "1ac:1ch",
        "prefFatConcentration": 0.2,
        "prefProteinConcentration": 0.1,
        "IVAdminSite": "Central",
    }
    for k in KEY_CATEGORIES["ADDITIVES"]:
        values[k] = 0
    return values
