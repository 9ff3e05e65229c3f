from __future__ import annotations

from fastapi import APIRouter, HTTPException

from tpn_notes.core.params.dependencies import DERIVED_DEPENDENCIES, expand_dependencies, is_derived
from tpn_notes.core.params.keys import (
    KEY_CATEGORIES,
    all_keys,
    canonicalize,
    default_input_values,
    input_keys,
    is_known_key,
    key_category,
    key_unit,
)

router = APIRouter(prefix="/api/v1/parameters", tags=["parameters"])


@router.get("")
def list_parameters():
    """Key catalog for editors: categories, directly entered keys, derived keys and starter values."""
    return {
        "keys": all_keys(),
        "categories": {name: list(keys) for name, keys in KEY_CATEGORIES.items()},
        "input_keys": input_keys(),
        "derived": sorted(DERIVED_DEPENDENCIES),
        "defaults": default_input_values(),
    }


@router.get("/{key}")
def describe_parameter(key: str):
    ck = canonicalize(key)
    if not is_known_key(ck):
        raise HTTPException(status_code=404, detail=f"Unknown parameter {key!r}")
    derived = is_derived(ck)
    return {
        "key": ck,
        "category": key_category(ck),
        "unit": key_unit(ck),
        "derived": derived,
        "prerequisites": list(DERIVED_DEPENDENCIES.get(ck, ())),
        "closure": sorted(expand_dependencies([ck]) - {ck}) if derived else [],
    }
