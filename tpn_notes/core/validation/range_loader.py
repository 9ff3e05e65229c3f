"""
Reference range table loader.

The packaged table (tpn_notes/data/reference_ranges.yaml) is always loaded;
an optional override file replaces entries key by key.

File format (YAML or JSON):
    OsmoValue:
      display: Osmolarity
      uom: mOsm/L
      precision: 0
      reference_range:
        - {THRESHOLD: Critical High, VALUE: 800}
        - {THRESHOLD: Feasible High, VALUE: 1200}

Environment variable:
    TPN_REFERENCE_RANGES_FILE: path to the override file (optional).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from tpn_notes.core.params.keys import canonicalize, key_unit
from tpn_notes.settings import load_settings

from .models import RangeChecker
from .ranges import create_checker

_log = logging.getLogger("tpn.config")

DEFAULT_RANGES_FILE = Path(__file__).resolve().parents[2] / "data" / "reference_ranges.yaml"
DEFAULT_PRECISION = 2


@dataclass(frozen=True)
class RangeEntry:
    key: str
    display: str
    uom: str
    precision: int
    checker: RangeChecker


RangeTable = Dict[str, RangeEntry]


def _parse_entry(key: str, raw: Any) -> Optional[RangeEntry]:
    if isinstance(raw, list):
        raw = {"reference_range": raw}
    if not isinstance(raw, Mapping):
        _log.warning("Skipping reference range %r: expected a mapping, got %s", key, type(raw).__name__)
        return None

    thresholds = raw.get("reference_range", raw.get("REFERENCE_RANGE", []))
    if thresholds is None:
        thresholds = []
    if not isinstance(thresholds, (list, Mapping)):
        _log.warning("Skipping reference range %r: reference_range must be a list or mapping", key)
        return None

    precision = raw.get("precision", raw.get("PRECISION", DEFAULT_PRECISION))
    try:
        precision = int(precision)
    except (TypeError, ValueError):
        _log.warning("Reference range %r has invalid precision %r; using %d", key, precision, DEFAULT_PRECISION)
        precision = DEFAULT_PRECISION

    ck = canonicalize(key)
    uom = raw.get("uom", raw.get("UOM_DISP"))
    return RangeEntry(
        key=ck,
        display=str(raw.get("display", raw.get("DISPLAY", ck))),
        uom=key_unit(ck) if uom is None else str(uom),
        precision=max(0, min(20, precision)),
        checker=create_checker(thresholds),
    )


def _parse_table(raw: Mapping[str, Any]) -> RangeTable:
    out: RangeTable = {}
    for key, value in raw.items():
        entry = _parse_entry(str(key), value)
        if entry is not None:
            out[entry.key] = entry
    return out


def _read_mapping(path: Path) -> Optional[Mapping[str, Any]]:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        _log.warning("Cannot read reference range file %s: %s", path, exc)
        return None

    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            _log.warning("Failed to parse reference range file %s as JSON or YAML: %s", path, exc)
            return None

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        _log.warning("Reference range file %s must be a mapping, got %s", path, type(data).__name__)
        return None
    return data


def _resolve_path(path: Optional[Path]) -> Optional[Path]:
    if path is not None:
        return Path(path)
    return load_settings().reference_ranges_file


def load_reference_ranges(path: Optional[Path] = None) -> RangeTable:
    """
    Packaged defaults merged with the override file, if any. A missing or
    malformed override leaves the defaults in place.
    """
    table = _parse_table(_read_mapping(DEFAULT_RANGES_FILE) or {})

    resolved = _resolve_path(path)
    if resolved is None:
        return table
    if not resolved.exists():
        _log.warning("Reference range file %s does not exist; using defaults", resolved)
        return table

    overrides = _read_mapping(resolved)
    if overrides:
        parsed = _parse_table(overrides)
        table.update(parsed)
        _log.info("Loaded %d reference range overrides from %s", len(parsed), resolved)
    return table


def lookup(table: Mapping[str, RangeEntry], key: str) -> RangeEntry:
    """Entry for ``key``; keys without configuration get a checker that never fires."""
    ck = canonicalize(key)
    entry = table.get(ck)
    if entry is not None:
        return entry
    return RangeEntry(key=ck, display=ck, uom=key_unit(ck), precision=DEFAULT_PRECISION, checker=RangeChecker())
