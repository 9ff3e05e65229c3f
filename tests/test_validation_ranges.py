import json

import pytest

from tpn_notes.core.validation.models import RangeChecker, Severity
from tpn_notes.core.validation.range_loader import load_reference_ranges, lookup
from tpn_notes.core.validation.ranges import check_value, create_checker

OSMO = [
    {"THRESHOLD": "Critical High", "VALUE": 800},
    {"THRESHOLD": "Feasible High", "VALUE": 1200},
]


@pytest.mark.parametrize(
    "value,severity",
    [(1500, Severity.HARD), (900, Severity.FIRM), (700, Severity.VALID), (800, Severity.VALID), (1200, Severity.FIRM)],
)
def test_threshold_example(value, severity):
    assert check_value(value, create_checker(OSMO)).severity == severity


def test_message_names_threshold_and_unit():
    result = check_value(900, create_checker(OSMO), uom="mOsm/L")
    assert result.status == "firm"
    assert result.threshold == 800
    assert result.threshold_name == "Critical_High"
    assert result.message == "The value of 900 mOsm/L is above the Critical High of 800 mOsm/L"


def test_low_side_and_order():
    checker = create_checker({"Feasible_Low": 0.5, "Critical_Low": 1, "Normal_Low": 2})
    assert check_value(0.4, checker).severity == Severity.HARD
    assert check_value(0.7, checker).severity == Severity.FIRM
    assert check_value(1.5, checker).severity == Severity.SOFT
    assert "below" in check_value(1.5, checker).message


def test_severity_is_monotonic_on_one_side():
    checker = create_checker(OSMO + [{"THRESHOLD": "Normal High", "VALUE": 600}])
    rank = {Severity.VALID: 0, Severity.SOFT: 1, Severity.FIRM: 2, Severity.HARD: 3}
    previous = 0
    for value in range(500, 1600, 25):
        current = rank[check_value(value, checker).severity]
        assert current >= previous
        previous = current


def test_empty_checker_never_violates():
    checker = create_checker([])
    assert checker == RangeChecker()
    assert checker.constraints == 0
    assert check_value(1e9, checker).severity == Severity.VALID


def test_unknown_thresholds_and_bad_values_are_ignored():
    checker = create_checker([{"THRESHOLD": "Sorta High", "VALUE": 1}, {"THRESHOLD": "Normal High", "VALUE": "x"}])
    assert checker.constraints == 0


def test_non_numeric_and_blank_values_are_valid():
    checker = create_checker(OSMO)
    assert check_value("", checker).is_valid
    assert check_value(None, checker).is_valid
    assert check_value("abc", checker).is_valid
    assert check_value("1500", checker).severity == Severity.HARD


def test_packaged_table_loads():
    table = load_reference_ranges()
    osmo = table["OsmoValue"]
    assert osmo.uom == "mOsm/L"
    assert osmo.checker.critical_high == 800
    assert osmo.checker.feasible_high == 1200
    assert table["InfuseOver"].precision == 0


def test_override_file_replaces_entries(tmp_path, monkeypatch):
    f = tmp_path / "ranges.json"
    f.write_text(json.dumps({"Osmolarity": {"uom": "mOsm/L", "reference_range": [{"THRESHOLD": "Feasible High", "VALUE": 900}]}}))
    monkeypatch.setenv("TPN_REFERENCE_RANGES_FILE", str(f))
    table = load_reference_ranges()
    assert table["OsmoValue"].checker.feasible_high == 900
    assert table["OsmoValue"].checker.critical_high is None
    assert "DoseWeightKG" in table


def test_yaml_override_skips_malformed_entries(tmp_path, caplog):
    f = tmp_path / "ranges.yaml"
    f.write_text("Protein: 5\nSodium:\n  reference_range:\n    - {THRESHOLD: Feasible High, VALUE: 20}\n")
    table = load_reference_ranges(f)
    assert table["Sodium"].checker.feasible_high == 20
    assert table["Protein"].checker.feasible_high == 6
    assert "Skipping reference range 'Protein'" in caplog.text


def test_unreadable_override_keeps_defaults(tmp_path):
    f = tmp_path / "broken.yaml"
    f.write_text("- just\n- a list\n")
    assert load_reference_ranges(f)["OsmoValue"].checker.critical_high == 800
    assert load_reference_ranges(tmp_path / "missing.yaml")["OsmoValue"].checker.critical_high == 800


def test_lookup_unconfigured_key():
    entry = lookup({}, "Potassium")
    assert entry.precision == 2
    assert entry.uom == "mEq/kg/day"
    assert entry.checker.constraints == 0
