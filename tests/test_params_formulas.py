import pytest

from tpn_notes.core.params.formulas import format_number, get_value
from tpn_notes.core.params.store import ParameterStore


def test_volume_example(store):
    assert get_value(store, "TotalVolume") == 1000
    assert get_value(store, "LipidVolTotal") == pytest.approx(150)
    assert get_value(store, "NonLipidVolTotal") == pytest.approx(850)


def test_legacy_alias_reads_same_value(store):
    assert get_value(store, "NonLipidVolume") == get_value(store, "NonLipidVolTotal")
    assert get_value(store, "FatConcentration") == 0.2


def test_dextrose_percent_uses_total_volume_for_three_in_one(store):
    store.set_value("Carbohydrates", 15)
    assert get_value(store, "admixture") == "3:1"
    assert get_value(store, "DexPercent") == pytest.approx(15)


def test_dextrose_percent_uses_non_lipid_volume_for_two_in_one(store):
    store.set_values({"Carbohydrates": 17, "admixturecheckbox": True})
    assert get_value(store, "admixture") == "2:1"
    assert get_value(store, "DexPercent") == pytest.approx(100 * 17 * 10 / 850)


def test_total_energy():
    s = ParameterStore({"Protein": 2, "Carbohydrates": 10, "Fat": 3})
    assert get_value(s, "TotalEnergy") == pytest.approx(72)


def test_rates_default_to_24_hours(store):
    assert get_value(store, "TPNrate") == pytest.approx(1000 / 24)


def test_rates_with_zero_hours_are_zero(store):
    store.set_value("InfuseOver", 0)
    assert get_value(store, "TPNrate") == 0


def test_string_inputs_are_coerced():
    s = ParameterStore({"DoseWeightKG": "10", "VolumePerKG": "100"})
    assert get_value(s, "TotalVolume") == 1000


def test_derived_keys_are_never_stored(store):
    ignored = store.set_values({"TotalVolume": 5, "Protein": 1})
    assert ignored == ("TotalVolume",)
    assert not store.has("TotalVolume")
    assert get_value(store, "TotalVolume") == 1000


def test_with_overrides_leaves_original_untouched(store):
    clone = store.with_overrides({"DoseWeightKG": 20})
    assert get_value(clone, "TotalVolume") == 2000
    assert get_value(store, "TotalVolume") == 1000


def test_unknown_key_defaults_to_zero():
    assert get_value(ParameterStore(), "NoSuchKey") == 0
    assert get_value(ParameterStore(), "InfuseOver") == 24


@pytest.mark.parametrize(
    "value,precision,expected",
    [
        (10.5, 2, "10.5"),
        (3.0, 2, "3"),
        (2.5, 0, "3"),
        (1234.5678, 1, "1234.6"),
        (-0.001, 2, "0"),
        (7, 2, "7"),
    ],
)
def test_format_number(value, precision, expected):
    assert format_number(value, precision) == expected


def test_format_number_passes_non_numbers_through():
    assert format_number("abc", 2) == "abc"
    assert format_number(None, 2) is None
