import time

import pytest

from tpn_notes.core.evaluator import extensions as ext
from tpn_notes.core.evaluator.api import build_base_api
from tpn_notes.core.evaluator.extensions import CustomFunction, ExtensionError, merge_extensions
from tpn_notes.core.evaluator.renderer import render_segment
from tpn_notes.core.notes.models import Segment
from tpn_notes.core.params.store import ParameterStore
from tpn_notes.core.sandbox import CompiledCache, ExecutionLimits


def dyn(code):
    return Segment(id=1, kind="dynamic", content=code)


@pytest.fixture()
def base():
    return build_base_api(ParameterStore({"DoseWeightKG": 5, "VolumePerKG": 100}))


def render(api, code):
    return render_segment(dyn(code), api.store, api=api)


def test_custom_function_is_callable(base):
    api = merge_extensions(base, [CustomFunction(name="double", parameters=["x"], code="return x * 2;")])
    assert render(api, "me.double(me.getValue('DoseWeightKG'))") == "10"
    assert "double" not in base


def test_custom_function_sees_api(base):
    fn = CustomFunction(name="totalVol", code="return api.getValue('TotalVolume');")
    api = merge_extensions(base, [fn])
    assert render(api, "me.totalVol()") == "500"


def test_parameters_are_mutable_and_missing_args_are_undefined(base):
    fns = [
        CustomFunction(name="inc", parameters=["x"], code="x = x + 1; return x;"),
        CustomFunction(name="kind", parameters=["x"], code="return typeof x;"),
    ]
    api = merge_extensions(base, fns)
    assert render(api, "me.inc(1)") == "2"
    assert render(api, "me.kind()") == "undefined"


def test_conflict_keeps_base_without_override(base):
    conflicts = []
    hijack = CustomFunction(name="getValue", parameters=["k"], code="return 'hijacked';")
    api = merge_extensions(base, [hijack], on_conflict=conflicts.append)
    assert conflicts == ["getValue"]
    assert api["getValue"] is base["getValue"]
    assert render(api, "me.getValue('DoseWeightKG')") == render(base, "me.getValue('DoseWeightKG')") == "5"


def test_conflict_replaces_base_with_override(base):
    conflicts = []
    hijack = CustomFunction(name="getValue", parameters=["k"], code="return 'hijacked';")
    api = merge_extensions(base, [hijack], allow_override=True, on_conflict=conflicts.append)
    assert conflicts == ["getValue"]
    assert render(api, "me.getValue('DoseWeightKG')") == "hijacked"


@pytest.mark.parametrize(
    "fn",
    [
        CustomFunction(name="1bad", code="return 1;"),
        CustomFunction(name="return", code="return 1;"),
        CustomFunction(name="_hidden", code="return 1;"),
        CustomFunction(name="dup", parameters=["a", "a"], code="return a;"),
        CustomFunction(name="params", parameters=["not valid"], code="return 1;"),
        CustomFunction(name="broken", code="return (;"),
        CustomFunction(name="huge", code="return 1;" + " " * (ext.MAX_SOURCE_BYTES + 1)),
    ],
)
def test_invalid_functions_are_rejected(base, fn):
    with pytest.raises(ExtensionError):
        merge_extensions(base, [fn])


def test_second_merge_is_served_from_cache(base, monkeypatch):
    cache = CompiledCache()
    calls = {"n": 0}
    orig_prepare = ext.prepare_source

    def counting_prepare(code):
        calls["n"] += 1
        return orig_prepare(code)

    monkeypatch.setattr(ext, "prepare_source", counting_prepare)
    fn = CustomFunction(name="double", parameters=["x"], code="return x * 2;")

    merge_extensions(base, [fn], cache=cache)
    first = calls["n"]
    merge_extensions(base, [fn], cache=cache)

    assert first == 1
    assert calls["n"] == first
    assert cache.hits == 1
    assert cache.misses == 1


def test_runaway_recursion_between_extensions_is_contained(base):
    api = merge_extensions(base, [CustomFunction(name="loop", code="return api.loop();")])
    out = render(api, "me.loop()")
    assert 'data-error="TimeoutError"' in out


def test_extensions_survive_test_bindings(base):
    api = merge_extensions(base, [CustomFunction(name="w", code="return api.getValue('DoseWeightKG');")])
    out = render_segment(dyn("me.w()"), api.store, api=api, bindings={"DoseWeightKG": 9})
    assert out == "9"


SPIN = CustomFunction(name="spin", code="let t = 0; for (let i = 0; i < 15000; i++) { t += i; } return t;")
SPIN_LOOP = "let s = 0; for (let k = 0; k < 40; k++) { s += me.spin(); } return s;"


def test_extension_calls_draw_from_the_segment_step_budget(base):
    api = merge_extensions(base, [SPIN])
    limits = ExecutionLimits(max_steps=5000, timeout_seconds=30)
    out = render_segment(dyn(SPIN_LOOP), api.store, api=api, limits=limits)
    assert 'data-error="TimeoutError"' in out
    assert "5000 steps" in out


def test_extension_calls_share_the_segment_deadline(base):
    api = merge_extensions(base, [SPIN])
    limits = ExecutionLimits(max_steps=10**9, timeout_seconds=0.05)
    started = time.monotonic()
    out = render_segment(dyn(SPIN_LOOP), api.store, api=api, limits=limits)
    assert 'data-error="TimeoutError"' in out
    assert time.monotonic() - started < 2.0


def test_extension_limits_default_to_settings(base, monkeypatch):
    monkeypatch.setenv("TPN_EVAL_MAX_STEPS", "1000")
    api = merge_extensions(base, [SPIN])
    assert api["spin"].limits.max_steps == 1000
    out = render(api, "me.spin()")
    assert 'data-error="TimeoutError"' in out
