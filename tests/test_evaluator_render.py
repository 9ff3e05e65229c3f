import pytest

from tpn_notes.core.evaluator.api import build_base_api
from tpn_notes.core.evaluator.renderer import error_marker, render_document, render_preview_page, render_segment
from tpn_notes.core.notes.codec import parse_notes
from tpn_notes.core.notes.models import Segment
from tpn_notes.core.observability.metrics import snapshot_named
from tpn_notes.core.params.store import ParameterStore
from tpn_notes.core.sandbox import ExecutionLimits, SandboxReferenceError

FAST = ExecutionLimits(max_steps=5_000, timeout_seconds=0.5)


def dyn(code, seg_id=1):
    return Segment(id=seg_id, kind="dynamic", content=code)


def test_dynamic_segment_renders_value():
    store = ParameterStore({"DoseWeightKG": 5})
    assert render_segment(dyn("me.getValue('DoseWeightKG') * 2"), store) == "10"


def test_static_segment_is_sanitised():
    seg = Segment(id=1, kind="static", content="<script>alert(1)</script>Hello\n<b onclick='x()'>World</b>")
    assert render_segment(seg, ParameterStore()) == "Hello<br><b>World</b>"


def test_dynamic_html_output_keeps_inline_style():
    out = render_segment(dyn("me.redText('Check K+')"), ParameterStore())
    assert out == '<span style="color: red; font-weight: bold;">Check K+</span>'


def test_undefined_and_null_render_empty():
    assert render_segment(dyn("undefined"), ParameterStore()) == ""
    assert render_segment(dyn("null"), ParameterStore()) == ""


def test_host_access_renders_reference_error_marker():
    out = render_segment(dyn("return window.location.href;"), ParameterStore())
    assert 'class="tpn-error"' in out
    assert 'data-error="ReferenceError"' in out
    assert "window is not defined" in out


def test_error_marker_escapes_message():
    out = error_marker(SandboxReferenceError("<b> is not defined"))
    assert "&lt;b&gt;" in out


def test_timeout_does_not_abort_siblings():
    segments = parse_notes(["Before", "[f(", "while (true) {}", ")]", "[f(1 + 1)]", "After"])
    out = render_document(segments, ParameterStore(), limits=FAST)
    parts = out.split("<br>")
    assert parts[0] == "Before"
    assert 'data-error="TimeoutError"' in parts[1]
    assert parts[2] == "2"
    assert parts[3] == "After"
    assert snapshot_named().get("render_dynamic_timeout") == 1


def test_render_is_side_effect_free():
    store = ParameterStore({"DoseWeightKG": 5})
    before = store.snapshot()
    code = "leaked = 1; me.getObject('DoseWeightKG').val(99); return me.getValue('DoseWeightKG');"
    assert render_segment(dyn(code), store) == "5"
    assert render_segment(dyn(code), store) == "5"
    assert store.snapshot() == before


def test_bindings_override_without_mutating_store():
    store = ParameterStore({"DoseWeightKG": 5})
    out = render_segment(dyn("me.getValue('DoseWeightKG')"), store, bindings={"DoseWeightKG": 7})
    assert out == "7"
    assert store.get_stored("DoseWeightKG") == 5


def test_document_bindings_apply_per_segment():
    store = ParameterStore({"DoseWeightKG": 5})
    segs = [dyn("me.getValue('DoseWeightKG')", 1), dyn("me.getValue('DoseWeightKG')", 2)]
    assert render_document(segs, store, bindings={2: {"DoseWeightKG": 8}}) == "5<br>8"


def test_multiline_statement_block():
    store = ParameterStore({"DoseWeightKG": 12})
    code = "var w = me.getValue('DoseWeightKG');\nif (w > 10) {\n  return 'Adult: ' + w + ' kg';\n}\nreturn 'Child';"
    assert render_segment(dyn(code), store) == "Adult: 12 kg"


@pytest.mark.parametrize(
    "code,expected",
    [
        ("me.formatNumber(me.getValue('TPNrate'), 1)", "41.7"),
        ("me.maxP(me.getValue('LipidVolTotal'))", "150"),
        ("me.getPreference('CENTER_NAME')", "Medical Center"),
        ("me.getPreference('MISSING', 'dflt')", "dflt"),
        ("me.getObject('#DoseWeightKG').val()", "10"),
        ("me.getObject('DoseWeightKG').data('uom')", "kg"),
        ("me.getObject('admixturecheckbox').is(':checked')", "false"),
        ("me.getObject('Nothing').val() === ''", "true"),
        ("api.kpt.formatVolume(me.getValue('TotalVolume'))", "1000 mL"),
        ("me.showIf(me.getValue('DoseWeightKG') > 5, 'heavy')", "heavy"),
        ("me.roundTo(2.346, 2)", "2.35"),
    ],
)
def test_api_surface(code, expected, store):
    assert render_segment(dyn(code), store) == expected


def test_api_exposes_only_listed_names(store):
    out = render_segment(dyn("return [typeof me.store, typeof me._entries, typeof me.getValue].join(',');"), store)
    assert out == "undefined,undefined,function"


def test_preferences_override_defaults():
    api = build_base_api(ParameterStore(), {"CENTER_NAME": "Children's"})
    out = render_segment(dyn("me.pref('CENTER_NAME')"), ParameterStore(), api=api)
    assert out == "Children's"


def test_preview_page_escapes_title(store):
    page = render_preview_page([dyn("1 + 1")], store, title="<Note>")
    assert "&lt;Note&gt;" in page
    assert "<main class=\"tpn-note\">" in page
    assert "1 segments (1 dynamic)" in page
