from tpn_notes.core.notes.codec import (
    is_valid_note_format,
    parse_notes,
    serialize_segments,
    serialize_to_strings,
)
from tpn_notes.core.notes.models import Segment


def _kinds(segments):
    return [(s.kind, s.content) for s in segments]


def test_static_lines_are_coalesced():
    segs = parse_notes([{"TEXT": "Line one"}, {"TEXT": "Line two"}])
    assert _kinds(segs) == [("static", "Line one\nLine two")]
    assert segs[0].id == 1


def test_multiline_dynamic_block():
    lines = ["Intro", "[f(", "return me.getValue('DoseWeightKG') * 2;", ")]", "Outro"]
    segs = parse_notes(lines)
    assert _kinds(segs) == [
        ("static", "Intro"),
        ("dynamic", "return me.getValue('DoseWeightKG') * 2;"),
        ("static", "Outro"),
    ]
    assert [s.id for s in segs] == [1, 2, 3]
    assert segs[1].test_cases[0].name == "Default"


def test_text_before_and_after_delimiters_on_one_line():
    segs = parse_notes(["Weight: [f(me.getValue('DoseWeightKG'))] kg"])
    assert _kinds(segs) == [
        ("static", "Weight:"),
        ("dynamic", "me.getValue('DoseWeightKG')"),
        ("static", "kg"),
    ]


def test_nested_open_delimiter_is_kept_verbatim():
    segs = parse_notes(["[f(", "var a = '[f(';", "a", ")]"])
    assert _kinds(segs) == [("dynamic", "var a = '[f(';\na")]


def test_unclosed_open_delimiter_absorbs_remaining_lines():
    lines = ["Header", "[f(", "1 + 1", "More text", "Even more"]
    first = parse_notes(lines)
    second = parse_notes(lines)
    assert _kinds(first) == _kinds(second)
    assert first[-1].kind == "dynamic"
    assert first[-1].content == "1 + 1\nMore text\nEven more"
    assert len(first) == 2


def test_empty_and_none_input():
    assert parse_notes(None) == []
    assert parse_notes([]) == []
    assert parse_notes([{"TEXT": "   "}]) == []


def test_serialize_emits_delimiter_lines():
    segs = [
        Segment(id=1, kind="static", content="A\nB"),
        Segment(id=2, kind="dynamic", content="1 + 2"),
    ]
    assert serialize_to_strings(segs) == ["A", "B", "[f(", "1 + 2", ")]"]
    records = [line.model_dump(by_alias=True) for line in serialize_segments(segs)]
    assert records[0] == {"TEXT": "A"}
    assert is_valid_note_format(records)


def test_round_trip_is_idempotent_after_first_parse():
    notes = [
        {"TEXT": "Patient on TPN."},
        {"TEXT": "Volume: [f(me.getValue('TotalVolume'))] mL today"},
        {"TEXT": "[f("},
        {"TEXT": "var w = me.getValue('DoseWeightKG');"},
        {"TEXT": "return w > 10 ? 'big' : 'small';"},
        {"TEXT": ")]"},
        {"TEXT": "Signed."},
    ]
    once = parse_notes(notes)
    twice = parse_notes(serialize_segments(once))
    assert _kinds(twice) == _kinds(once)


def test_is_valid_note_format_rejects_other_shapes():
    assert not is_valid_note_format("text")
    assert not is_valid_note_format([{"TEXT": 1}])
    assert not is_valid_note_format([{"text": "lowercase"}])
    assert is_valid_note_format([])
