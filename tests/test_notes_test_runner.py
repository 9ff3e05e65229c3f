from tpn_notes.core.notes.models import Segment, TestCase
from tpn_notes.core.notes.test_runner import matches, run_test_cases, summary_dict
from tpn_notes.core.params.store import ParameterStore


def _segment():
    return Segment(
        id=3,
        kind="dynamic",
        content="var w = me.getValue('DoseWeightKG');\nreturn w > 10 ? 'Adult\\n' + me.boldText(w) : 'Child';",
        test_cases=[
            TestCase(name="adult", variables={"DoseWeightKG": 70}, expected="Adult\n70"),
            TestCase(name="child", variables={"DoseWeightKG": 5}, expected="Chi", match_type="contains"),
            TestCase(name="pattern", variables={"DoseWeightKG": 12}, expected=r"^Adult\s+\d+$", match_type="regex"),
            TestCase(name="wrong", variables={"DoseWeightKG": 5}, expected="Adult"),
        ],
    )


def test_run_test_cases_reports_each_case():
    store = ParameterStore({"DoseWeightKG": 1})
    summary = run_test_cases(_segment(), store)

    by_name = {r.name: r for r in summary.results}
    assert by_name["adult"].passed
    assert by_name["adult"].actual == "Adult\n70"
    assert by_name["child"].passed
    assert by_name["pattern"].passed
    assert not by_name["wrong"].passed
    assert summary.total == 4 and summary.passed == 3 and summary.failed == 1
    assert not summary.all_passed
    assert store.get_stored("DoseWeightKG") == 1


def test_errors_are_reported_not_raised():
    seg = Segment(id=1, kind="dynamic", content="return document.title;", test_cases=[TestCase(name="t", expected="x")])
    result = run_test_cases(seg, ParameterStore()).results[0]
    assert not result.passed
    assert "ReferenceError" in result.html
    assert result.error and "document is not defined" in result.error


def test_invalid_regex_fails_the_case():
    seg = Segment(id=1, kind="dynamic", content="'x'", test_cases=[TestCase(name="r", expected="(", match_type="regex")])
    result = run_test_cases(seg, ParameterStore()).results[0]
    assert not result.passed
    assert result.error.startswith("Invalid regular expression")


def test_matches_and_summary_dict():
    assert matches("  hello ", "hello", "exact")
    assert not matches("hello world", "world", "exact")
    assert matches("hello world", "world", "contains")
    summary = run_test_cases(_segment(), ParameterStore())
    body = summary_dict(summary)
    assert body["segment_id"] == 3
    assert [r["name"] for r in body["results"]] == ["adult", "child", "pattern", "wrong"]
