from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from tpn_notes.core.evaluator.api import ApiSurface
from tpn_notes.core.evaluator.renderer import render_segment
from tpn_notes.core.params.store import ParameterStore
from tpn_notes.core.sandbox import ExecutionLimits

from .models import Segment, TestCase
from .sanitize import strip_html

_log = logging.getLogger("tpn.render")

_ERROR_MARKER = 'class="tpn-error"'


@dataclass(frozen=True)
class TestCaseResult:
    __test__ = False

    name: str
    passed: bool
    actual: str
    expected: str
    match_type: str
    html: str = ""
    error: Optional[str] = None


@dataclass(frozen=True)
class TestRunSummary:
    __test__ = False

    segment_id: int
    results: List[TestCaseResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.passed)

    @property
    def failed(self) -> int:
        return self.total - self.passed

    @property
    def all_passed(self) -> bool:
        return self.failed == 0


def matches(actual: str, expected: str, match_type: str) -> bool:
    if match_type == "contains":
        return expected.strip() in actual
    if match_type == "regex":
        return re.search(expected, actual) is not None
    return actual.strip() == expected.strip()


def run_test_case(
    segment: Segment,
    test_case: TestCase,
    store: ParameterStore,
    *,
    api: Optional[ApiSurface] = None,
    limits: Optional[ExecutionLimits] = None,
) -> TestCaseResult:
    rendered = render_segment(segment, store, bindings=test_case.variables, api=api, limits=limits)
    actual = strip_html(rendered.replace("<br>", "\n"))
    error = actual.strip() if _ERROR_MARKER in rendered else None

    try:
        passed = matches(actual, test_case.expected, test_case.match_type)
    except re.error as exc:
        passed = False
        error = f"Invalid regular expression: {exc}"

    return TestCaseResult(
        name=test_case.name,
        passed=passed,
        actual=actual,
        expected=test_case.expected,
        match_type=test_case.match_type,
        html=rendered,
        error=error,
    )


def run_test_cases(
    segment: Segment,
    store: ParameterStore,
    *,
    test_cases: Optional[List[TestCase]] = None,
    api: Optional[ApiSurface] = None,
    limits: Optional[ExecutionLimits] = None,
) -> TestRunSummary:
    """Evaluate each test case's bindings and compare the text output with its expectation."""
    cases = segment.test_cases if test_cases is None else test_cases
    results = [run_test_case(segment, tc, store, api=api, limits=limits) for tc in cases]
    summary = TestRunSummary(segment_id=segment.id, results=results)
    _log.info("Segment %s test cases: %d/%d passed", segment.id, summary.passed, summary.total)
    return summary


def summary_dict(summary: TestRunSummary) -> Mapping[str, Any]:
    return {
        "segment_id": summary.segment_id,
        "total": summary.total,
        "passed": summary.passed,
        "failed": summary.failed,
        "results": [
            {
                "name": r.name,
                "passed": r.passed,
                "actual": r.actual,
                "expected": r.expected,
                "match_type": r.match_type,
                "error": r.error,
            }
            for r in summary.results
        ],
    }
