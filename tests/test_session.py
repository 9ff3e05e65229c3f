import pytest

from tpn_notes.core.collaborators import (
    DocumentNotFound,
    HeaderIdentity,
    InMemoryDocumentStore,
    StaticDecision,
)
from tpn_notes.core.evaluator.extensions import CustomFunction
from tpn_notes.core.notes.codec import parse_notes
from tpn_notes.core.notes.models import Segment, TestCase
from tpn_notes.core.session import SessionNotFound, SessionRegistry, TestCaseNotFound
from tpn_notes.core.validation.models import UserAction


def weight_segments():
    return [
        Segment(id=1, kind="static", content="Weight:"),
        Segment(
            id=2,
            kind="dynamic",
            content="me.getValue('DoseWeightKG')",
            test_cases=[TestCase(name="Neonate", variables={"DoseWeightKG": 3}, expected="3")],
        ),
    ]


@pytest.fixture()
def registry():
    return SessionRegistry()


def test_registry_lifecycle(registry):
    session = registry.create(segments=weight_segments())
    assert registry.get(session.id) is session
    assert len(registry) == 1
    registry.delete(session.id)
    with pytest.raises(SessionNotFound):
        registry.get(session.id)
    with pytest.raises(SessionNotFound):
        registry.delete(session.id)


def test_sessions_do_not_share_values(registry):
    a = registry.create(values={"DoseWeightKG": 10})
    b = registry.create(values={"DoseWeightKG": 20})
    a.set_values({"Fat": 2})
    assert a.get_value("DoseWeightKG") == 10
    assert b.get_value("DoseWeightKG") == 20
    assert not b.store.has("Fat")


def test_set_values_reports_derived_keys(registry):
    session = registry.create()
    assert session.set_values({"DoseWeightKG": 12, "TotalVolume": 5}) == ["TotalVolume"]


def test_required_inputs_cover_dynamic_segments(registry):
    session = registry.create(segments=weight_segments())
    assert session.required_inputs() == ["DoseWeightKG"]


def test_render_uses_store_then_test_case(registry):
    session = registry.create(segments=weight_segments(), values={"DoseWeightKG": 10})
    assert session.render() == "Weight:<br>10"

    assert session.load_test_case(2, "Neonate") == {"DoseWeightKG": 3}
    assert session.active_test_cases == {2: "Neonate"}
    assert session.render(use_test_cases=True) == "Weight:<br>3"


def test_unknown_test_case(registry):
    session = registry.create(segments=weight_segments())
    with pytest.raises(TestCaseNotFound):
        session.load_test_case(2, "Adult")
    with pytest.raises(TestCaseNotFound):
        session.load_test_case(9, "Neonate")


def test_replace_segments_drops_active_test_cases(registry):
    session = registry.create(segments=weight_segments())
    session.load_test_case(2, "Neonate")
    session.replace_segments(parse_notes(["Plain text"]))
    assert session.active_test_cases == {}
    assert session.render() == "Plain text"


def test_change_value_hard_keeps_stored_value(registry):
    session = registry.create(values={"Potassium": 2}, identity=HeaderIdentity("rn-1"))
    prompt = StaticDecision()
    outcome = session.change_value("Potassium", 12, prompt)
    assert outcome.user_action == UserAction.REVERTED
    assert session.get_value("Potassium") == 2
    assert len(prompt.alerts) == 1
    assert session.log.events()[0].actor == "rn-1"


def test_change_value_firm_confirmed_stores_value(registry):
    session = registry.create(values={"Potassium": 2})
    outcome = session.change_value("Potassium", 7, StaticDecision(confirm=True))
    assert outcome.user_action == UserAction.CONFIRMED
    assert session.get_value("Potassium") == 7
    assert session.warnings == {"Potassium"}
    assert session.to_dict()["warnings"] == ["Potassium"]


def test_change_value_defaults_to_declining(registry):
    session = registry.create(values={"Potassium": 2})
    outcome = session.change_value("Potassium", 7)
    assert outcome.user_action == UserAction.REVERTED
    assert session.get_value("Potassium") == 2
    assert session.warnings == set()


def test_change_value_identity_override(registry):
    session = registry.create(identity=HeaderIdentity("rn-1"))
    session.change_value("Potassium", 5, identity=HeaderIdentity("rn-2"))
    assert session.log.events()[0].actor == "rn-2"


def test_reverting_to_nothing_removes_key(registry):
    session = registry.create()
    session.change_value("Potassium", 50)
    assert not session.store.has("Potassium")


def test_custom_functions_reach_rendering(registry):
    session = registry.create(
        segments=[Segment(id=1, kind="dynamic", content="me.half(me.getValue('DoseWeightKG'))")],
        values={"DoseWeightKG": 8},
        custom_functions=[CustomFunction(name="half", parameters=["x"], code="return x / 2;")],
    )
    assert session.render() == "4"


def test_document_store_revisions():
    docs = InMemoryDocumentStore()
    doc_id = docs.save(None, weight_segments())
    docs.save(doc_id, weight_segments()[:1])
    segments, metadata = docs.load(doc_id)
    assert len(segments) == 1
    assert metadata == {"id": doc_id, "revision": 2, "segment_count": 1}
    assert doc_id in docs
    with pytest.raises(DocumentNotFound):
        docs.load("missing")


def test_document_store_returns_copies():
    docs = InMemoryDocumentStore()
    doc_id = docs.save("a", weight_segments())
    segments, _ = docs.load(doc_id)
    segments[0].content = "changed"
    assert docs.load(doc_id)[0][0].content == "Weight:"


def test_header_identity_defaults_to_anonymous():
    assert HeaderIdentity.from_headers({}).current_user() == {"id": "anonymous"}
    assert HeaderIdentity("  ").user_id == "anonymous"


def test_clearing_a_value_removes_it(registry):
    session = registry.create(values={"Potassium": 2})
    session.change_value("Potassium", None)
    assert not session.store.has("Potassium")


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_idle_sessions_expire():
    clock = FakeClock()
    registry = SessionRegistry(idle_seconds=60, clock=clock)
    stale = registry.create()
    clock.now += 30
    fresh = registry.create()
    clock.now += 45
    with pytest.raises(SessionNotFound):
        registry.get(stale.id)
    assert registry.get(fresh.id) is fresh
    assert len(registry) == 1


def test_access_keeps_session_alive():
    clock = FakeClock()
    registry = SessionRegistry(idle_seconds=60, clock=clock)
    session = registry.create()
    for _ in range(5):
        clock.now += 50
        assert registry.get(session.id) is session


def test_capacity_evicts_least_recently_used():
    clock = FakeClock()
    registry = SessionRegistry(max_sessions=3, clock=clock)
    ids = []
    for _ in range(3):
        ids.append(registry.create().id)
        clock.now += 1
    registry.get(ids[0])
    clock.now += 1
    newest = registry.create()
    assert len(registry) == 3
    with pytest.raises(SessionNotFound):
        registry.get(ids[1])
    registry.get(ids[0])
    registry.get(newest.id)


def test_registry_limits_come_from_settings(monkeypatch):
    monkeypatch.setenv("TPN_SESSION_MAX", "7")
    monkeypatch.setenv("TPN_SESSION_IDLE_SECONDS", "120")
    registry = SessionRegistry()
    assert registry.max_sessions == 7
    assert registry.idle_seconds == 120.0
