import pytest
from fastapi.testclient import TestClient

from tpn_notes.api import deps
from tpn_notes.api.main import app
from tpn_notes.core.observability.audit import close_handlers
from tpn_notes.core.observability.metrics import reset_metrics
from tpn_notes.core.params.store import ParameterStore


@pytest.fixture(autouse=True)
def _isolated_runtime(tmp_path, monkeypatch):
    # Audit lines go to a per-test file; counters start from zero
    monkeypatch.setenv("TPN_ENV", "dev")
    monkeypatch.setenv("TPN_AUDIT_PATH", str(tmp_path / "audit.log"))
    monkeypatch.delenv("TPN_REFERENCE_RANGES_FILE", raising=False)
    reset_metrics()
    yield
    close_handlers()


@pytest.fixture()
def audit_path(tmp_path):
    return tmp_path / "audit.log"


@pytest.fixture()
def client():
    return TestClient(app, headers={"X-User-Id": "nurse-1"})


@pytest.fixture()
def session_registry():
    deps.sessions.clear()
    yield deps.sessions
    deps.sessions.clear()


@pytest.fixture()
def store():
    return ParameterStore({"DoseWeightKG": 10, "VolumePerKG": 100, "Fat": 3, "prefFatConcentration": 0.2})
