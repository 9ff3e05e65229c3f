from fastapi import FastAPI
from fastapi.testclient import TestClient

from tpn_notes.api.middleware.error_shaping import SafeErrorMiddleware
from tpn_notes.api.middleware.request_context import RequestContextMiddleware, SecurityHeadersMiddleware

NOTE_LINES = [{"TEXT": "Weight:"}, {"TEXT": "[f(me.getValue('DoseWeightKG'))]"}]


def test_health(client):
    assert client.get("/health/live").json() == {"status": "ok"}
    r = client.get("/health/ready")
    assert r.status_code == 200
    assert r.json() == {"status": "ready"}


def test_request_id_is_echoed(client):
    r = client.get("/health/live", headers={"X-Request-Id": "abc-123"})
    assert r.headers["X-Request-Id"] == "abc-123"
    assert client.get("/health/live").headers["X-Request-Id"]


def test_metrics_endpoints(client):
    client.get("/health/live")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "tpn_http_requests_total" in r.text

    snap = client.get("/metrics/snapshot").json()
    assert snap["health_live"] == 1
    assert {"hits", "misses"} <= set(snap["compiled_cache"])


def test_unhandled_errors_are_shaped():
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(SafeErrorMiddleware)

    @app.get("/boom")
    def boom():
        raise RuntimeError("secret detail")

    r = TestClient(app, raise_server_exceptions=False).get("/boom", headers={"X-Request-Id": "rid-1"})
    assert r.status_code == 500
    assert r.json() == {"detail": "Internal Server Error", "request_id": "rid-1"}
    assert "secret" not in r.text


def test_security_headers_when_enabled():
    app = FastAPI()
    app.add_middleware(SecurityHeadersMiddleware, enabled=True)

    @app.get("/x")
    def x():
        return {}

    r = TestClient(app).get("/x")
    assert r.headers["X-Content-Type-Options"] == "nosniff"
    assert "script-src" not in r.headers["Content-Security-Policy"]


def test_parse_and_serialize(client):
    segments = client.post("/api/v1/notes/parse", json={"lines": NOTE_LINES}).json()["segments"]
    assert [s["kind"] for s in segments] == ["static", "dynamic"]
    assert segments[1]["content"] == "me.getValue('DoseWeightKG')"

    lines = client.post("/api/v1/notes/serialize", json={"segments": segments}).json()["lines"]
    assert lines == [
        {"TEXT": "Weight:"},
        {"TEXT": "[f("},
        {"TEXT": "me.getValue('DoseWeightKG')"},
        {"TEXT": ")]"},
    ]


def test_dependencies(client):
    body = client.post("/api/v1/notes/dependencies", json={"code": "me.getValue('TotalVolume')"}).json()
    assert body["direct"] == ["TotalVolume"]
    assert body["transitive"] == ["DoseWeightKG", "TotalVolume", "VolumePerKG"]
    assert body["required_inputs"] == ["DoseWeightKG", "VolumePerKG"]


def test_render(client):
    r = client.post(
        "/api/v1/notes/render",
        json={
            "lines": ["Volume:", "[f(me.getValue('TotalVolume'))]"],
            "values": {"DoseWeightKG": 10, "VolumePerKG": 100, "TotalVolume": 5},
        },
    )
    body = r.json()
    assert body["html"] == "Volume:<br>1000"
    assert body["segment_count"] == 2
    assert body["ignored_keys"] == ["TotalVolume"]


def test_render_with_bindings_and_extensions(client):
    r = client.post(
        "/api/v1/notes/render",
        json={
            "segments": [{"id": 1, "kind": "dynamic", "content": "me.twice(me.getValue('Fat'))"}],
            "values": {"Fat": 1},
            "bindings": {"1": {"Fat": 4}},
            "custom_functions": [{"name": "twice", "parameters": ["x"], "code": "return x * 2;"}],
        },
    )
    assert r.json()["html"] == "8"


def test_render_rejects_invalid_extension(client):
    r = client.post(
        "/api/v1/notes/render",
        json={"lines": ["x"], "custom_functions": [{"name": "1bad", "code": "return 1;"}]},
    )
    assert r.status_code == 400


def test_render_page_escapes_title(client):
    r = client.post("/api/v1/notes/render/page", json={"lines": ["Hello"], "title": "<x>"})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert "&lt;x&gt;" in r.text
    assert "Hello" in r.text


def test_run_test_cases(client):
    segment = {
        "id": 1,
        "kind": "dynamic",
        "content": "me.getValue('DoseWeightKG') * 2",
        "testCases": [
            {"name": "a", "variables": {"DoseWeightKG": 2}, "expected": "4"},
            {"name": "b", "variables": {"DoseWeightKG": 3}, "expected": "7"},
        ],
    }
    body = client.post("/api/v1/notes/test-cases/run", json={"segment": segment}).json()
    assert (body["total"], body["passed"], body["failed"]) == (2, 1, 1)
    assert body["results"][1]["actual"] == "6"

    only_a = client.post("/api/v1/notes/test-cases/run", json={"segment": segment, "names": ["a"]}).json()
    assert only_a["total"] == 1

    r = client.post("/api/v1/notes/test-cases/run", json={"segment": segment, "names": ["zzz"]})
    assert r.status_code == 404

    static = {"id": 1, "kind": "static", "content": "x"}
    assert client.post("/api/v1/notes/test-cases/run", json={"segment": static}).status_code == 400


def test_validation_check(client):
    body = client.post("/api/v1/validation/check", json={"key": "potassium", "value": 7}).json()
    assert body["key"] == "Potassium"
    assert body["severity"] == "firm"
    assert body["threshold_name"] == "Critical_High"
    assert body["message"] == "The value of 7 mEq/kg/day is above the Critical High of 6 mEq/kg/day"

    adhoc = client.post(
        "/api/v1/validation/check",
        json={"key": "Potassium", "value": 7, "uom": "", "reference_range": [{"THRESHOLD": "Feasible High", "VALUE": 5}]},
    ).json()
    assert adhoc["severity"] == "hard"
    assert adhoc["message"] == "The value of 7 is above the Feasible High of 5"


def test_documents(client):
    assert client.get("/api/v1/documents/nope").status_code == 404
    assert client.put("/api/v1/documents/doc-a", json={}).status_code == 400

    saved = client.put("/api/v1/documents/doc-a", json={"lines": NOTE_LINES}).json()
    assert saved["id"] == "doc-a"
    assert saved["metadata"]["segment_count"] == 2

    client.put("/api/v1/documents/doc-a", json={"lines": ["Only text"]})
    loaded = client.get("/api/v1/documents/doc-a").json()
    assert loaded["metadata"]["revision"] == 2
    assert loaded["segments"][0]["content"] == "Only text"


def test_session_flow(client, session_registry, audit_path):
    r = client.post("/api/v1/sessions", json={"lines": NOTE_LINES, "values": {"DoseWeightKG": 10}})
    assert r.status_code == 201
    created = r.json()
    sid = created["id"]
    assert created["required_inputs"] == ["DoseWeightKG"]

    r = client.put(f"/api/v1/sessions/{sid}/values", json={"values": {"Potassium": 2, "TotalVolume": 1}})
    assert r.json()["ignored_keys"] == ["TotalVolume"]
    assert client.get(f"/api/v1/sessions/{sid}/values/potassium").json() == {
        "key": "Potassium",
        "value": 2,
        "stored": True,
    }

    declined = client.post(f"/api/v1/sessions/{sid}/value-change", json={"key": "Potassium", "value": 7}).json()
    assert declined["user_action"] == "reverted"
    assert declined["accepted_value"] == 2
    assert declined["old_value"] == 2
    assert len(declined["confirmations"]) == 1

    confirmed = client.post(
        f"/api/v1/sessions/{sid}/value-change",
        json={"key": "Potassium", "value": 7, "confirm": True},
    ).json()
    assert confirmed["user_action"] == "confirmed"
    assert confirmed["warning"] is True
    assert client.get(f"/api/v1/sessions/{sid}/values/Potassium").json()["value"] == 7

    events = client.get(f"/api/v1/sessions/{sid}/validation-events").json()
    assert events["count"] == 2
    assert {e["actor"] for e in events["events"]} == {"nurse-1"}
    assert audit_path.read_text(encoding="utf-8").count('"type":"validation"') == 2

    assert client.get(f"/api/v1/sessions/{sid}/validation-events?key=Fat").json()["count"] == 0
    assert client.delete(f"/api/v1/sessions/{sid}/validation-events").json() == {"cleared": 2}

    assert client.post(f"/api/v1/sessions/{sid}/render").json()["html"] == "Weight:<br>10"

    loaded = client.post(f"/api/v1/sessions/{sid}/test-cases/load", json={"segment_id": 2, "name": "Default"})
    assert loaded.status_code == 200
    missing = client.post(f"/api/v1/sessions/{sid}/test-cases/load", json={"segment_id": 2, "name": "x"})
    assert missing.status_code == 404

    assert client.delete(f"/api/v1/sessions/{sid}").status_code == 204
    assert client.get(f"/api/v1/sessions/{sid}").status_code == 404
    assert client.delete(f"/api/v1/sessions/{sid}").status_code == 404


def test_session_from_document(client, session_registry):
    client.put("/api/v1/documents/doc-s", json={"lines": NOTE_LINES})
    r = client.post("/api/v1/sessions", json={"document_id": "doc-s"})
    assert r.status_code == 201
    assert len(r.json()["segments"]) == 2
    assert client.post("/api/v1/sessions", json={"document_id": "missing"}).status_code == 404


def test_session_rejects_invalid_extension(client, session_registry):
    r = client.post("/api/v1/sessions", json={"custom_functions": [{"name": "1bad", "code": "return 1;"}]})
    assert r.status_code == 400
    assert len(session_registry) == 0


def test_parameter_catalog(client):
    body = client.get("/api/v1/parameters").json()
    assert "DoseWeightKG" in body["input_keys"]
    assert "TotalVolume" in body["derived"]
    assert "TotalVolume" not in body["input_keys"]
    assert body["defaults"]["DoseWeightKG"] == 70
    assert "Sodium" in body["categories"]["ELECTROLYTES"]


def test_describe_parameter(client):
    body = client.get("/api/v1/parameters/totalvolume").json()
    assert body["key"] == "TotalVolume"
    assert body["unit"] == "mL"
    assert body["derived"] is True
    assert body["prerequisites"] == ["VolumePerKG", "DoseWeightKG"]
    assert body["closure"] == ["DoseWeightKG", "VolumePerKG"]

    sodium = client.get("/api/v1/parameters/Sodium").json()
    assert (sodium["category"], sodium["derived"], sodium["closure"]) == ("ELECTROLYTES", False, [])
    assert client.get("/api/v1/parameters/Osmolarity").json()["key"] == "OsmoValue"
    assert client.get("/api/v1/parameters/Bogus").status_code == 404


def test_session_with_default_values(client, session_registry):
    body = client.post("/api/v1/sessions", json={"use_defaults": True, "values": {"DoseWeightKG": 12}}).json()
    assert body["values"]["DoseWeightKG"] == 12
    assert body["values"]["VolumePerKG"] == 100
