import pytest

from conftest import PNG_BYTES, analysis_json, build_active_lease, build_property, build_unit, make_user
from concierge import maintenance as triage


@pytest.mark.parametrize(
    "description, category, severity",
    [
        ("The kitchen sink is leaking", "Plumbing", "High"),
        ("I smell smoke near the outlet", "Electrical", "Critical"),
        ("Front door lock is jammed", "Security", "High"),
        ("Room will not cool down", "HVAC", "Medium"),
        ("Paint is peeling", "General Maintenance", "Medium"),
    ],
)
def test_keyword_triage(description, category, severity):
    analysis = triage.keyword_triage(description)
    assert analysis.category == category
    assert analysis.severity == severity
    assert analysis.confidence == triage.FALLBACK_CONFIDENCE
    assert analysis.source == "keywords"


def test_keyword_rules_apply_in_order():
    # Water wins over electric because plumbing is checked first.
    assert triage.keyword_triage("water dripping onto the electric fan").category == "Plumbing"


def test_priority_mapping():
    assert triage.keyword_triage("sparks from socket").priority() == "critical"
    assert triage.keyword_triage("leak").priority() == "warning"
    assert triage.keyword_triage("squeaky hinge").priority() == "info"


def test_parse_analysis_accepts_fenced_json():
    analysis = triage.parse_analysis("```json\n" + analysis_json(severity="critical") + "\n```")
    assert analysis.severity == "Critical"
    assert analysis.source == "model"


@pytest.mark.parametrize(
    "reply",
    [
        "not json at all",
        "[1, 2, 3]",
        analysis_json(severity="Catastrophic"),
        analysis_json(confidence=7),
    ],
)
def test_parse_analysis_rejects_bad_replies(reply):
    assert triage.parse_analysis(reply) is None


def test_analyze_request_uses_model(fake_ai):
    fake_ai.reply = analysis_json(category="Appliance", severity="Low")
    result = triage.analyze_request(fake_ai, "gemini-test", "  Fridge hums  ", subject_id="u1")
    assert result.category == "Appliance"
    call = fake_ai.calls[0]
    assert call["json_mode"] is True
    assert call["component"] == "maintenance_analysis"
    assert call["subject_id"] == "u1"
    assert "Tenant description: Fridge hums" in call["messages"][0]["content"]


def test_analyze_request_falls_back(fake_ai):
    assert triage.analyze_request(None, "m", "pipe leak").source == "keywords"

    fake_ai.reply = "I think it is plumbing."
    assert triage.analyze_request(fake_ai, "m", "pipe leak").category == "Plumbing"

    fake_ai.error = RuntimeError("quota exceeded")
    assert triage.analyze_request(fake_ai, "m", "pipe leak").source == "keywords"

    with pytest.raises(ValueError):
        triage.analyze_request(fake_ai, "m", "   ")


def test_analysis_payload_hides_source():
    payload = triage.analysis_payload(triage.keyword_triage("leak"))
    assert "source" not in payload
    assert payload["estimatedCost"] == "$150 - $400"


@pytest.fixture()
def leased(store, landlord, tenant):
    prop = build_property(store, landlord)
    unit = build_unit(store, prop["id"], "101")
    build_active_lease(store, unit, tenant)
    return {"property": prop, "unit": unit}


def _file(client, tenant, files=None, **fields):
    data = {"title": "Sink leak", "description": "Water dripping under the sink"}
    data.update(fields)
    return client.post("/api/tenant/maintenance", headers=tenant["headers"], data=data, files=files or {})


def test_file_request_with_model_analysis(client, fake_ai, tenant, leased):
    fake_ai.reply = analysis_json(severity="Critical")
    request = _file(
        client, tenant, files={"image": ("sink.png", PNG_BYTES, "image/png")}
    ).json()["request"]
    assert request["priority"] == "critical"
    assert request["status"] == "open"
    assert request["unit_id"] == leased["unit"]["id"]
    assert request["property_id"] == leased["property"]["id"]
    assert request["analysis"]["category"] == "Plumbing"
    assert request["image_url"].startswith(f"https://storage.local/maintenance/{tenant['id']}/")

    content = fake_ai.calls[0]["messages"][0]["content"]
    assert content[1]["image_url"]["url"].startswith("data:image/png;base64,")


def test_file_request_falls_back_to_keywords(client, fake_ai, tenant, leased):
    fake_ai.error = RuntimeError("model down")
    request = _file(client, tenant).json()["request"]
    assert request["priority"] == "warning"
    assert request["analysis"]["confidence"] == triage.FALLBACK_CONFIDENCE


def test_file_request_requires_active_lease_and_fields(client, store, fake_ai, tenant, leased):
    assert _file(client, tenant, title=" ").status_code == 400
    drifter = make_user(store, "Dina Drifter", "dina@example.com")
    resp = _file(client, drifter)
    assert resp.status_code == 403
    assert resp.json() == {"error": "You need an active lease to file a maintenance request"}
    assert fake_ai.calls == []


def test_file_request_rejects_non_image_before_triage(client, fake_ai, tenant, leased):
    resp = _file(client, tenant, files={"image": ("notes.txt", b"hello", "text/plain")})
    assert resp.json() == {"error": "Attachment must be an image"}
    assert fake_ai.calls == []


def test_landlord_queue_and_status(client, store, landlord, tenant, leased):
    first = _file(client, tenant).json()["request"]
    _file(client, tenant, title="Broken lock", description="Door lock is stuck")

    mine = client.get("/api/tenant/maintenance", headers=tenant["headers"]).json()["requests"]
    assert len(mine) == 2

    queue = client.get("/api/maintenance", headers=landlord["headers"]).json()
    assert queue["counts"] == {"all": 2, "open": 2, "in_progress": 0, "resolved": 0}
    assert queue["requests"][0]["unit"]["unit_number"] == "101"
    assert queue["requests"][0]["tenant"]["full_name"] == "Tomas Tenant"

    resolved = client.post(
        f"/api/maintenance/{first['id']}/status", headers=landlord["headers"], json={"status": "resolved"}
    ).json()["request"]
    assert resolved["resolved_at"]

    only_open = client.get("/api/maintenance?status=open", headers=landlord["headers"]).json()["requests"]
    assert [r["title"] for r in only_open] == ["Broken lock"]

    bad = client.post(f"/api/maintenance/{first['id']}/status", headers=landlord["headers"], json={"status": "done"})
    assert bad.status_code == 400

    other = make_user(store, "Other Owner", "other@example.com", "landlord")
    foreign = client.post(
        f"/api/maintenance/{first['id']}/status", headers=other["headers"], json={"status": "open"}
    )
    assert foreign.status_code == 403
