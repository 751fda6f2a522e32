import copy
from tests.factories import BASE_CONFIG, lead_with


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}
    assert "X-Request-ID" in r.headers


def test_get_config_bootstraps_defaults(client):
    r = client.get("/scoring/config", headers={"X-Team-ID": "acme"})
    assert r.status_code == 200
    data = r.json()
    assert data["config"]["weights"] == {"urgency": 30, "engagement": 40, "jobRole": 30}
    assert data["config"]["bands"]["medium"] == {"min": 45, "max": 74}
    assert len(data["rules"]) == 2
    assert data["rules"][0]["definition"]["if"][0]["field"] == "fields.budget"


def test_post_config_and_validation_envelope(client):
    r = client.post("/scoring/config", json=BASE_CONFIG)
    assert r.status_code == 200
    assert r.json()["message"] == "Scoring configuration updated successfully"
    bad = copy.deepcopy(BASE_CONFIG)
    bad["weights"]["urgency"] = -1
    r = client.post("/scoring/config", json=bad)
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "invalid_config"
    assert any("urgency" in e for e in body["error"]["details"])


def test_score_lead_endpoint(client):
    lead = lead_with(50)
    lead["fields"]["budget"] = 20000
    lead["utm"] = {"source": "google", "medium": "cpc"}
    r = client.post("/scoring/test", json=lead)
    assert r.status_code == 200
    data = r.json()
    assert data["score"] == 75
    assert data["band"] == "HIGH"
    assert data["tags"] == ["high_budget", "paid_search"]
    assert data["routing"] == "ae_pool_a"
    assert data["sla"] == 15
    assert [t["step"] for t in data["trace"]][-1] == "final"


def test_rule_crud_and_reorder(client):
    client.post("/scoring/config", json=BASE_CONFIG)
    rule = {"type": "WEIGHT", "definition": {"field": "fields.employees", "weight": 5}, "order": 1}
    r = client.post("/scoring/rules", json=rule)
    assert r.status_code == 201
    rule_id = r.json()["rule"]["id"]
    r = client.put(f"/scoring/rules/{rule_id}", json={"enabled": False})
    assert r.status_code == 200
    assert r.json()["rule"]["enabled"] is False
    other = client.post("/scoring/rules", json={**rule, "order": 2}).json()["rule"]["id"]
    r = client.post("/scoring/rules/reorder", json={"ids": [other, rule_id]})
    assert [x["id"] for x in r.json()["rules"]] == [other, rule_id]
    r = client.delete(f"/scoring/rules/{rule_id}")
    assert r.status_code == 200
    r = client.delete(f"/scoring/rules/{rule_id}")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


def test_invalid_rule_is_rejected(client):
    r = client.post("/scoring/rules", json={"type": "IF_THEN", "definition": {"if": [{"field": "email", "op": "regex", "value": "(a*)*"}], "then": {"tag": "x"}}})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_rule"


def test_batch_test_json_and_csv(client):
    client.post("/scoring/config", json=BASE_CONFIG)
    leads = [lead_with(100), lead_with(0), lead_with(60)]
    r = client.post("/scoring/batch-test", json={"leads": leads})
    assert r.status_code == 200
    data = r.json()
    assert [x["scoring"]["score"] for x in data["results"]] == [100, 0, 60]
    assert data["results"][2]["lead"]["fields"]["urgency"] == 60
    assert data["summary"]["count"] == 3
    r = client.post("/scoring/batch-test?format=csv", json={"leads": leads})
    assert r.status_code == 200
    assert r.headers.get("content-type").startswith("text/csv")


def test_batch_test_csv_upload(client):
    client.post("/scoring/config", json=BASE_CONFIG)
    csv_data = "Email,Name,Source,urgency,engagement,jobRole\nann@acme.io,Ann,web,100,100,100\nbob@x.io,Bob,web,0,0,0\n"
    files = {"file": ("leads.csv", csv_data, "text/csv")}
    r = client.post("/scoring/batch-test/csv", files=files)
    assert r.status_code == 200
    assert [x["scoring"]["band"] for x in r.json()["results"]] == ["HIGH", "LOW"]
    r = client.post("/scoring/batch-test/csv", files={"file": ("leads.txt", "x", "text/plain")})
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Expected a CSV file"


def test_history_and_rollback(client):
    first = copy.deepcopy(BASE_CONFIG)
    second = copy.deepcopy(BASE_CONFIG)
    second["weights"]["urgency"] = 90
    client.post("/scoring/config", json=first)
    client.post("/scoring/config", json=second)
    configs = client.get("/scoring/config/history", params={"limit": 5}).json()["configs"]
    assert [c["version"] for c in configs] == [2, 1]
    r = client.post("/scoring/config/rollback", params={"version": configs[1]["id"]})
    assert r.status_code == 200
    assert r.json()["config"]["weights"]["urgency"] == 30
    assert client.get("/scoring/config").json()["config"]["weights"]["urgency"] == 30
    r = client.post("/scoring/config/rollback", params={"version": "nope"})
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": {"message": "Config version 'nope' not found", "code": "not_found"}}
    assert len(client.get("/scoring/config/history").json()["configs"]) == 3


def test_request_validation_envelope(client):
    r = client.post("/scoring/batch-test", json={"leads": "nope"})
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "invalid_request"


def test_score_lead_presence_rules(client):
    rule = {"type": "IF_THEN", "definition": {"if": [{"field": "company", "op": "not_exists"}], "then": {"tag": "no_company"}}, "order": 3}
    assert client.post("/scoring/rules", json=rule).status_code == 201
    r = client.post("/scoring/test", json=lead_with(50))
    assert r.json()["tags"] == ["no_company"]
    r = client.post("/scoring/test", json=lead_with(50, company="Acme"))
    assert r.json()["tags"] == []
