import io
import pandas as pd
from pydantic import TypeAdapter
from leadscore.batch import batch_evaluate, leads_from_frame, results_to_frame, summarize
from leadscore.models import ScoringConfig, ScoringRule, TestLead
from leadscore.scoring import evaluate
from tests.factories import BASE_CONFIG, lead_with


def scenario_config() -> ScoringConfig:
    data = dict(BASE_CONFIG)
    data["negative"] = [{"field": "source", "op": "equals", "value": "spam", "penalty": 20, "reason": "Spam source"}]
    return ScoringConfig.model_validate(data)


def scenario_rules():
    return TypeAdapter(list[ScoringRule]).validate_python([{
        "type": "IF_THEN",
        "id": "budget",
        "definition": {"if": [{"field": "fields.budget", "op": "greater_than", "value": 10000}], "then": {"add": 15}},
        "order": 1,
    }])


def test_scenario_d_batch_preserves_order():
    config = scenario_config()
    rules = scenario_rules()
    budget_lead = lead_with(50)
    budget_lead["fields"]["budget"] = 20000
    leads = [
        TestLead.model_validate(lead_with(100, source="web")),
        TestLead.model_validate(lead_with(0, source="spam")),
        TestLead.model_validate(budget_lead),
    ]
    items = batch_evaluate(leads, config, rules, max_workers=3)
    assert len(items) == 3
    assert [i.lead for i in items] == leads
    assert [(i.scoring.score, i.scoring.band) for i in items] == [(100, "HIGH"), (0, "LOW"), (65, "MEDIUM")]
    for item in items:
        assert item.scoring == evaluate(item.lead, config, rules)


def test_batch_empty_and_summary():
    assert batch_evaluate([], scenario_config()) == []
    items = batch_evaluate([TestLead.model_validate(lead_with(v)) for v in (10, 50, 90, 100)], scenario_config())
    summary = summarize(items)
    assert summary.count == 4
    assert summary.avg_score == 62.5
    assert summary.bands == {"LOW": 1, "MEDIUM": 1, "HIGH": 2}
    assert summarize([]).avg_score == 0.0


def test_leads_from_frame():
    csv_data = "Email,name,source,urgency,fields.budget,utm.source\nceo@acme.io,Ann,web,80,20000,google\n,Bob,,,,\n"
    df = pd.read_csv(io.StringIO(csv_data))
    leads = leads_from_frame(df)
    assert len(leads) == 2
    assert leads[0].email == "ceo@acme.io"
    assert leads[0].source == "web"
    assert leads[0].fields == {"urgency": 80, "budget": 20000}
    assert leads[0].utm == {"source": "google"}
    assert leads[1].email is None
    assert leads[1].fields == {}


def test_results_to_frame():
    items = batch_evaluate([TestLead(email="a@b.io", fields={"urgency": 100, "engagement": 100, "jobRole": 100})], scenario_config())
    df = results_to_frame(items)
    assert list(df.columns) == ["email", "name", "company", "source", "score", "band", "tags", "routing", "sla"]
    assert df.iloc[0]["score"] == 100
    assert df.iloc[0]["band"] == "HIGH"
