import uuid
from typing import Any, Dict, List, Mapping
from pydantic import TypeAdapter
from .exceptions import ConfigValidationError, RuleNotFoundError
from .models import ScoringRule
from .scoring import Rule
from .store import ConfigStore
from .validation import validate_rule


_RULES_ADAPTER = TypeAdapter(List[ScoringRule])
_RULE_ADAPTER = TypeAdapter(ScoringRule)

_EDITABLE = ("type", "definition", "enabled", "order")


def _checked(payload: Mapping[str, Any]) -> Rule:
    result = validate_rule(payload)
    if not result.valid:
        raise ConfigValidationError(result.errors, detail="Invalid scoring rule", code="invalid_rule")
    return _RULE_ADAPTER.validate_python(payload)


def _record(rule: Rule) -> Dict[str, Any]:
    return rule.model_dump(mode="json", by_alias=True)


def new_rule_record(payload: Mapping[str, Any]) -> Dict[str, Any]:
    data = {k: v for k, v in payload.items() if k in _EDITABLE}
    data["id"] = uuid.uuid4().hex
    return _record(_checked(data))


def list_rules(store: ConfigStore, tenant: str) -> List[Rule]:
    rules = _RULES_ADAPTER.validate_python(store.load(tenant)["rules"])
    return sorted(rules, key=lambda r: r.order)


def _index(rules: List[Dict[str, Any]], rule_id: str) -> int:
    for i, rule in enumerate(rules):
        if rule.get("id") == rule_id:
            return i
    raise RuleNotFoundError(f"Scoring rule '{rule_id}' not found")


def create_rule(store: ConfigStore, tenant: str, payload: Mapping[str, Any]) -> Rule:
    record = new_rule_record(payload)
    with store.lock(tenant):
        doc = store.load(tenant)
        doc["rules"].append(record)
        store.write(tenant, doc)
    return _RULE_ADAPTER.validate_python(record)


def update_rule(store: ConfigStore, tenant: str, rule_id: str, partial: Mapping[str, Any]) -> Rule:
    with store.lock(tenant):
        doc = store.load(tenant)
        i = _index(doc["rules"], rule_id)
        merged = dict(doc["rules"][i])
        merged.update({k: v for k, v in partial.items() if k in _EDITABLE and v is not None})
        rule = _checked(merged)
        doc["rules"][i] = _record(rule)
        store.write(tenant, doc)
    return rule


def delete_rule(store: ConfigStore, tenant: str, rule_id: str) -> None:
    with store.lock(tenant):
        doc = store.load(tenant)
        i = _index(doc["rules"], rule_id)
        del doc["rules"][i]
        store.write(tenant, doc)


def reorder_rules(store: ConfigStore, tenant: str, ids: List[str]) -> List[Rule]:
    with store.lock(tenant):
        doc = store.load(tenant)
        positions = [_index(doc["rules"], rule_id) for rule_id in ids]
        for order, i in enumerate(positions, start=1):
            doc["rules"][i]["order"] = order
        store.write(tenant, doc)
    return list_rules(store, tenant)
