import json
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from pydantic import BaseModel
from .conditions import evaluate_condition, matches, resolve_field, to_number
from .models import IfThenRule, ScoringBands, ScoringConfig, ScoringResult, TraceStep, WeightRule


Rule = Union[IfThenRule, WeightRule]


class TraceRecorder:
    """Append-only list of trace steps for one evaluation."""

    def __init__(self) -> None:
        self._steps: List[TraceStep] = []

    def record(self, step: str, operation: str, points: float, total: float, reason: str, **extra: Any) -> None:
        self._steps.append(TraceStep(
            step=step,
            operation=operation,
            points=round(points, 4),
            total=round(total, 4),
            reason=reason,
            **extra,
        ))

    @property
    def steps(self) -> List[TraceStep]:
        return list(self._steps)


def _ordered(rules: Sequence[Rule], kind: type) -> List[Rule]:
    enabled = [r for r in rules if isinstance(r, kind) and r.enabled]
    return sorted(enabled, key=lambda r: r.order)


def resolve_weights(base_weights: Mapping[str, float], rules: Sequence[Rule], trace: Optional[TraceRecorder] = None) -> Dict[str, float]:
    weights = dict(base_weights)
    for rule in _ordered(rules, WeightRule):
        field = rule.definition.field
        previous = weights.get(field)
        weights[field] = rule.definition.weight
        if trace is not None:
            trace.record(
                "weight_override",
                "weight_override",
                0,
                0,
                f"Weight for '{field}' set to {rule.definition.weight} (was {previous})",
                field=field,
                value=rule.definition.weight,
                rule=rule.id,
            )
    return weights


def field_score(value: Any) -> float:
    """Map a raw field value onto the 0-100 scale used by the base score."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        return 100.0 if value else 0.0
    num = to_number(value)
    if num is not None:
        return max(0.0, min(100.0, num))
    if isinstance(value, str):
        return min(len(value) / 10, 1) * 100.0
    if isinstance(value, (list, tuple, dict, set)):
        return 100.0 if value else 0.0
    return 100.0


def base_score(lead: Mapping[str, Any], weights: Mapping[str, float], trace: Optional[TraceRecorder] = None) -> float:
    total_weight = sum(weights.values())
    if total_weight <= 0:
        if trace is not None:
            trace.record("Base Score", "weighted_average", 0, 0, "Total weight is 0; base score defined as 0")
        return 0.0
    weighted = 0.0
    for field, weight in weights.items():
        _, value = resolve_field(lead, field)
        contribution = field_score(value) * weight
        if contribution == 0:
            continue
        weighted += contribution
        if trace is not None:
            trace.record(
                "weights",
                "weight_application",
                contribution / total_weight,
                weighted / total_weight,
                f"Field '{field}' with value '{value}' applied weight {weight}",
                field=field,
                value=value,
            )
    score = weighted / total_weight
    if trace is not None:
        trace.record("Base Score", "weighted_average", score, score, f"Weighted average over {len(weights)} fields (total weight {total_weight})")
    return score


def apply_negative_rules(lead: Mapping[str, Any], config: ScoringConfig, score: float, trace: Optional[TraceRecorder] = None) -> float:
    for rule in config.negative:
        if not rule.enabled:
            continue
        if not matches(rule.field, rule.op, rule.value, lead):
            continue
        penalty = max(0.0, rule.penalty)
        score -= penalty
        if trace is not None:
            trace.record(
                "negative",
                "penalty",
                -penalty,
                score,
                rule.reason or f"Negative rule on '{rule.field}' matched",
                field=rule.field,
                value=resolve_field(lead, rule.field)[1],
            )
    return score


class RuleOutcome(BaseModel):
    score: float
    tags: List[str] = []
    routing: Optional[str] = None
    sla: Optional[int] = None


def apply_if_then_rules(lead: Mapping[str, Any], rules: Sequence[Rule], score: float, trace: Optional[TraceRecorder] = None) -> RuleOutcome:
    tags: List[str] = []
    routing: Optional[str] = None
    sla: Optional[int] = None
    for rule in _ordered(rules, IfThenRule):
        conditions = rule.definition.conditions
        if not conditions or not all(evaluate_condition(c, lead) for c in conditions):
            continue
        then = rule.definition.then
        before = score
        if then.add is not None:
            score += then.add
        if then.multiply is not None:
            score *= then.multiply
        if then.tag:
            tags.append(then.tag)
        if then.route:
            routing = then.route
        if then.sla is not None:
            sla = then.sla
        if trace is not None:
            conds = json.dumps([c.model_dump(mode="json") for c in conditions])
            effect = json.dumps(then.model_dump(mode="json", exclude_none=True))
            trace.record(
                "if_then",
                "rule_application",
                score - before,
                score,
                f"IF_THEN rule triggered: {conds} -> {effect}",
                rule=rule.id,
            )
    return RuleOutcome(score=score, tags=tags, routing=routing, sla=sla)


def classify_band(score: float, bands: ScoringBands) -> str:
    if score >= bands.high.min:
        return "HIGH"
    if score >= bands.medium.min:
        return "MEDIUM"
    return "LOW"


def clamp_score(score: float) -> int:
    bounded = max(0.0, min(100.0, score))
    return int(math.floor(bounded + 0.5))


def evaluate(lead: Union[BaseModel, Mapping[str, Any]], config: ScoringConfig, rules: Sequence[Rule] = ()) -> ScoringResult:
    """Score one lead against an immutable config/rules snapshot.

    Pure and synchronous: nothing outside the local trace is mutated, so the
    same snapshot can be shared by concurrent callers.
    """
    data = lead.model_dump(exclude_unset=True) if isinstance(lead, BaseModel) else lead
    trace = TraceRecorder()
    weights = resolve_weights(config.weights, rules, trace)
    score = base_score(data, weights, trace)
    score = apply_negative_rules(data, config, score, trace)
    outcome = apply_if_then_rules(data, rules, score, trace)
    final = clamp_score(outcome.score)
    if final != outcome.score:
        trace.record("clamp", "clamp", final - outcome.score, final, f"Score {round(outcome.score, 4)} bounded to [0, 100] and rounded to {final}")
    band = classify_band(final, config.bands)
    trace.record("final", "band_calculation", 0, final, f"Final score {final} maps to {band} band")
    return ScoringResult(
        score=final,
        band=band,
        trace=trace.steps,
        tags=outcome.tags,
        routing=outcome.routing,
        sla=outcome.sla,
    )
