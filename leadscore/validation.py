import re
from typing import Any, List, Mapping, Union
from pydantic import TypeAdapter, ValidationError
from .config import MAX_PATTERN_LENGTH
from .models import IfThenRule, Operator, ScoringConfig, ScoringRule, ValidationResult, WeightRule


_RULE_ADAPTER = TypeAdapter(ScoringRule)

# a quantified group that is quantified again, e.g. (a+)+ or (\w*)*
_NESTED_QUANTIFIER = re.compile(r"\((?:[^()\\]|\\.)*[+*}](?:[^()\\]|\\.)*\)\s*(?:[+*]|\{\d+,?\d*\})")


def _pydantic_errors(exc: ValidationError) -> List[str]:
    errors: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        errors.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return errors


def pattern_errors(pattern: Any, where: str) -> List[str]:
    if not isinstance(pattern, str) or not pattern:
        return [f"{where}: regex pattern must be a non-empty string"]
    if len(pattern) > MAX_PATTERN_LENGTH:
        return [f"{where}: regex pattern longer than {MAX_PATTERN_LENGTH} characters"]
    try:
        re.compile(pattern)
    except re.error as e:
        return [f"{where}: regex does not compile ({e})"]
    if _NESTED_QUANTIFIER.search(pattern):
        return [f"{where}: regex contains nested quantifiers"]
    return []


def _operand_errors(op: Operator, value: Any, where: str) -> List[str]:
    if op is Operator.REGEX:
        return pattern_errors(value, where)
    if op in (Operator.IN, Operator.NOT_IN) and not isinstance(value, (list, tuple)):
        return [f"{where}: '{op.value}' requires a list value"]
    return []


def check_config(config: ScoringConfig) -> List[str]:
    errors: List[str] = []
    if not config.weights:
        errors.append("weights must define at least one field")
    for field, weight in config.weights.items():
        if weight < 0:
            errors.append(f"Invalid weight for field '{field}': must be a non-negative number")
    bands = config.bands
    for name in ("low", "medium", "high"):
        band = getattr(bands, name)
        if band.min > band.max:
            errors.append(f"Band '{name}' min must not exceed its max")
    if not (bands.low.min < bands.medium.min < bands.high.min):
        errors.append("Band minimums must be strictly ascending (low < medium < high)")
    if not (bands.low.max < bands.medium.max < bands.high.max):
        errors.append("Band maximums must be strictly ascending (low < medium < high)")
    for i, rule in enumerate(config.negative):
        where = f"negative[{i}]"
        if not rule.field.strip():
            errors.append(f"{where}: field is required")
        if rule.penalty < 0:
            errors.append(f"{where}: penalty must be a non-negative number")
        errors.extend(_operand_errors(rule.op, rule.value, where))
    return errors


def validate_config(config: Union[ScoringConfig, Mapping[str, Any]]) -> ValidationResult:
    if not isinstance(config, ScoringConfig):
        try:
            config = ScoringConfig.model_validate(config)
        except ValidationError as e:
            return ValidationResult(valid=False, errors=_pydantic_errors(e))
    errors = check_config(config)
    return ValidationResult(valid=not errors, errors=errors)


def check_rule(rule: Union[IfThenRule, WeightRule]) -> List[str]:
    errors: List[str] = []
    if rule.order < 0:
        errors.append("Rule order must be a non-negative integer")
    if isinstance(rule, WeightRule):
        if not rule.definition.field.strip():
            errors.append("WEIGHT rules must name a field")
        if rule.definition.weight < 0:
            errors.append("WEIGHT rule weight must be a non-negative number")
        return errors
    conditions = rule.definition.conditions
    if not conditions:
        errors.append("IF_THEN rules must have at least one condition")
    for i, cond in enumerate(conditions):
        where = f"if[{i}]"
        if not cond.field.strip():
            errors.append(f"{where}: field is required")
        errors.extend(_operand_errors(cond.op, cond.value, where))
    then = rule.definition.then
    if all(v is None for v in (then.add, then.multiply, then.tag, then.route, then.sla)):
        errors.append("IF_THEN rules must define at least one THEN effect")
    if then.multiply is not None and then.multiply < 0:
        errors.append("then.multiply must be a non-negative number")
    if then.sla is not None and then.sla <= 0:
        errors.append("then.sla must be a positive number of minutes")
    return errors


def validate_rule(rule: Union[IfThenRule, WeightRule, Mapping[str, Any]]) -> ValidationResult:
    if not isinstance(rule, (IfThenRule, WeightRule)):
        if not isinstance(rule, Mapping) or rule.get("type") not in ("IF_THEN", "WEIGHT"):
            return ValidationResult(valid=False, errors=["Rule type must be either IF_THEN or WEIGHT"])
        try:
            rule = _RULE_ADAPTER.validate_python(rule)
        except ValidationError as e:
            return ValidationResult(valid=False, errors=_pydantic_errors(e))
    errors = check_rule(rule)
    return ValidationResult(valid=not errors, errors=errors)
