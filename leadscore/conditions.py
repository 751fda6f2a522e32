import json
import logging
import math
import re
from functools import lru_cache
from typing import Any, Mapping, Optional, Pattern, Tuple
from .models import Condition, Operator


logger = logging.getLogger("leadscore")


_MISSING = object()


def _lookup(lead: Mapping[str, Any], path: str) -> Any:
    value: Any = lead
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return _MISSING
        value = value[part]
    return value


def resolve_field(lead: Mapping[str, Any], path: str) -> Tuple[bool, Any]:
    """Return ``(present, value)`` for a dotted field path.

    Bare names that are not top-level keys fall back to ``fields.<name>``.
    """
    value = _lookup(lead, path)
    if value is _MISSING and "." not in path:
        value = _lookup(lead, f"fields.{path}")
    if value is _MISSING:
        return False, None
    return True, value


def get_field_value(lead: Mapping[str, Any], path: str) -> Any:
    return resolve_field(lead, path)[1]


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(num):
        return None
    return num


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _equals(value: Any, target: Any) -> bool:
    if not isinstance(value, bool) and not isinstance(target, bool):
        if isinstance(value, (int, float)) and isinstance(target, (int, float)):
            return float(value) == float(target)
    return _as_text(value) == _as_text(target)


def _as_collection(target: Any) -> list:
    if isinstance(target, (list, tuple, set, frozenset)):
        return list(target)
    return [target]


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def _regex(value: Any, pattern: Any, field: str) -> bool:
    try:
        compiled = compile_pattern(str(pattern))
    except re.error as e:
        logger.warning(json.dumps({"event": "regex_compile_failed", "field": field, "pattern": str(pattern), "error": str(e)}))
        return False
    return compiled.search(_as_text(value)) is not None


def _compare(value: Any, target: Any, op: Operator) -> bool:
    left = to_number(value)
    right = to_number(target)
    if left is None or right is None:
        return False
    if op is Operator.GREATER_THAN:
        return left > right
    if op is Operator.LESS_THAN:
        return left < right
    if op is Operator.GREATER_EQUAL:
        return left >= right
    return left <= right


def matches(field: str, op: Operator, target: Any, lead: Mapping[str, Any]) -> bool:
    present, value = resolve_field(lead, field)
    if op is Operator.EXISTS:
        return present
    if op is Operator.NOT_EXISTS:
        return not present
    if op is Operator.EQUALS:
        return _equals(value, target)
    if op is Operator.NOT_EQUALS:
        return not _equals(value, target)
    if op in (Operator.CONTAINS, Operator.NOT_CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH):
        text = _as_text(value).lower()
        needle = _as_text(target).lower()
        if op is Operator.CONTAINS:
            return needle in text
        if op is Operator.NOT_CONTAINS:
            return needle not in text
        if op is Operator.STARTS_WITH:
            return text.startswith(needle)
        return text.endswith(needle)
    if op is Operator.REGEX:
        return _regex(value, target, field)
    if op is Operator.IN:
        return present and value in _as_collection(target)
    if op is Operator.NOT_IN:
        return not (present and value in _as_collection(target))
    if op in (Operator.GREATER_THAN, Operator.LESS_THAN, Operator.GREATER_EQUAL, Operator.LESS_EQUAL):
        return _compare(value, target, op)
    logger.warning(json.dumps({"event": "unknown_operator", "field": field, "op": str(op)}))
    return False


def evaluate_condition(condition: Condition, lead: Mapping[str, Any]) -> bool:
    return matches(condition.field, condition.op, condition.value, lead)
