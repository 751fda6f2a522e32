import os
from typing import Any, Dict, List


DEFAULT_CONFIG: Dict[str, Any] = {
    "weights": {
        "urgency": 30,
        "engagement": 40,
        "jobRole": 30,
    },
    "bands": {
        "low": {"min": 0, "max": 44},
        "medium": {"min": 45, "max": 74},
        "high": {"min": 75, "max": 100},
    },
    "negative": [],
    "enrichment": {},
}


DEFAULT_RULES: List[Dict[str, Any]] = [
    {
        "type": "IF_THEN",
        "definition": {
            "if": [{"field": "fields.budget", "op": "greater_equal", "value": 10000}],
            "then": {"add": 15, "tag": "high_budget", "route": "ae_pool_a", "sla": 15},
        },
        "enabled": True,
        "order": 1,
    },
    {
        "type": "IF_THEN",
        "definition": {
            "if": [
                {"field": "utm.source", "op": "equals", "value": "google"},
                {"field": "utm.medium", "op": "equals", "value": "cpc"},
            ],
            "then": {"add": 10, "tag": "paid_search"},
        },
        "enabled": True,
        "order": 2,
    },
]


MAX_PATTERN_LENGTH = 256


def data_dir() -> str:
    base = os.path.dirname(__file__)
    return os.getenv("LEADSCORE_DATA_DIR") or os.path.join(base, "data")


def batch_workers() -> int:
    return int(os.getenv("LEADSCORE_BATCH_WORKERS", "8"))


def history_limit() -> int:
    return int(os.getenv("LEADSCORE_HISTORY_LIMIT", "10"))
