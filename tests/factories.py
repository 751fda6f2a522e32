BASE_CONFIG = {
    "weights": {"urgency": 30, "engagement": 40, "jobRole": 30},
    "bands": {
        "low": {"min": 0, "max": 44},
        "medium": {"min": 45, "max": 74},
        "high": {"min": 75, "max": 100},
    },
    "negative": [],
    "enrichment": {},
}


def lead_with(value, **extra):
    lead = {"fields": {"urgency": value, "engagement": value, "jobRole": value}, "utm": {}}
    lead.update(extra)
    return lead
