from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence
import pandas as pd
from .config import batch_workers
from .models import BatchItem, BatchSummary, ScoringConfig, TestLead
from .scoring import Rule, evaluate


LEAD_COLUMNS = ("email", "name", "phone", "company", "domain", "source")


def batch_evaluate(leads: Sequence[TestLead], config: ScoringConfig, rules: Sequence[Rule] = (), max_workers: Optional[int] = None) -> List[BatchItem]:
    """Score every lead independently; output order matches input order."""
    if not leads:
        return []
    workers = max(1, min(max_workers or batch_workers(), len(leads)))
    rules = tuple(rules)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        scorings = list(executor.map(lambda lead: evaluate(lead, config, rules), leads))
    return [BatchItem(lead=lead, scoring=scoring) for lead, scoring in zip(leads, scorings)]


def summarize(items: Sequence[BatchItem]) -> BatchSummary:
    count = len(items)
    bands = {"LOW": 0, "MEDIUM": 0, "HIGH": 0}
    for item in items:
        bands[item.scoring.band] += 1
    avg_score = round(sum(i.scoring.score for i in items) / count, 2) if count else 0.0
    return BatchSummary(count=count, avg_score=avg_score, bands=bands)


def _cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if hasattr(value, "item"):
        return value.item()
    return value


def leads_from_frame(df: pd.DataFrame) -> List[TestLead]:
    leads: List[TestLead] = []
    for _, row in df.iterrows():
        payload: Dict[str, Any] = {"fields": {}, "utm": {}}
        for col in df.columns:
            key = str(col).strip()
            value = _cell(row.get(col))
            if value is None:
                continue
            if key.lower() in LEAD_COLUMNS:
                payload[key.lower()] = str(value)
            elif key.startswith("utm."):
                payload["utm"][key[4:]] = value
            elif key.startswith("fields."):
                payload["fields"][key[7:]] = value
            else:
                payload["fields"][key] = value
        leads.append(TestLead(**payload))
    return leads


def results_to_frame(items: Sequence[BatchItem]) -> pd.DataFrame:
    rows: List[Dict[str, Any]] = []
    for item in items:
        lead = item.lead
        rows.append({
            "email": lead.email,
            "name": lead.name,
            "company": lead.company,
            "source": lead.source,
            "score": item.scoring.score,
            "band": item.scoring.band,
            "tags": ";".join(item.scoring.tags),
            "routing": item.scoring.routing,
            "sla": item.scoring.sla,
        })
    return pd.DataFrame(rows, columns=["email", "name", "company", "source", "score", "band", "tags", "routing", "sla"])
