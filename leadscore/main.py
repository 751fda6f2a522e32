import io
import json
import logging
import time
from typing import Any, Dict, List, Optional
import pandas as pd
from fastapi import Body, Depends, FastAPI, File, Header, HTTPException, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from .batch import batch_evaluate, leads_from_frame, results_to_frame, summarize
from .config import history_limit
from .exceptions import ConfigValidationError, LeadScoreError
from .models import BatchItem, BatchRequest, BatchResponse, ReorderRequest, ScoringResult, TestLead
from .rulebook import create_rule, delete_rule, reorder_rules, update_rule
from .scoring import evaluate
from .store import ConfigStore
from .versioning import ConfigVersioner, initialize_defaults, load_snapshot


app = FastAPI(title="Lead Scoring & Rule Evaluation API")


logger = logging.getLogger("leadscore")
logging.basicConfig(level=logging.INFO, format="%(message)s")


_STORE: Optional[ConfigStore] = None


def get_store() -> ConfigStore:
    global _STORE
    if _STORE is None:
        _STORE = ConfigStore()
    return _STORE


def get_tenant(x_team_id: Optional[str] = Header(default=None)) -> str:
    return x_team_id or "default"


def get_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    return x_user_id or "system"


def error_envelope(status_code: int, message: str, code: Optional[str] = None, details: Any = None) -> JSONResponse:
    error: Dict[str, Any] = {"message": message}
    if code:
        error["code"] = code
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(int(time.time() * 1000))
    start = time.time()
    response: Response
    try:
        response = await call_next(request)
    finally:
        duration_ms = int((time.time() - start) * 1000)
        logger.info(json.dumps({
            "request_id": rid,
            "endpoint": request.url.path,
            "method": request.method,
            "tenant": request.headers.get("X-Team-ID", "default"),
            "status": getattr(response, "status_code", 0) if "response" in locals() else 500,
            "latency_ms": duration_ms,
        }))
    response.headers["X-Request-ID"] = rid
    return response


@app.exception_handler(ConfigValidationError)
async def config_validation_handler(request: Request, exc: ConfigValidationError):
    logger.warning(json.dumps({"event": exc.code, "errors": exc.errors}))
    return error_envelope(exc.status_code, exc.detail, exc.code, exc.errors)


@app.exception_handler(LeadScoreError)
async def lead_score_error_handler(request: Request, exc: LeadScoreError):
    logger.warning(json.dumps({"event": exc.code, "detail": exc.detail}))
    return error_envelope(exc.status_code, exc.detail, exc.code)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    return error_envelope(422, "Invalid request body", "invalid_request", details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_envelope(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s", request.url.path)
    return error_envelope(500, "Internal server error", "internal_error")


def _rules_json(rules) -> List[Dict[str, Any]]:
    return [r.model_dump(mode="json", by_alias=True) for r in rules]


@app.get("/health")
def health() -> Dict[str, bool]:
    return {"ok": True}


@app.get("/scoring/config")
def get_config(store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant), user: str = Depends(get_user)) -> Dict[str, Any]:
    config, rules = load_snapshot(store, tenant, user)
    return {"config": config.model_dump(mode="json"), "rules": _rules_json(rules)}


@app.post("/scoring/config")
def post_config(body: Dict[str, Any] = Body(...), store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant), user: str = Depends(get_user)) -> Dict[str, Any]:
    version = ConfigVersioner(store, tenant).save(body, user)
    return {
        "config": version.config.model_dump(mode="json"),
        "version": version.version,
        "message": "Scoring configuration updated successfully",
    }


@app.post("/scoring/initialize")
def post_initialize(store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant), user: str = Depends(get_user)) -> Dict[str, Any]:
    config, rules = initialize_defaults(store, tenant, user)
    return {
        "config": config.model_dump(mode="json"),
        "rules": _rules_json(rules),
        "message": "Default scoring configuration initialized successfully",
    }


@app.post("/scoring/rules", status_code=201)
def post_rule(body: Dict[str, Any] = Body(...), store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant)) -> Dict[str, Any]:
    rule = create_rule(store, tenant, body)
    return {"rule": rule.model_dump(mode="json", by_alias=True), "message": "Scoring rule created successfully"}


@app.post("/scoring/rules/reorder")
def post_reorder(req: ReorderRequest, store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant)) -> Dict[str, Any]:
    rules = reorder_rules(store, tenant, req.ids)
    return {"rules": _rules_json(rules), "message": "Scoring rules reordered successfully"}


@app.put("/scoring/rules/{rule_id}")
def put_rule(rule_id: str, body: Dict[str, Any] = Body(...), store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant)) -> Dict[str, Any]:
    rule = update_rule(store, tenant, rule_id, body)
    return {"rule": rule.model_dump(mode="json", by_alias=True), "message": "Scoring rule updated successfully"}


@app.delete("/scoring/rules/{rule_id}")
def remove_rule(rule_id: str, store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant)) -> Dict[str, Any]:
    delete_rule(store, tenant, rule_id)
    return {"message": "Scoring rule deleted successfully"}


@app.post("/scoring/test", response_model=ScoringResult)
def score_lead(lead: TestLead, store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant), user: str = Depends(get_user)) -> ScoringResult:
    config, rules = load_snapshot(store, tenant, user)
    return evaluate(lead, config, rules)


def _csv_response(items: List[BatchItem], prefix: str) -> StreamingResponse:
    df = results_to_frame(items)
    buf = io.StringIO()
    df.to_csv(buf, index=False)
    buf.seek(0)
    headers = {"Content-Disposition": f"attachment; filename={prefix}_{int(time.time())}.csv"}
    return StreamingResponse(iter([buf.getvalue()]), media_type="text/csv", headers=headers)


@app.post("/scoring/batch-test")
def batch_test(req: BatchRequest, format: Optional[str] = None, store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant), user: str = Depends(get_user)):
    config, rules = load_snapshot(store, tenant, user)
    items = batch_evaluate(req.leads, config, rules)
    if format == "csv":
        return _csv_response(items, "scores")
    return BatchResponse(results=items, summary=summarize(items))


@app.post("/scoring/batch-test/csv", response_model=BatchResponse)
async def batch_test_csv(file: UploadFile = File(...), store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant), user: str = Depends(get_user)) -> BatchResponse:
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Expected a CSV file")
    content = await file.read()
    try:
        df = pd.read_csv(io.BytesIO(content))
    except (ValueError, pd.errors.ParserError):
        raise HTTPException(status_code=400, detail="Invalid CSV")
    leads = leads_from_frame(df)
    config, rules = load_snapshot(store, tenant, user)
    items = batch_evaluate(leads, config, rules)
    return BatchResponse(results=items, summary=summarize(items))


@app.get("/scoring/config/history")
def get_history(limit: Optional[int] = Query(default=None, ge=1, le=100), store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant)) -> Dict[str, Any]:
    versions = ConfigVersioner(store, tenant).history(limit or history_limit())
    return {"configs": [v.model_dump(mode="json") for v in versions]}


@app.post("/scoring/config/rollback")
def post_rollback(version: str = Query(...), store: ConfigStore = Depends(get_store), tenant: str = Depends(get_tenant), user: str = Depends(get_user)) -> Dict[str, Any]:
    restored = ConfigVersioner(store, tenant).rollback(version, user)
    return {
        "config": restored.config.model_dump(mode="json"),
        "version": restored.version,
        "message": f"Scoring configuration rolled back to version {version}",
    }
