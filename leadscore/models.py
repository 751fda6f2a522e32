from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Operator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_EQUAL = "greater_equal"
    LESS_EQUAL = "less_equal"


class Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Band(Frozen):
    min: float
    max: float


class ScoringBands(Frozen):
    low: Band
    medium: Band
    high: Band


class Condition(Frozen):
    field: str
    op: Operator = Field(validation_alias=AliasChoices("op", "operator"))
    value: Any = None


class NegativeRule(Frozen):
    field: str
    op: Operator = Field(validation_alias=AliasChoices("op", "operator"))
    value: Any = None
    penalty: float
    reason: str = ""
    enabled: bool = True


class ScoringConfig(Frozen):
    weights: Dict[str, float]
    bands: ScoringBands
    negative: List[NegativeRule] = Field(default_factory=list)
    enrichment: Dict[str, Any] = Field(default_factory=dict)


class ThenEffect(Frozen):
    add: Optional[float] = None
    multiply: Optional[float] = None
    tag: Optional[str] = None
    route: Optional[str] = None
    sla: Optional[int] = None


class IfThenDefinition(Frozen):
    conditions: List[Condition] = Field(alias="if")
    then: ThenEffect


class WeightDefinition(Frozen):
    field: str
    weight: float


class IfThenRule(Frozen):
    type: Literal["IF_THEN"] = "IF_THEN"
    id: Optional[str] = None
    definition: IfThenDefinition
    enabled: bool = True
    order: int = 0


class WeightRule(Frozen):
    type: Literal["WEIGHT"] = "WEIGHT"
    id: Optional[str] = None
    definition: WeightDefinition
    enabled: bool = True
    order: int = 0


ScoringRule = Annotated[Union[IfThenRule, WeightRule], Field(discriminator="type")]


class TestLead(BaseModel):
    __test__ = False

    model_config = ConfigDict(extra="allow")

    email: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    domain: Optional[str] = None
    source: Optional[str] = None
    fields: Dict[str, Any] = Field(default_factory=dict)
    utm: Dict[str, Any] = Field(default_factory=dict)


class TraceStep(BaseModel):
    step: str
    field: Optional[str] = None
    value: Any = None
    operation: str
    points: float
    total: float
    reason: str
    rule: Optional[str] = None


class ScoringResult(BaseModel):
    score: int
    band: Literal["LOW", "MEDIUM", "HIGH"]
    trace: List[TraceStep] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    routing: Optional[str] = None
    sla: Optional[int] = None


class ConfigVersion(Frozen):
    id: str
    version: int
    config: ScoringConfig
    created_at: datetime
    created_by: str


class ValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class BatchRequest(BaseModel):
    leads: List[TestLead]


class BatchItem(BaseModel):
    lead: TestLead
    scoring: ScoringResult


class BatchSummary(BaseModel):
    count: int
    avg_score: float
    bands: Dict[str, int]


class BatchResponse(BaseModel):
    results: List[BatchItem]
    summary: BatchSummary


class ReorderRequest(BaseModel):
    ids: List[str]
