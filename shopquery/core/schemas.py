from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =========================
# Enums
# =========================
class QueryType(str, Enum):
    """Label produced by the classifier."""

    STRUCTURED = "structured"
    SEMANTIC = "semantic"
    HYBRID = "hybrid"
    CHITCHAT = "chitchat"


class RouteKind(str, Enum):
    """Route actually taken by the router; reported in the envelope."""

    CHITCHAT = "chitchat"
    SQL = "sql"
    VECTOR = "vector"
    HYBRID = "hybrid"


# =========================
# PLAN (wire format: {"plan": [ {op, entity, ...}, ... ]})
# =========================
class SortKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    dir: str = "asc"


class FilterClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    column: str
    operator: str
    value: Union[int, float, str, None] = None


class VectorSearchOp(BaseModel):
    """ANN search over an entity's text; binds a list of ids to `return`."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    op: Literal["vector_search"] = "vector_search"
    entity: str
    text: str = ""
    topk: int = 10
    return_: str = Field(default="ids", alias="return")


class SelectOp(BaseModel):
    """Relational fetch restricted to the ids bound to `ids_in`."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    op: Literal["select"] = "select"
    entity: str
    ids_in: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("ids_in", "IdsIn", "idsIn")
    )
    sort: Tuple[SortKey, ...] = ()
    limit: Optional[int] = None
    filters: Tuple[FilterClause, ...] = ()


class JoinOp(BaseModel):
    # Reserved; accepted and skipped by the executor
    model_config = ConfigDict(frozen=True, extra="allow")

    op: Literal["join"] = "join"


class AggregateOp(BaseModel):
    # Reserved; accepted and skipped by the executor
    model_config = ConfigDict(frozen=True, extra="allow")

    op: Literal["aggregate"] = "aggregate"


Operation = Annotated[
    Union[VectorSearchOp, SelectOp, JoinOp, AggregateOp], Field(discriminator="op")
]

OPERATION_TAGS = ("vector_search", "select", "join", "aggregate")


class Plan(BaseModel):
    """Ordered, immutable list of operations."""

    model_config = ConfigDict(frozen=True)

    plan: Tuple[Operation, ...] = ()

    @field_validator("plan", mode="before")
    @classmethod
    def normalize_op_tags(cls, steps: Any) -> Any:
        # The tag is case-insensitive on the wire ("op" or "Op"); entity and
        # column names are left untouched for the allowlist to judge.
        if not isinstance(steps, (list, tuple)):
            return steps
        normalized = []
        for step in steps:
            if isinstance(step, dict):
                step = dict(step)
                tag = step.pop("Op", None)
                tag = step.get("op", tag)
                if isinstance(tag, str):
                    step["op"] = tag.strip().lower()
            normalized.append(step)
        return normalized

    def is_empty(self) -> bool:
        return len(self.plan) == 0

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# =========================
# RESULT ROWS
# =========================
class ProductWithPrice(BaseModel):
    """A product joined with its best priced variant."""

    product_id: int
    product_name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    supplier_id: Optional[int] = None
    price: Optional[float] = None
    cost: Optional[float] = None
    product_category_id: Optional[int] = None


class SupplierSummary(BaseModel):
    supplier_id: int
    supplier_name: str
    address: Optional[str] = None
    phone_number: Optional[str] = None
    supplier_email: Optional[str] = None


class VectorHit(BaseModel):
    product_id: int
    content: str
    distance: float


class ProductResponse(BaseModel):
    productid: int
    productname: str
    description: Optional[str] = None
    supplierid: int
    image_url: Optional[str] = None
    createdat: Optional[datetime] = None
    updatedat: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SupplierResponse(BaseModel):
    supplierid: int
    suppliername: str
    contactperson: Optional[str] = None
    phonenumber: Optional[str] = None
    supplieremail: Optional[str] = None
    address: Optional[str] = None
    supplierstatus: Optional[str] = None
    defectreturned: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ProductCategoryResponse(BaseModel):
    productcategoryid: int
    productid: int
    price: Decimal
    cost: Decimal
    color: Optional[str] = None
    agesize: Optional[str] = None
    currentstock: int = 0
    reorderpoint: Optional[int] = None
    updatedstock: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# =========================
# REQUESTS / RESPONSES
# =========================
class RouteRequest(BaseModel):
    input: str = ""


class PlanExecuteRequest(BaseModel):
    """Either an explicit plan or natural-language input for the planner."""

    plan: Optional[List[Dict[str, Any]]] = None
    input: Optional[str] = None


class PlanExecuteResponse(BaseModel):
    plan: Dict[str, Any]
    result: Any
    trace: List[Dict[str, Any]] = []


class ErrorPayload(BaseModel):
    type: str
    message: str


class EnvelopeMeta(BaseModel):
    ms: int


class ResultEnvelope(BaseModel):
    """Uniform response of the router: exactly one of data / error is set."""

    route: RouteKind
    data: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: EnvelopeMeta

    @model_validator(mode="after")
    def check_data_or_error(self):
        if (self.data is None) == (self.error is None):
            raise ValueError("exactly one of data or error must be set")
        return self
