import logging
from typing import Any, List, NamedTuple, Optional, Set

from pydantic import ValidationError

from shopquery.core.allowlist import AllowlistRegistry
from shopquery.core.schemas import (
    OPERATION_TAGS,
    AggregateOp,
    FilterClause,
    JoinOp,
    Plan,
    SelectOp,
    SortKey,
    VectorSearchOp,
)

logger = logging.getLogger(__name__)

DEFAULT_TOPK = 10
SORT_DIRECTIONS = ("asc", "desc")


class ValidationResult(NamedTuple):
    ok: bool
    error: Optional[str]
    plan: Plan


class PlanRejection(Exception):
    # internal: carries the human-readable reason out of the per-step checks
    pass


class PlanValidator:
    """
    Safety gate between planning and execution.

    Every table, column and operator a plan mentions must be in the allowlist
    registry. Limits are clamped, sort directions and operator spellings are
    normalised, and the corrected plan is returned as a new Plan. Anything that
    cannot be repaired rejects the whole plan.
    """

    def __init__(self, registry: AllowlistRegistry):
        self.registry = registry

    def validate(self, plan: Plan) -> ValidationResult:
        if plan is None:
            return ValidationResult(True, None, Plan())

        bound: Set[str] = set()
        corrected: List[Any] = []
        try:
            for index, op in enumerate(plan.plan, start=1):
                if isinstance(op, VectorSearchOp):
                    corrected.append(self._check_vector_search(index, op))
                    bound.add(op.return_)
                elif isinstance(op, SelectOp):
                    corrected.append(self._check_select(index, op, bound))
                elif isinstance(op, (JoinOp, AggregateOp)):
                    corrected.append(op)
                else:
                    raise PlanRejection(f"Step {index}: unknown operation {op!r}")
        except PlanRejection as e:
            logger.warning(f"Plan rejected: {e}")
            return ValidationResult(False, str(e), plan)

        return ValidationResult(True, None, Plan(plan=tuple(corrected)))

    def validate_wire(self, payload: Any) -> ValidationResult:
        """Validate a raw `{"plan": [...]}` document (direct plan submission)."""
        if not isinstance(payload, dict) or not isinstance(payload.get("plan"), list):
            return ValidationResult(False, 'Plan must be an object with a "plan" list', Plan())

        for index, step in enumerate(payload["plan"], start=1):
            if not isinstance(step, dict):
                return ValidationResult(False, f"Step {index}: must be an object", Plan())
            tag = step.get("op", step.get("Op"))
            if not isinstance(tag, str) or tag.strip().lower() not in OPERATION_TAGS:
                return ValidationResult(
                    False,
                    f"Step {index}: unknown operation {tag!r}; "
                    f"allowed: {', '.join(OPERATION_TAGS)}",
                    Plan(),
                )

        try:
            plan = Plan.model_validate(payload)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            return ValidationResult(False, f"Malformed plan at {location}: {first['msg']}", Plan())

        return self.validate(plan)

    # ---------------------------------------------------------------------
    # Per-operation checks
    # ---------------------------------------------------------------------

    def _check_vector_search(self, index: int, op: VectorSearchOp) -> VectorSearchOp:
        if self.registry.resolve_table(op.entity) is None:
            raise PlanRejection(f"Step {index}: entity '{op.entity}' is not allowed")
        if not op.return_ or not op.return_.strip():
            raise PlanRejection(f"Step {index}: vector_search must name its output variable")

        topk = op.topk if op.topk > 0 else DEFAULT_TOPK
        return op.model_copy(update={"topk": min(topk, self.registry.max_limit)})

    def _check_select(self, index: int, op: SelectOp, bound: Set[str]) -> SelectOp:
        table = self.registry.resolve_table(op.entity)
        if table is None:
            raise PlanRejection(f"Step {index}: entity '{op.entity}' is not allowed")

        if op.ids_in and op.ids_in not in bound:
            # Executor treats an unbound variable as an empty id set
            logger.warning(f"Step {index}: ids_in '{op.ids_in}' is not bound by an earlier step")

        sort = []
        for key in op.sort:
            column = self.registry.resolve_column(table, key.field)
            if column is None:
                raise PlanRejection(
                    f"Step {index}: cannot sort {table} by '{key.field}'"
                )
            direction = (key.dir or "asc").strip().lower()
            if direction not in SORT_DIRECTIONS:
                raise PlanRejection(
                    f"Step {index}: sort direction '{key.dir}' must be asc or desc"
                )
            sort.append(SortKey(field=column, dir=direction))

        filters = []
        for clause in op.filters:
            column = self.registry.resolve_column(table, clause.column)
            if column is None:
                raise PlanRejection(
                    f"Step {index}: cannot filter {table} on '{clause.column}'"
                )
            operator = clause.operator.strip().upper()
            if not self.registry.is_operator_allowed(operator):
                raise PlanRejection(
                    f"Step {index}: operator '{clause.operator}' is not allowed"
                )
            filters.append(FilterClause(column=column, operator=operator, value=clause.value))

        limit = self.registry.clamp_limit(op.limit)
        if op.limit is not None and op.limit != limit:
            logger.info(f"Step {index}: limit {op.limit} clamped to {limit}")

        return op.model_copy(
            update={"sort": tuple(sort), "filters": tuple(filters), "limit": limit}
        )
