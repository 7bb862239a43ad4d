import asyncio
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from shopquery.core.allowlist import AllowlistRegistry
from shopquery.core.schemas import (
    AggregateOp,
    JoinOp,
    Plan,
    ProductWithPrice,
    SelectOp,
    SupplierSummary,
    VectorSearchOp,
)
from shopquery.services.sql_query import SqlQueryService
from shopquery.services.vector_search import VectorSearchService

# -----------------------------------------------------------------------------
# EXECUTOR MODULE - plan interpreter
# Purpose: run a Plan's operations in order against a per-run variable table,
# fetching from the vector store and the relational store, and return whatever
# ends up bound to "last".
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

RESULT_VAR = "last"

SortSpec = List[Tuple[str, bool]]  # (column, descending)


class ExecutionLogger:
    """Step log for one plan execution."""

    def __init__(self, label: str = "plan"):
        self.label = label
        self.start_time = datetime.now()
        self.logs = []

    def log(self, step: str, message: str, level: str = "info"):
        """
        Record a step message and mirror it to the module logger.
        """
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "step": step,
            "message": message,
            "level": level,
            "elapsed_seconds": (datetime.now() - self.start_time).total_seconds(),
        }
        self.logs.append(log_entry)

        if level == "error":
            logger.error(f"[{self.label}] {step}: {message}")
        elif level == "warning":
            logger.warning(f"[{self.label}] {step}: {message}")
        else:
            logger.info(f"[{self.label}] {step}: {message}")

    def get_logs(self) -> List[Dict[str, Any]]:
        return self.logs


def _sort_value(value: Any):
    # None sorts after everything ascending
    return (0, value) if value is not None else (1,)


def sort_rows(rows: Sequence[Any], keys: SortSpec, tiebreak: str) -> List[Any]:
    """Multi-key sort with mixed directions; `tiebreak` ascending decides the rest."""
    ordered = sorted(rows, key=lambda r: getattr(r, tiebreak))
    for column, descending in reversed(keys):
        ordered = sorted(
            ordered, key=lambda r: _sort_value(getattr(r, column)), reverse=descending
        )
    return ordered


def _as_float(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def read_ids(variables: Dict[str, Any], name: Optional[str]) -> List[int]:
    """Identifier list bound to `name`; missing or wrong-typed values read as empty."""
    if not name:
        return []
    value = variables.get(name)
    if not isinstance(value, list):
        return []
    if not all(isinstance(x, int) and not isinstance(x, bool) for x in value):
        return []
    return list(value)


class PlanExecutor:
    def __init__(
        self,
        sql: SqlQueryService,
        vectors: VectorSearchService,
        registry: AllowlistRegistry,
    ):
        self.sql = sql
        self.vectors = vectors
        self.registry = registry

    async def execute(
        self, plan: Optional[Plan], trace: Optional[ExecutionLogger] = None
    ) -> Any:
        """
        Run every operation once, in order. An empty plan yields [].

        Args:
            plan: validated plan
            trace: optional step log to fill in

        Returns:
            The value bound to "last", or [] if nothing was bound
        """
        trace = trace or ExecutionLogger()
        if plan is None or plan.is_empty():
            trace.log("plan", "Empty plan, nothing to execute")
            return []

        variables: Dict[str, Any] = {}

        for index, op in enumerate(plan.plan, start=1):
            # cancellation point between steps
            await asyncio.sleep(0)
            step = f"{index}:{op.op}"

            if isinstance(op, VectorSearchOp):
                ids = await self._vector_search(op)
                variables[op.return_] = ids
                trace.log(step, f"'{op.text}' on {op.entity} -> {len(ids)} ids bound to '{op.return_}'")

            elif isinstance(op, SelectOp):
                ids = read_ids(variables, op.ids_in)
                rows = await self._select(op, ids)
                variables[RESULT_VAR] = rows
                trace.log(step, f"{op.entity} for {len(ids)} ids -> {len(rows)} rows")

            elif isinstance(op, (JoinOp, AggregateOp)):
                trace.log(step, "Reserved operation, skipped")

            else:
                raise TypeError(f"Unsupported plan operation: {op!r}")

        return variables.get(RESULT_VAR, [])

    # ---------------------------------------------------------------------
    # vector_search
    # ---------------------------------------------------------------------

    async def _vector_search(self, op: VectorSearchOp) -> List[int]:
        if self.registry.resolve_table(op.entity) != "products":
            return []
        return await self.vectors.search_product_ids(op.text, op.topk)

    # ---------------------------------------------------------------------
    # select
    # ---------------------------------------------------------------------

    async def _select(self, op: SelectOp, ids: List[int]) -> List[Any]:
        table = self.registry.resolve_table(op.entity)
        if table == "productcategory":
            return await self._select_priced_products(op, ids)
        if table == "suppliers":
            return await self._select_suppliers(op, ids)
        # Unsupported entity kind: empty result
        return []

    def _sort_spec(self, table: str, op: SelectOp, default_column: str) -> SortSpec:
        keys: SortSpec = []
        for key in op.sort:
            column = self.registry.resolve_column(table, key.field) or default_column
            keys.append((column, (key.dir or "").lower() == "desc"))
        return keys

    async def _select_priced_products(
        self, op: SelectOp, product_ids: List[int]
    ) -> List[ProductWithPrice]:
        rows = await self.sql.get_product_categories_by_product_ids(product_ids, op.filters)
        keys = self._sort_spec("productcategory", op, "price")

        # Reduce to one best row per product
        groups: Dict[int, List[Any]] = {}
        for row in rows:
            groups.setdefault(row.productid, []).append(row)

        best = []
        for group in groups.values():
            if keys:
                ordered = sort_rows(group, keys, "productcategoryid")
            else:
                # cheapest, then lowest productcategoryid
                ordered = sort_rows(group, [("price", False)], "productcategoryid")
            best.append(ordered[0])

        # Global sort over the winners, then limit
        best = sort_rows(best, keys or [("price", False)], "productid")
        if op.limit is not None and op.limit > 0:
            best = best[: op.limit]

        products = await self.sql.get_products_by_ids([b.productid for b in best])
        products_by_id = {p.productid: p for p in products}

        joined = []
        for b in best:
            product = products_by_id.get(b.productid)
            if product is None:
                continue
            joined.append(
                ProductWithPrice(
                    product_id=product.productid,
                    product_name=product.productname,
                    description=product.description,
                    image_url=product.image_url,
                    supplier_id=product.supplierid,
                    price=_as_float(b.price),
                    cost=_as_float(b.cost),
                    product_category_id=b.productcategoryid,
                )
            )
        return joined

    async def _select_suppliers(
        self, op: SelectOp, product_ids: List[int]
    ) -> List[SupplierSummary]:
        products = await self.sql.get_products_by_ids(product_ids)

        supplier_ids = []
        for product in products:
            if product.supplierid is not None and product.supplierid not in supplier_ids:
                supplier_ids.append(product.supplierid)
        if not supplier_ids:
            return []

        suppliers = await self.sql.get_suppliers_by_ids(supplier_ids, op.filters)
        keys = self._sort_spec("suppliers", op, "suppliername") or [("suppliername", False)]
        ordered = sort_rows(suppliers, keys, "supplierid")
        if op.limit is not None and op.limit > 0:
            ordered = ordered[: op.limit]

        return [
            SupplierSummary(
                supplier_id=s.supplierid,
                supplier_name=s.suppliername,
                address=s.address,
                phone_number=s.phonenumber,
                supplier_email=s.supplieremail,
            )
            for s in ordered
        ]
