import logging
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from shopquery.core import models, schemas
from shopquery.core.allowlist import AllowlistRegistry

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# SQL QUERY SERVICE - relational store access
# Purpose: every read against the catalogue tables goes through here, always
# parameterized and always limited according to the allowlist registry.
# -----------------------------------------------------------------------------

# Allowlisted comparison operators -> SQLAlchemy expression builders
OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "=": lambda col, value: col == value,
    "<": lambda col, value: col < value,
    ">": lambda col, value: col > value,
    "<=": lambda col, value: col <= value,
    ">=": lambda col, value: col >= value,
    "LIKE": lambda col, value: col.like(value),
    "ILIKE": lambda col, value: col.ilike(value),
}

MODELS_BY_TABLE = {
    "products": models.Product,
    "suppliers": models.Supplier,
    "productcategory": models.ProductCategory,
}

PREFIXED_QUERY = re.compile(r"^(products|suppliers|categories)\s*:\s*(.+)$", re.IGNORECASE)


class SqlQueryService:
    """Read-only queries over products, suppliers and productcategory."""

    def __init__(self, db: AsyncSession, registry: AllowlistRegistry):
        self.db = db
        self.registry = registry

    # ---------------------------------------------------------------------
    # Listings / searches (relational-only route)
    # ---------------------------------------------------------------------

    async def get_products(self, limit: Optional[int] = None) -> List[models.Product]:
        query = (
            select(models.Product)
            .order_by(models.Product.productid)
            .limit(self.registry.clamp_limit(limit))
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def search_products(
        self, text: str, limit: Optional[int] = None
    ) -> List[models.Product]:
        pattern = f"%{text.strip()}%"
        query = (
            select(models.Product)
            .where(
                or_(
                    models.Product.productname.ilike(pattern),
                    models.Product.description.ilike(pattern),
                )
            )
            .order_by(models.Product.productid)
            .limit(self.registry.clamp_limit(limit))
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_suppliers(self, limit: Optional[int] = None) -> List[models.Supplier]:
        query = (
            select(models.Supplier)
            .order_by(models.Supplier.supplierid)
            .limit(self.registry.clamp_limit(limit))
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def search_suppliers(
        self, text: str, limit: Optional[int] = None
    ) -> List[models.Supplier]:
        pattern = f"%{text.strip()}%"
        query = (
            select(models.Supplier)
            .where(
                or_(
                    models.Supplier.suppliername.ilike(pattern),
                    models.Supplier.contactperson.ilike(pattern),
                    models.Supplier.address.ilike(pattern),
                )
            )
            .order_by(models.Supplier.supplierid)
            .limit(self.registry.clamp_limit(limit))
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_categories(
        self, limit: Optional[int] = None
    ) -> List[models.ProductCategory]:
        query = (
            select(models.ProductCategory)
            .order_by(models.ProductCategory.productcategoryid)
            .limit(self.registry.clamp_limit(limit))
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def search_categories(
        self, text: str, limit: Optional[int] = None
    ) -> List[models.ProductCategory]:
        pattern = f"%{text.strip()}%"
        query = (
            select(models.ProductCategory)
            .where(
                or_(
                    models.ProductCategory.color.ilike(pattern),
                    models.ProductCategory.agesize.ilike(pattern),
                )
            )
            .order_by(models.ProductCategory.productcategoryid)
            .limit(self.registry.clamp_limit(limit))
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ---------------------------------------------------------------------
    # Id-restricted fetches (plan executor)
    # ---------------------------------------------------------------------

    async def get_product_categories_by_product_ids(
        self,
        product_ids: Sequence[int],
        filters: Iterable[schemas.FilterClause] = (),
    ) -> List[models.ProductCategory]:
        if not product_ids:
            return []

        query = select(models.ProductCategory).where(
            models.ProductCategory.productid.in_(list(product_ids))
        )
        for clause in self._filter_clauses("productcategory", filters):
            query = query.where(clause)
        query = query.order_by(models.ProductCategory.productcategoryid)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_products_by_ids(
        self, product_ids: Sequence[int]
    ) -> List[models.Product]:
        if not product_ids:
            return []

        query = (
            select(models.Product)
            .where(models.Product.productid.in_(list(product_ids)))
            .order_by(models.Product.productid)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_suppliers_by_ids(
        self,
        supplier_ids: Sequence[int],
        filters: Iterable[schemas.FilterClause] = (),
    ) -> List[models.Supplier]:
        if not supplier_ids:
            return []

        query = select(models.Supplier).where(
            models.Supplier.supplierid.in_(list(supplier_ids))
        )
        for clause in self._filter_clauses("suppliers", filters):
            query = query.where(clause)
        query = query.order_by(models.Supplier.supplierid)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _filter_clauses(self, table: str, filters: Iterable[schemas.FilterClause]):
        """Turn allowlisted filter clauses into bound WHERE expressions."""
        model = MODELS_BY_TABLE[table]
        for f in filters:
            column = self.registry.resolve_column(table, f.column)
            operator = f.operator.strip().upper()
            if column is None or not self.registry.is_operator_allowed(operator):
                raise ValueError(
                    f"Filter {f.column} {f.operator} is not allowed on {table}"
                )
            yield OPERATORS[operator](getattr(model, column), f.value)

    # ---------------------------------------------------------------------
    # Dispatcher
    # ---------------------------------------------------------------------

    async def dispatch(self, text: str) -> List[Dict[str, Any]]:
        """
        Answer a relational-only request from a fixed grammar:

            all products | all suppliers | all categories
            products: <text> | suppliers: <text> | categories: <text>

        Anything else is treated as a product name search. Nothing the user
        types ever becomes SQL; it is only ever a bound ILIKE parameter.
        """
        query = (text or "").strip()
        lower = query.lower()
        logger.info(f"SQL dispatch: {query[:80]!r}")

        if lower in ("all products", "products"):
            rows = await self.get_products()
            return _dump(rows, schemas.ProductResponse)
        if lower in ("all suppliers", "suppliers"):
            rows = await self.get_suppliers()
            return _dump(rows, schemas.SupplierResponse)
        if lower in ("all categories", "categories"):
            rows = await self.get_categories()
            return _dump(rows, schemas.ProductCategoryResponse)

        match = PREFIXED_QUERY.match(query)
        if match:
            kind, needle = match.group(1).lower(), match.group(2)
            if kind == "suppliers":
                return _dump(await self.search_suppliers(needle), schemas.SupplierResponse)
            if kind == "categories":
                return _dump(
                    await self.search_categories(needle), schemas.ProductCategoryResponse
                )
            return _dump(await self.search_products(needle), schemas.ProductResponse)

        if not query:
            return []
        return _dump(await self.search_products(query), schemas.ProductResponse)


def _dump(rows, response_model) -> List[Dict[str, Any]]:
    return [response_model.model_validate(row).model_dump(mode="json") for row in rows]
