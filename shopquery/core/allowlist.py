import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional


# -----------------------------------------------------------------------------
# ALLOWLIST REGISTRY
# Purpose: the static safety boundary for generated plans. Lists the tables a
# plan may touch, the columns per table, the comparison operators and the row
# limits. Built once at startup and never mutated.
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AllowlistRegistry:
    """Read-only lookup of what a plan is permitted to reference.

    Table, column and entity lookups are case-insensitive; stored names are
    lowercase, matching the Postgres schema.
    """

    tables: Mapping[str, FrozenSet[str]]
    operators: FrozenSet[str]
    # Plan entity kind -> table name ("supplier" -> "suppliers")
    entities: Mapping[str, str] = field(default_factory=dict)
    # Per-table friendly sort names -> column ("name" -> "suppliername")
    field_aliases: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    default_limit: int = 50
    max_limit: int = 1000

    def is_table_allowed(self, table: str) -> bool:
        return (table or "").lower() in self.tables

    def is_column_allowed(self, table: str, column: str) -> bool:
        columns = self.tables.get((table or "").lower())
        return columns is not None and (column or "").lower() in columns

    def is_operator_allowed(self, op: str) -> bool:
        return (op or "").strip().upper() in self.operators

    def resolve_table(self, entity: str) -> Optional[str]:
        """Map a plan entity (or a bare table name) to an allowed table, or None."""
        key = (entity or "").lower()
        table = self.entities.get(key, key)
        return table if table in self.tables else None

    def resolve_column(self, table: str, name: str) -> Optional[str]:
        """Map a column or alias to an allowed column of `table`, or None."""
        table = (table or "").lower()
        key = (name or "").lower()
        column = self.field_aliases.get(table, {}).get(key, key)
        return column if self.is_column_allowed(table, column) else None

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None or limit <= 0:
            return self.default_limit
        return min(limit, self.max_limit)

    def snapshot(self) -> str:
        """Serialized registry for the planner prompt."""
        return json.dumps(
            {
                "entities": dict(self.entities),
                "tables": {t: sorted(cols) for t, cols in sorted(self.tables.items())},
                "sort_aliases": {t: dict(a) for t, a in self.field_aliases.items()},
                "operators": sorted(self.operators),
                "default_limit": self.default_limit,
                "max_limit": self.max_limit,
            },
            sort_keys=True,
        )


def build_default_registry() -> AllowlistRegistry:
    """The catalogue allowlist: products, suppliers and their priced variants."""
    tables: Dict[str, FrozenSet[str]] = {
        "products": frozenset(
            {
                "productid",
                "productname",
                "description",
                "supplierid",
                "createdat",
                "updatedat",
                "image_url",
                "updatedbyuserid",
            }
        ),
        "suppliers": frozenset(
            {
                "supplierid",
                "suppliername",
                "contactperson",
                "phonenumber",
                "supplieremail",
                "address",
                "createdat",
                "updatedat",
                "supplierstatus",
                "defectreturned",
            }
        ),
        "productcategory": frozenset(
            {
                "productcategoryid",
                "productid",
                "price",
                "cost",
                "color",
                "agesize",
                "currentstock",
                "reorderpoint",
                "updatedstock",
            }
        ),
    }
    return AllowlistRegistry(
        tables=MappingProxyType(tables),
        operators=frozenset({"=", "<", ">", "<=", ">=", "LIKE", "ILIKE"}),
        entities=MappingProxyType(
            {
                "product": "products",
                "products": "products",
                "supplier": "suppliers",
                "suppliers": "suppliers",
                "productcategory": "productcategory",
            }
        ),
        field_aliases=MappingProxyType(
            {
                "suppliers": MappingProxyType({"name": "suppliername", "id": "supplierid"}),
                "products": MappingProxyType({"name": "productname", "id": "productid"}),
                "productcategory": MappingProxyType({"id": "productcategoryid"}),
            }
        ),
        default_limit=50,
        max_limit=1000,
    )
