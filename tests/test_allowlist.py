import json

import pytest


def test_known_tables_are_allowed(registry):
    assert registry.is_table_allowed("products")
    assert registry.is_table_allowed("Suppliers")
    assert registry.is_table_allowed("productcategory")
    assert not registry.is_table_allowed("users")
    assert not registry.is_table_allowed("")


def test_columns_are_checked_per_table(registry):
    assert registry.is_column_allowed("productcategory", "price")
    assert registry.is_column_allowed("suppliers", "suppliername")
    # price lives on productcategory, not products
    assert not registry.is_column_allowed("products", "price")
    assert not registry.is_column_allowed("nope", "price")


@pytest.mark.parametrize("op", ["=", "<", ">", "<=", ">=", "like", "ILIKE"])
def test_permitted_operators(registry, op):
    assert registry.is_operator_allowed(op)


@pytest.mark.parametrize("op", ["!=", "IN", "; DROP TABLE products", ""])
def test_other_operators_are_refused(registry, op):
    assert not registry.is_operator_allowed(op)


def test_entities_and_aliases_resolve(registry):
    assert registry.resolve_table("product") == "products"
    assert registry.resolve_table("supplier") == "suppliers"
    assert registry.resolve_table("productcategory") == "productcategory"
    assert registry.resolve_table("orders") is None

    assert registry.resolve_column("suppliers", "name") == "suppliername"
    assert registry.resolve_column("productcategory", "PRICE") == "price"
    assert registry.resolve_column("productcategory", "name") is None


def test_limits_are_clamped(registry):
    assert registry.clamp_limit(None) == registry.default_limit
    assert registry.clamp_limit(0) == registry.default_limit
    assert registry.clamp_limit(-3) == registry.default_limit
    assert registry.clamp_limit(7) == 7
    assert registry.clamp_limit(5000) == registry.max_limit


def test_registry_is_read_only(registry):
    with pytest.raises(Exception):
        registry.max_limit = 10
    with pytest.raises(TypeError):
        registry.tables["orders"] = frozenset({"orderid"})


def test_snapshot_is_json_for_the_planner(registry):
    snap = json.loads(registry.snapshot())
    assert "price" in snap["tables"]["productcategory"]
    assert snap["entities"]["supplier"] == "suppliers"
    assert snap["max_limit"] == 1000
