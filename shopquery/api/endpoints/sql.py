from typing import List, Optional

from fastapi import APIRouter

from shopquery.api.deps import sql_dep
from shopquery.core import schemas

router = APIRouter(prefix="/sql", tags=["SQL"])


@router.get("/products", response_model=List[schemas.ProductResponse])
async def list_products(
    service: sql_dep, q: Optional[str] = None, limit: Optional[int] = None
):
    """List products, or search them by name/description with ?q=."""
    if q and q.strip():
        return await service.search_products(q, limit)
    return await service.get_products(limit)


@router.get("/suppliers", response_model=List[schemas.SupplierResponse])
async def list_suppliers(
    service: sql_dep, q: Optional[str] = None, limit: Optional[int] = None
):
    """List suppliers, or search them with ?q=."""
    if q and q.strip():
        return await service.search_suppliers(q, limit)
    return await service.get_suppliers(limit)


@router.get("/productcategory", response_model=List[schemas.ProductCategoryResponse])
async def list_categories(
    service: sql_dep, q: Optional[str] = None, limit: Optional[int] = None
):
    """List priced product variants, or search by colour / age size with ?q=."""
    if q and q.strip():
        return await service.search_categories(q, limit)
    return await service.get_categories(limit)


@router.post("/route")
async def route_sql(payload: schemas.RouteRequest, service: sql_dep):
    """Relational-only dispatcher (fixed grammar, see SqlQueryService.dispatch)."""
    return await service.dispatch(payload.input)
