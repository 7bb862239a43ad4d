from fastapi import APIRouter

from shopquery.api.deps import vector_dep
from shopquery.core import schemas

router = APIRouter(prefix="/vector", tags=["Vector"])


@router.post("/route")
async def route_vector(payload: schemas.RouteRequest, service: vector_dep):
    """ANN product search: "[products:] <text> [topk:<n>]"."""
    return await service.dispatch(payload.input)
