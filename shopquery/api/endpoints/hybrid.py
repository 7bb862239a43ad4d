from fastapi import APIRouter

from shopquery.api.deps import hybrid_dep
from shopquery.core import schemas

router = APIRouter(prefix="/hybrid", tags=["Hybrid"])


@router.post("/route")
async def route_hybrid(payload: schemas.RouteRequest, service: hybrid_dep):
    """Plan, validate and execute across both stores."""
    return await service.dispatch(payload.input)
