from fastapi import APIRouter

from shopquery.api.deps import router_dep
from shopquery.core import schemas

router = APIRouter(prefix="/chat", tags=["Chat"])


@router.post("/route", response_model=schemas.ResultEnvelope)
async def route_chat(payload: schemas.RouteRequest, service: router_dep):
    """
    Classify the input and answer it on the matching route.
    Domain errors come back inside the envelope, always with status 200.
    """
    return await service.handle(payload.input)


@router.get("/route", response_model=schemas.ResultEnvelope)
async def route_chat_get(service: router_dep, q: str = ""):
    """Same as POST, for quick testing via ?q=..."""
    return await service.handle(q)
