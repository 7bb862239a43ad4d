from fastapi import APIRouter
from shopquery.api.endpoints import chat, plan, sql, vector, hybrid

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(chat.router)
api_router.include_router(plan.router)
api_router.include_router(sql.router)
api_router.include_router(vector.router)
api_router.include_router(hybrid.router)
