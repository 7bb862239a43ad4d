from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from shopquery.core.allowlist import AllowlistRegistry
from shopquery.core.database import get_db
from shopquery.planning.executor import PlanExecutor
from shopquery.planning.planner import PlannerService
from shopquery.planning.validator import PlanValidator
from shopquery.routing.classifier import QueryClassifier
from shopquery.routing.router import RouterService
from shopquery.services.embeddings import EmbeddingProvider
from shopquery.services.hybrid_query import HybridQueryService
from shopquery.services.llm import ChatLlm
from shopquery.services.sql_query import SqlQueryService
from shopquery.services.vector_search import VectorSearchService

# Process-wide objects (registry, HTTP clients) are built in the app lifespan
# and kept on app.state; everything below is assembled per request.

db_dep = Annotated[AsyncSession, Depends(get_db)]


def get_registry(request: Request) -> AllowlistRegistry:
    return request.app.state.registry


def get_llm(request: Request) -> ChatLlm:
    return request.app.state.llm


def get_embedder(request: Request) -> EmbeddingProvider:
    return request.app.state.embedder


registry_dep = Annotated[AllowlistRegistry, Depends(get_registry)]
llm_dep = Annotated[ChatLlm, Depends(get_llm)]
embedder_dep = Annotated[EmbeddingProvider, Depends(get_embedder)]


def get_sql_service(db: db_dep, registry: registry_dep) -> SqlQueryService:
    return SqlQueryService(db, registry)


def get_vector_service(
    db: db_dep, embedder: embedder_dep, registry: registry_dep
) -> VectorSearchService:
    return VectorSearchService(db, embedder, registry)


sql_dep = Annotated[SqlQueryService, Depends(get_sql_service)]
vector_dep = Annotated[VectorSearchService, Depends(get_vector_service)]


def get_planner(llm: llm_dep, registry: registry_dep) -> PlannerService:
    return PlannerService(llm, registry)


def get_validator(registry: registry_dep) -> PlanValidator:
    return PlanValidator(registry)


def get_executor(
    sql: sql_dep, vectors: vector_dep, registry: registry_dep
) -> PlanExecutor:
    return PlanExecutor(sql, vectors, registry)


planner_dep = Annotated[PlannerService, Depends(get_planner)]
validator_dep = Annotated[PlanValidator, Depends(get_validator)]
executor_dep = Annotated[PlanExecutor, Depends(get_executor)]


def get_hybrid_service(
    planner: planner_dep, validator: validator_dep, executor: executor_dep
) -> HybridQueryService:
    return HybridQueryService(planner, validator, executor)


hybrid_dep = Annotated[HybridQueryService, Depends(get_hybrid_service)]


def get_router_service(
    llm: llm_dep, sql: sql_dep, vectors: vector_dep, hybrid: hybrid_dep
) -> RouterService:
    return RouterService(llm, QueryClassifier(llm), sql, vectors, hybrid)


router_dep = Annotated[RouterService, Depends(get_router_service)]
