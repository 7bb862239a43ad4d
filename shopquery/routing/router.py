import asyncio
import logging
import re
import time
from typing import Any, Optional, Tuple

from shopquery.core.config import settings
from shopquery.core.schemas import (
    EnvelopeMeta,
    ErrorPayload,
    QueryType,
    ResultEnvelope,
    RouteKind,
)
from shopquery.routing.classifier import QueryClassifier
from shopquery.services.hybrid_query import HybridQueryService
from shopquery.services.llm import CHAT_SYSTEM_PROMPT, ChatLlm
from shopquery.services.sql_query import SqlQueryService
from shopquery.services.vector_search import VectorSearchService

logger = logging.getLogger(__name__)

GREETING = re.compile(
    r"^(hi|hello|hey|sup|good (morning|evening)|how (are|r) (you|u))\b", re.IGNORECASE
)

# Explicit prefixes pick the route and are stripped before dispatch
PREFIXES = (
    ("sql:", RouteKind.SQL),
    ("vector:", RouteKind.VECTOR),
    ("similar:", RouteKind.VECTOR),
    ("hybrid:", RouteKind.HYBRID),
)

ROUTES = {
    QueryType.STRUCTURED: RouteKind.SQL,
    QueryType.SEMANTIC: RouteKind.VECTOR,
    QueryType.HYBRID: RouteKind.HYBRID,
    QueryType.CHITCHAT: RouteKind.CHITCHAT,
}


def is_greeting(text: str) -> bool:
    return bool(GREETING.match((text or "").strip()))


def strip_prefix(text: str) -> Tuple[Optional[RouteKind], str]:
    stripped = (text or "").strip()
    lower = stripped.lower()
    for prefix, route in PREFIXES:
        if lower.startswith(prefix):
            return route, stripped[len(prefix):].strip()
    return None, stripped


class RouterService:
    """
    Top-level entry point: one request in, one ResultEnvelope out.

    Domain failures never escape `handle`; they come back in the envelope's
    `error` field with the route that was being served.
    """

    def __init__(
        self,
        llm: ChatLlm,
        classifier: QueryClassifier,
        sql: SqlQueryService,
        vectors: VectorSearchService,
        hybrid: HybridQueryService,
        timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
    ):
        self.llm = llm
        self.classifier = classifier
        self.sql = sql
        self.vectors = vectors
        self.hybrid = hybrid
        self.timeout = timeout

    async def handle(self, text: str) -> ResultEnvelope:
        started = time.perf_counter()
        deadline = started + self.timeout
        route = RouteKind.CHITCHAT

        try:
            route, query = await asyncio.wait_for(
                self.decide(text), timeout=self._remaining(deadline)
            )
            data = await asyncio.wait_for(
                self.dispatch(route, query), timeout=self._remaining(deadline)
            )
        except asyncio.TimeoutError:
            logger.warning(f"Request timed out on route {route.value}")
            error = ErrorPayload(
                type="TimeoutError", message=f"Request exceeded {self.timeout:g}s"
            )
            return self._envelope(route, started, error=error)
        except Exception as e:
            logger.error(f"Route {route.value} failed: {type(e).__name__}: {e}")
            error = ErrorPayload(type=type(e).__name__, message=str(e))
            return self._envelope(route, started, error=error)

        return self._envelope(route, started, data=data)

    async def decide(self, text: str) -> Tuple[RouteKind, str]:
        """Pick a route and the text to hand to its dispatcher."""
        if is_greeting(text):
            return RouteKind.CHITCHAT, text

        route, query = strip_prefix(text)
        if route is not None:
            return route, query

        label = await self.classifier.classify(text)
        return ROUTES[label], query

    async def dispatch(self, route: RouteKind, query: str) -> Any:
        if route == RouteKind.SQL:
            return await self.sql.dispatch(query)
        if route == RouteKind.VECTOR:
            return await self.vectors.dispatch(query)
        if route == RouteKind.HYBRID:
            return await self.hybrid.dispatch(query)
        return {"reply": await self.llm.chat(CHAT_SYSTEM_PROMPT, query)}

    def _remaining(self, deadline: float) -> float:
        return max(deadline - time.perf_counter(), 0.0)

    def _envelope(
        self,
        route: RouteKind,
        started: float,
        data: Any = None,
        error: Optional[ErrorPayload] = None,
    ) -> ResultEnvelope:
        elapsed_ms = int(round((time.perf_counter() - started) * 1000))
        return ResultEnvelope(
            route=route, data=data, error=error, meta=EnvelopeMeta(ms=elapsed_ms)
        )
