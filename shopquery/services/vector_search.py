import logging
import re
from typing import Any, Dict, List, Sequence

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from shopquery.core import models, schemas
from shopquery.core.allowlist import AllowlistRegistry
from shopquery.core.errors import UnsupportedQueryError
from shopquery.services.embeddings import EmbeddingProvider

logger = logging.getLogger(__name__)

DEFAULT_TOPK = 10

# Inner-product ANN over pgvector. `<#>` returns the negative inner product,
# so ascending order is most-similar first; product_id breaks ties.
ANN_QUERY = text(
    f"""
    SELECT product_id, content, (embedding <#> CAST(CAST(:vec AS TEXT) AS vector)) AS distance
    FROM {models.ProductEmbedding.__tablename__}
    ORDER BY distance ASC, product_id ASC
    LIMIT :k
    """
)

TOPK_HINT = re.compile(r"\btopk\s*:\s*(\d+)\b", re.IGNORECASE)
PRODUCTS_PREFIX = re.compile(r"^products?\s*:\s*", re.IGNORECASE)


def to_pgvector_literal(vector: Sequence[float]) -> str:
    # Postgres parses "[0.1,0.2,...]" as a vector literal
    return "[" + ",".join(repr(float(x)) for x in vector) + "]"


class VectorSearchService:
    """ANN search over product embeddings."""

    def __init__(
        self,
        db: AsyncSession,
        embedder: EmbeddingProvider,
        registry: AllowlistRegistry,
    ):
        self.db = db
        self.embedder = embedder
        self.registry = registry

    async def search_products(self, query: str, topk: int = DEFAULT_TOPK) -> List[schemas.VectorHit]:
        """Nearest products for `query`, most similar first."""
        vector = await self.embedder.embed(query)
        k = max(1, min(topk, self.registry.max_limit))

        result = await self.db.execute(
            ANN_QUERY, {"vec": to_pgvector_literal(vector), "k": k}
        )
        hits = [
            schemas.VectorHit(
                product_id=row.product_id,
                content=row.content,
                distance=float(row.distance),
            )
            for row in result
        ]
        logger.info(f"ANN '{query[:60]}' (k={k}) -> {len(hits)} hits")
        return hits

    async def search_product_ids(self, query: str, topk: int = DEFAULT_TOPK) -> List[int]:
        hits = await self.search_products(query, topk)
        return [hit.product_id for hit in hits]

    async def dispatch(self, text_input: str) -> List[Dict[str, Any]]:
        """
        Answer a vector-only request: "[products:] <text> [topk:<n>]".
        """
        query = (text_input or "").strip()
        topk = DEFAULT_TOPK

        hint = TOPK_HINT.search(query)
        if hint:
            topk = int(hint.group(1)) or DEFAULT_TOPK
            query = TOPK_HINT.sub("", query)

        query = PRODUCTS_PREFIX.sub("", query).strip()
        if not query:
            raise UnsupportedQueryError("Vector search needs some text to search for")

        hits = await self.search_products(query, topk)
        return [hit.model_dump() for hit in hits]
