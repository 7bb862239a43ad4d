import logging
from typing import Any, List

import httpx

from shopquery.core.config import settings
from shopquery.core.errors import EmbeddingError

logger = logging.getLogger(__name__)


def build_embed_http_client() -> httpx.AsyncClient:
    """Shared client for the Ollama-style embedding API."""
    return httpx.AsyncClient(
        base_url=settings.EMBED_BASE_URL, timeout=settings.EMBED_TIMEOUT_SECONDS
    )


def parse_embedding(data: Any) -> List[float]:
    """
    Pull the vector out of an embedding response.

    Supports:
        - {"embedding": [...]}            (Ollama)
        - {"data": [{"embedding": [...]}]} (OpenAI style)
    """
    if isinstance(data, dict):
        vector = data.get("embedding")
        if isinstance(vector, list):
            return [float(x) for x in vector]

        items = data.get("data")
        if isinstance(items, list) and items and isinstance(items[0], dict):
            vector = items[0].get("embedding")
            if isinstance(vector, list):
                return [float(x) for x in vector]

    raise EmbeddingError(f"Unexpected embeddings response: {str(data)[:200]}")


class EmbeddingProvider:
    """Turns query text into a fixed-length vector. No fallback: failures raise."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        model: str = settings.EMBED_MODEL,
        dimension: int = settings.EMBED_DIMENSION,
    ):
        self.http = http
        self.model = model
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        payload = {"model": self.model, "prompt": text}

        try:
            response = await self.http.post("api/embeddings", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise EmbeddingError(f"Embedding service failed: {e}") from e
        except ValueError as e:
            raise EmbeddingError(f"Embedding response is not JSON: {e}") from e

        vector = parse_embedding(data)
        if self.dimension and len(vector) != self.dimension:
            raise EmbeddingError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimension}"
            )

        logger.debug(f"Embedded {len(text)} chars into {len(vector)} dims")
        return vector
