import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from shopquery.api.router import api_router
from shopquery.core.allowlist import build_default_registry
from shopquery.core.config import settings
from shopquery.core.database import engine
from shopquery.core.errors import EmbeddingError, ShopQueryError
from shopquery.services.embeddings import EmbeddingProvider, build_embed_http_client
from shopquery.services.llm import ChatLlm, build_llm_http_client

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# Build the shared, read-only pieces once; close clients and the engine on shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.registry = build_default_registry()

    llm_http = build_llm_http_client()
    embed_http = build_embed_http_client()
    app.state.llm = ChatLlm(llm_http)
    app.state.embedder = EmbeddingProvider(embed_http)

    if not app.state.llm.enabled:
        logger.warning("LLM_API_KEY not set: classification and planning use local fallbacks")

    yield

    await llm_http.aclose()
    await embed_http.aclose()
    await engine.dispose()


app = FastAPI(title="Shop Query Router API", lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.exception_handler(ShopQueryError)
async def domain_error_handler(request: Request, exc: ShopQueryError):
    """Domain errors from the single-domain endpoints become clean JSON errors."""
    status_code = (
        status.HTTP_502_BAD_GATEWAY
        if isinstance(exc, EmbeddingError)
        else status.HTTP_400_BAD_REQUEST
    )
    logger.warning(f"{request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_code": type(exc).__name__},
    )


@app.get("/")
async def root():
    return {"message": "Welcome to the Shop Query Router API"}


@app.get("/health")
async def health():
    return {"ok": True}
