from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from shopquery.main import app
from shopquery.core import models
from shopquery.core.allowlist import build_default_registry
from shopquery.core.database import Base, get_db
from shopquery.core.errors import CompletionUnavailableError, EmbeddingError
from shopquery.api import deps
from shopquery.planning.executor import PlanExecutor
from shopquery.planning.planner import PlannerService
from shopquery.planning.validator import PlanValidator
from shopquery.routing.classifier import QueryClassifier
from shopquery.routing.router import RouterService
from shopquery.services.hybrid_query import HybridQueryService
from shopquery.services.sql_query import SqlQueryService

# In-memory SQLite shared across connections of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)


# =========================
# Fakes for the external services
# =========================
class FakeLlm:
    """Scripted stand-in for ChatLlm that records every call."""

    def __init__(
        self,
        enabled: bool = True,
        label: str = "chitchat",
        plan: Optional[Dict] = None,
        reply: str = "Hello there!",
    ):
        self.enabled = enabled
        self.label = label
        self.plan = plan
        self.reply = reply
        self.calls: List[str] = []

    async def chat(self, system: str, user: str) -> str:
        self.calls.append("chat")
        if not self.enabled:
            return f"[llm-disabled] {user}"
        return self.reply

    async def classify(self, system: str, user: str) -> str:
        self.calls.append("classify")
        return self.label if self.enabled else "chitchat"

    async def complete_json(self, system: str, user: str) -> Dict:
        self.calls.append("complete_json")
        if not self.enabled or self.plan is None:
            raise CompletionUnavailableError("completion service disabled (no API key)")
        return self.plan


class FakeVectorService:
    """ANN results keyed by query text; `fail=True` behaves like a dead embedder."""

    def __init__(self, results: Optional[Dict[str, List[int]]] = None, fail: bool = False):
        self.results = results or {}
        self.fail = fail
        self.queries: List[str] = []

    async def search_product_ids(self, query: str, topk: int = 10) -> List[int]:
        self.queries.append(query)
        if self.fail:
            raise EmbeddingError("Embedding service failed: connection refused")
        return list(self.results.get(query, []))[:topk]

    async def dispatch(self, text_input: str):
        ids = await self.search_product_ids(text_input)
        return [{"product_id": i, "content": f"product {i}", "distance": -1.0} for i in ids]


class FakeEmbedder:
    def __init__(self, vector: Optional[List[float]] = None, fail: bool = False):
        self.vector = vector or [0.1, 0.2, 0.3]
        self.fail = fail

    async def embed(self, text: str) -> List[float]:
        if self.fail:
            raise EmbeddingError("Embedding service failed: 500")
        return self.vector


# =========================
# Database
# =========================
@pytest_asyncio.fixture(scope="function")
async def db_session():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def catalogue(db_session: AsyncSession):
    """
    Three suppliers, four products, five priced variants.

    product 5  "Dino Onesie"        supplier 1, prices 10 / 12
    product 9  "Dino Pajama Set"    supplier 2, price 8
    product 12 "Waterproof Jacket"  supplier 3, price 40
    product 14 "Rain Jacket"        supplier 2, price 35
    """
    db_session.add_all(
        [
            models.Supplier(supplierid=1, suppliername="Zeta Supplies", address="1 Zeta Rd",
                            createdat=NOW, updatedat=NOW),
            models.Supplier(supplierid=2, suppliername="Acme Kids", address="2 Acme St",
                            phonenumber="555-0102", createdat=NOW, updatedat=NOW),
            models.Supplier(supplierid=3, suppliername="Bravo Wear", supplieremail="hi@bravo.test",
                            createdat=NOW, updatedat=NOW),
        ]
    )
    await db_session.flush()
    db_session.add_all(
        [
            models.Product(productid=5, productname="Dino Onesie", description="Green dinosaur onesie",
                           supplierid=1, createdat=NOW, updatedat=NOW),
            models.Product(productid=9, productname="Dino Pajama Set", description="Two-piece pajamas",
                           supplierid=2, createdat=NOW, updatedat=NOW),
            models.Product(productid=12, productname="Waterproof Jacket", description="Hooded shell",
                           supplierid=3, createdat=NOW, updatedat=NOW),
            models.Product(productid=14, productname="Rain Jacket", description="Light rain jacket",
                           supplierid=2, createdat=NOW, updatedat=NOW),
        ]
    )
    await db_session.flush()
    db_session.add_all(
        [
            models.ProductCategory(productcategoryid=101, productid=5, price=Decimal("10.00"),
                                   cost=Decimal("6.00"), color="green", agesize="2T", currentstock=4),
            models.ProductCategory(productcategoryid=102, productid=5, price=Decimal("12.00"),
                                   cost=Decimal("7.00"), color="blue", agesize="4T", currentstock=2),
            models.ProductCategory(productcategoryid=103, productid=9, price=Decimal("8.00"),
                                   cost=Decimal("5.00"), color="red", agesize="3T", currentstock=9),
            models.ProductCategory(productcategoryid=104, productid=12, price=Decimal("40.00"),
                                   cost=Decimal("25.00"), color="yellow", agesize="8Y", currentstock=1),
            models.ProductCategory(productcategoryid=105, productid=14, price=Decimal("35.00"),
                                   cost=Decimal("20.00"), color="navy", agesize="6Y", currentstock=3),
        ]
    )
    await db_session.commit()
    return db_session


# =========================
# Services
# =========================
@pytest.fixture
def registry():
    return build_default_registry()


@pytest.fixture
def fake_llm():
    return FakeLlm(enabled=False)


@pytest.fixture
def fake_vectors():
    return FakeVectorService(
        {
            "dino onesie": [5, 9],
            "waterproof jacket": [12, 14, 9],
        }
    )


@pytest.fixture
def sql_service(catalogue, registry):
    return SqlQueryService(catalogue, registry)


@pytest.fixture
def executor(sql_service, fake_vectors, registry):
    return PlanExecutor(sql_service, fake_vectors, registry)


@pytest.fixture
def router_service(fake_llm, sql_service, fake_vectors, executor, registry):
    hybrid = HybridQueryService(
        PlannerService(fake_llm, registry), PlanValidator(registry), executor
    )
    return RouterService(
        fake_llm, QueryClassifier(fake_llm), sql_service, fake_vectors, hybrid
    )


# Client
@pytest_asyncio.fixture(scope="function")
async def client(catalogue, registry, fake_llm, fake_vectors):
    async def override_get_db():
        yield catalogue

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_llm] = lambda: fake_llm
    app.dependency_overrides[deps.get_embedder] = lambda: FakeEmbedder()
    app.dependency_overrides[deps.get_vector_service] = lambda: fake_vectors

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
