from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from shopquery.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

# Read-only sessions; nothing is committed, objects stay usable after the request
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


# One session per request, closed when the request is done
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


# Declarative base for the catalogue tables
class Base(DeclarativeBase):
    pass
