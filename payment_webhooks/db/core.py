from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from payment_webhooks.core.config import settings
from payment_webhooks.db.base import Base
import payment_webhooks.models  # noqa: F401


def build_engine(database_url: str, echo: bool = False):
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(database_url,
                               echo=echo,
                               # Pool settings
                               pool_size=10,
                               max_overflow=20,
                               pool_timeout=settings.STORE_TIMEOUT_SECONDS,
                               # Recycle every hour (prevents stale connections)
                               pool_recycle=3600,
                               pool_pre_ping=True
                               )


engine = build_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

async_session_factory = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async DB session
    and ensures it's closed after the request.
    """
    async with async_session_factory() as session:
        yield session
        await session.rollback()


async def init_db():
    # TODO: replace create_all with Alembic migrations once the schema settles
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
