import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from financeai.core.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def build_engine(db_url: str) -> AsyncEngine:
    """Create the async engine with connection arguments suited to the backend."""
    if "sqlite" in db_url:
        return create_async_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False},
        )

    # Hosted Postgres (database-as-a-service) always requires SSL
    url_str = db_url.lower()
    is_local = "localhost" in url_str or "127.0.0.1" in url_str
    connect_args = {
        "statement_cache_size": 0,
        "timeout": 30,
        "command_timeout": 30,
    }
    if not is_local:
        connect_args["ssl"] = "require"

    return create_async_engine(
        db_url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=300,
        pool_size=10,
        max_overflow=20,
        connect_args=connect_args,
    )


try:
    engine = build_engine(settings.DATABASE_URL)
except Exception as e:
    logger.critical(f"Failed to create database engine: {e}")
    raise

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


class Base(DeclarativeBase):
    pass


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session
