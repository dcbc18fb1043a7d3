# src/medichat/db/database.py
from typing import AsyncGenerator
from sqlalchemy import text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from medichat.core.config import settings
from medichat.utils.exceptions import ServiceError, ErrorCode
from medichat.utils.logger import setup_logger

logger = setup_logger("DATABASE")


def _engine_options(database_url: str) -> dict:
    options = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if "postgresql" in database_url:
        options.update(
            pool_size=20,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=3600,
            connect_args={
                "server_settings": {
                    "jit": "off",
                    "application_name": "medichat",
                },
            },
        )
    return options


# Create SQLAlchemy engine with async support
engine = create_async_engine(
    settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL)
)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success, rolls back on any error"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except (OperationalError, ConnectionRefusedError) as exc:
            await session.rollback()
            logger.error(f"Database not available: {exc}")
            raise ServiceError(ErrorCode.DATABASE_NOT_AVAILABLE) from exc
        except Exception:
            await session.rollback()
            raise


def dialect_insert(db: AsyncSession, table):
    """
    Dialect-specific INSERT supporting ON CONFLICT upserts.

    PostgreSQL in production, SQLite in local/test mode; both expose
    `on_conflict_do_update` with the same signature.
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(table)
    if dialect_name == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Upsert is not supported for dialect {dialect_name}")


async def check_db_connection() -> bool:
    """Check database connection health"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False


async def create_tables():
    """Create all tables registered on Base"""
    import medichat.models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        raise


async def disconnect_db():
    """Disconnect from database"""
    await engine.dispose()
