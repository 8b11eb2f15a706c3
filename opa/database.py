from collections.abc import AsyncGenerator

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError

from opa.config import settings
from opa.exceptions import SettlementError

logger = structlog.get_logger()


def engine_options(database_url: str, production: bool) -> dict:
    """Keyword arguments for ``create_async_engine``.

    Pool sizing and SSL only apply to PostgreSQL; SQLite (local runs and
    tests) rejects both.
    """
    options: dict = {"echo": settings.APP_DEBUG, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=3600,
        pool_timeout=30,
    )
    if production:
        options["connect_args"] = {"ssl": "require"}
    return options


engine = create_async_engine(
    settings.DATABASE_URL, **engine_options(settings.DATABASE_URL, settings.is_production)
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session: commits when the handler returns, rolls back on any error."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except SettlementError as exc:
            # Refused by a business rule: nothing to report beyond the response.
            await session.rollback()
            logger.info("db_session_rolled_back", code=exc.code)
            raise
        except (StaleDataError, DBAPIError) as exc:
            # A settlement write lost a race or the database refused it.
            await session.rollback()
            logger.warning("db_session_rolled_back", error_type=type(exc).__name__)
            raise
        except Exception:
            await session.rollback()
            logger.exception("db_session_failed")
            raise
