import asyncio
import logging
import pathlib

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from lifelink.config import Settings, settings

logger = logging.getLogger(__name__)

ROOT_PATH = pathlib.Path(__file__).resolve().parent.parent


def make_engine(cfg: Settings | None = None) -> AsyncEngine:
    cfg = cfg or settings
    return create_async_engine(cfg.database_url)


def sync_url(url: str) -> str:
    """Strip the async driver from *url* so Alembic can use it synchronously."""
    return url.replace("+aiosqlite", "").replace("+asyncpg", "+psycopg2")


def make_sync_engine(url: str) -> Engine:
    return create_engine(sync_url(url))


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create tables that don't exist yet."""
    # Ensure all models are imported so SQLModel metadata includes them
    import lifelink.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def run_migrations(cfg: Settings | None = None) -> bool:
    """Upgrade the database to the latest Alembic revision.

    Returns False when no ``alembic.ini`` sits next to the package, in which
    case the caller is expected to fall back to :func:`init_db`.
    """
    from alembic import command
    from alembic.config import Config as AlembicConfig

    cfg = cfg or settings
    alembic_ini = ROOT_PATH / "alembic.ini"
    if not alembic_ini.exists():
        return False

    alembic_cfg = AlembicConfig(str(alembic_ini))
    alembic_cfg.set_main_option("script_location", str(ROOT_PATH / "alembic"))
    # Alembic works synchronously, so it gets the plain driver
    alembic_cfg.set_main_option("sqlalchemy.url", sync_url(cfg.database_url))
    # Logging is already configured by the application
    alembic_cfg.attributes["configure_logger"] = False

    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, command.upgrade, alembic_cfg, "head")
    logger.info("Database migrated to head")
    return True
