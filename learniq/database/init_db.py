"""
Database initialization.

This module provides functions for:
1. Creating the engine and verifying connectivity
2. Creating the schema (directly, or through Alembic migrations)
3. Seeding the achievement catalog
4. Closing the engine on shutdown
"""

import os
from typing import Optional

from sqlalchemy import text
from alembic.config import Config
from alembic import command

from learniq.config import settings
from learniq.common.db.session import init_engine, get_engine, get_session_factory, dispose_engine
from learniq.common.logger import app_logger
from learniq.database.base import Base
from learniq.database import models  # noqa: F401  registers tables on Base.metadata

logger = app_logger.getChild("database.init_db")

ALEMBIC_INI = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "alembic.ini")


async def create_schema() -> None:
    """Create all tables that do not exist yet."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema created")


def run_migrations(database_url: Optional[str] = None, revision: str = "head") -> None:
    """Upgrade the schema with Alembic (synchronous; run outside the event loop)."""
    config = Config(ALEMBIC_INI)
    config.set_main_option("sqlalchemy.url", database_url or settings.DATABASE_URL)
    command.upgrade(config, revision)
    logger.info(f"Database migrated to {revision}")


async def initialize_database(
    database_url: Optional[str] = None,
    create_tables: bool = False,
    seed_catalog: bool = True
) -> bool:
    """
    Initialize the engine, optionally create tables, and seed reference data.

    Returns:
        True on success, False if the database could not be reached.
    """
    try:
        init_engine(database_url)

        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))

        if create_tables:
            await create_schema()

        if seed_catalog:
            from learniq.gamification.catalog import seed_achievements

            async with get_session_factory()() as session:
                async with session.begin():
                    added = await seed_achievements(session)
            logger.info(f"Achievement catalog seeded ({added} new entries)")

        logger.info("Database initialized successfully")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}", exc_info=True)
        return False


async def close_database() -> None:
    """Close the database engine and all connections."""
    await dispose_engine()
