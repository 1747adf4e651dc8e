"""
Database Connection and Model Base
Uses PostgreSQL through the `databases` package
"""

import logging

from databases import Database
from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

logger = logging.getLogger(__name__)

# Metadata for models
metadata = MetaData()

# Base class for models
Base = declarative_base(metadata=metadata)


def create_database(database_url: str) -> Database:
    """Build the async database handle; the caller owns connect/disconnect."""
    # Supabase's transaction pooler (pgbouncer) cannot use prepared statements
    if "supabase.com" in database_url or "pooler.supabase.com" in database_url:
        db_options = {"min_size": 1, "max_size": 5, "statement_cache_size": 0}
    else:
        db_options = {"min_size": 1, "max_size": 10}
    return Database(database_url, **db_options)


async def connect_db(database: Database) -> None:
    """Connect to database on startup"""
    await database.connect()
    logger.info("Database connected")


async def disconnect_db(database: Database) -> None:
    """Disconnect from database on shutdown"""
    await database.disconnect()
    logger.info("Database disconnected")
