"""
Utility script to create the database schema.

Creates the tables and the post_stats / user_stats views used by the API.
Statements are idempotent, so running it against an existing database is safe.
"""

import asyncio
import logging
from typing import Optional

import asyncpg

from photofeed.config_secrets import DATABASE_URL
from photofeed.core.db import create_schema


async def create_database_tables(connection_string: Optional[str] = None) -> None:
    """
    Create all database tables and views.

    Args:
        connection_string: Database connection string. If not provided,
            uses the DATABASE_URL from config_secrets.py.
    """
    conn_string = connection_string or DATABASE_URL

    logging.info("Connecting to database...")
    conn = await asyncpg.connect(conn_string)

    try:
        logging.info("Creating tables and views...")
        await create_schema(conn)
        logging.info("All tables created successfully")
    finally:
        await conn.close()
        logging.info("Database connection closed")


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(create_database_tables())
