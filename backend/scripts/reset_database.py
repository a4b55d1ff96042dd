#!/usr/bin/env python3
"""
Script to completely reset the database - drops all tables and recreates them.

WARNING: This will delete ALL data in the database!
"""

import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Load environment variables from .env file if it exists
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env'))

from sqlalchemy import text
from crm.database import engine, Base
import crm.models  # noqa: F401  registers every table on Base.metadata
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def reset_database(assume_yes: bool = False):
    """Drop all tables and recreate them"""
    db_url = os.getenv("DATABASE_URL", "")

    logger.warning("=" * 60)
    logger.warning("WARNING: This will DELETE ALL DATA in the database!")
    logger.warning(f"Database URL: {db_url[:50]}..." if len(db_url) > 50 else f"Database URL: {db_url}")
    logger.warning("=" * 60)

    if not assume_yes:
        response = input("Are you sure you want to continue? (yes/no): ")
        if response.lower() != "yes":
            logger.info("Aborted.")
            return

    logger.info("Dropping all tables...")
    Base.metadata.drop_all(bind=engine)
    logger.info("All tables dropped.")

    logger.info("Creating all tables...")
    Base.metadata.create_all(bind=engine)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")

    with engine.connect() as conn:
        conn.execute(text("DROP TABLE IF EXISTS alembic_version"))
        conn.commit()
    logger.info("Alembic version table reset.")

    logger.info("=" * 60)
    logger.info("Database reset complete!")
    logger.info("Run: alembic stamp head")
    logger.info("to mark the initial migration as applied.")
    logger.info("=" * 60)


if __name__ == "__main__":
    reset_database(assume_yes="--yes" in sys.argv)
