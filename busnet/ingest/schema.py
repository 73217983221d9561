"""
Database Schema Module

Re-exports the network models and provides atomic database initialization
for the batch importer (Alembic migrations under alembic/ manage long-lived
PostgreSQL databases).
"""

import logging

from busnet.data.db_broker import Base
from busnet.data.models import Stop, Route, RouteStop

logger = logging.getLogger(__name__)


def initialize_database(engine, drop_existing=False):
    """
    Initialize database schema atomically.

    Args:
        engine: SQLAlchemy engine instance
        drop_existing: If True, drops all existing tables before creation
    """
    if drop_existing:
        logger.warning("Dropping all existing tables...")
        Base.metadata.drop_all(bind=engine)
        logger.info("Tables dropped")

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database schema initialized ({', '.join(sorted(Base.metadata.tables))})")


__all__ = ['Base', 'Stop', 'Route', 'RouteStop', 'initialize_database']
