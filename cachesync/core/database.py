"""
cachesync Database Configuration

Engine and session factory for the reference SQLAlchemy entity store,
built from ``DATABASE_URL`` unless a URL is given explicitly.
"""

from typing import Optional

import structlog
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .config import get_settings

logger = structlog.get_logger()


def create_session_factory(url: Optional[str] = None, echo: bool = False) -> sessionmaker:
    """
    Create a sessionmaker bound to a new engine.

    Args:
        url: SQLAlchemy URL; defaults to the DATABASE_URL setting
        echo: Log emitted SQL

    Returns:
        sessionmaker suitable for SqlAlchemyEntityStore

    Raises:
        SQLAlchemyError: If the URL cannot be turned into an engine
    """
    url = url or get_settings().DATABASE_URL

    try:
        engine = create_engine(url, pool_pre_ping=True, echo=echo)
    except (SQLAlchemyError, ValueError) as e:
        logger.error(
            "Failed to create database engine",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise

    logger.info(
        "Database engine created successfully",
        url=engine.url.render_as_string(hide_password=True),
        dialect=engine.dialect.name,
    )

    # Entities are copied out of rows, so rows must stay readable after commit
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
