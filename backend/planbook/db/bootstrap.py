from __future__ import annotations

import logging

from sqlalchemy import inspect

import planbook.models  # noqa: F401
from planbook.db.base import Base
from planbook.db.session import engine

logger = logging.getLogger(__name__)

REQUIRED_TABLES: frozenset[str] = frozenset(Base.metadata.tables.keys())


def missing_tables() -> list[str]:
    with engine.connect() as connection:
        existing = set(inspect(connection).get_table_names())
    return sorted(REQUIRED_TABLES - existing)


def ensure_schema(create_missing: bool = False) -> None:
    """Report tables the migrations have not created yet, optionally creating them."""
    missing = missing_tables()
    if not missing:
        return
    if not create_missing:
        logger.warning("DATABASE SCHEMA INCOMPLETE | missing_tables=%s | hint=alembic upgrade head", missing)
        return
    Base.metadata.create_all(bind=engine)
    logger.info("DATABASE SCHEMA CREATED | tables=%s", missing)
