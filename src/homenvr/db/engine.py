"""Async engine factory."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from homenvr.db.dialect import DialectHelper


def create_async_engine_for_dsn(dsn: str, **extra_kwargs: object) -> AsyncEngine:
    """Create an async engine for a PostgreSQL or SQLite DSN.

    The DSN is normalized to its async driver and dialect defaults are applied;
    `extra_kwargs` override those defaults.

    Raises:
        ValueError: If the DSN dialect is not supported.
    """
    dialect = DialectHelper.from_dsn(dsn)
    normalized_dsn = dialect.normalize_dsn(dsn)
    engine_kwargs = dialect.get_engine_kwargs(normalized_dsn)
    engine_kwargs.update(extra_kwargs)
    return create_async_engine(normalized_dsn, **engine_kwargs)
