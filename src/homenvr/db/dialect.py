"""Dialect-specific database operations.

The inventory runs on PostgreSQL for multi-node deployments and on SQLite for
single-box recorders. Every place where the two differ goes through
DialectHelper so the store itself never branches on the dialect name.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from sqlalchemy import Table
    from sqlalchemy.dialects.postgresql import Insert as PgInsert
    from sqlalchemy.dialects.sqlite import Insert as SqliteInsert

logger = logging.getLogger(__name__)

SUPPORTED_DIALECTS = ("postgresql", "sqlite")

# SQLSTATE classes worth retrying: connection loss, deadlock,
# serialization failure, server restarting.
_RETRYABLE_PG_SQLSTATES = frozenset(
    {
        "08000",
        "08001",
        "08003",
        "08004",
        "08006",
        "08007",
        "40001",
        "40P01",
        "53300",
        "57P01",
        "57P02",
        "57P03",
    }
)

_RETRYABLE_SQLITE_MESSAGES = ("database is locked", "database is busy")


class DialectHelper:
    """Single home for PostgreSQL vs SQLite differences.

    Build one with `from_engine`, `from_dsn`, or directly from a dialect name.
    """

    def __init__(self, dialect_name: str) -> None:
        if dialect_name not in SUPPORTED_DIALECTS:
            raise ValueError(f"Unsupported dialect: {dialect_name}")
        self._dialect_name = dialect_name

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> DialectHelper:
        return cls(engine.dialect.name)

    @classmethod
    def from_dsn(cls, dsn: str) -> DialectHelper:
        return cls(detect_dialect_from_dsn(dsn))

    @property
    def dialect_name(self) -> str:
        return self._dialect_name

    @property
    def is_postgres(self) -> bool:
        return self._dialect_name == "postgresql"

    @property
    def is_sqlite(self) -> bool:
        return self._dialect_name == "sqlite"

    # -------------------------------------------------------------------------
    # Upserts
    # -------------------------------------------------------------------------

    def insert(self, table: Table) -> PgInsert | SqliteInsert:
        """Dialect-specific INSERT supporting ON CONFLICT clauses."""
        if self.is_postgres:
            return postgresql.insert(table)
        return sqlite.insert(table)

    def on_conflict_do_nothing(
        self,
        stmt: PgInsert | SqliteInsert,
        index_elements: list[str],
    ) -> PgInsert | SqliteInsert:
        return stmt.on_conflict_do_nothing(index_elements=index_elements)

    def on_conflict_do_update(
        self,
        stmt: PgInsert | SqliteInsert,
        index_elements: list[str],
        set_: dict[str, Any],
    ) -> PgInsert | SqliteInsert:
        return stmt.on_conflict_do_update(index_elements=index_elements, set_=set_)

    # -------------------------------------------------------------------------
    # Error classification
    # -------------------------------------------------------------------------

    def is_retryable_error(self, exc: Exception) -> bool:
        """Return True if `exc` looks transient (lost connection, lock, deadlock)."""
        if isinstance(exc, OperationalError):
            return True
        if isinstance(exc, DBAPIError) and exc.connection_invalidated:
            return True
        if self.is_postgres:
            return _extract_sqlstate(exc) in _RETRYABLE_PG_SQLSTATES

        current: BaseException | None = exc
        while current is not None:
            message = str(current).lower()
            if any(fragment in message for fragment in _RETRYABLE_SQLITE_MESSAGES):
                return True
            current = current.__cause__
        return False

    # -------------------------------------------------------------------------
    # Engine configuration
    # -------------------------------------------------------------------------

    def get_engine_kwargs(self, dsn: str | None = None) -> dict[str, Any]:
        """Engine kwargs for this dialect.

        In-memory SQLite needs one shared connection, otherwise every pooled
        connection would see its own empty database.
        """
        if self.is_postgres:
            return {"pool_size": 5, "max_overflow": 0, "pool_pre_ping": True}
        engine_kwargs: dict[str, Any] = {"pool_pre_ping": True}
        if dsn is not None and ":memory:" in dsn:
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        return engine_kwargs

    @staticmethod
    def normalize_dsn(dsn: str) -> str:
        """Force the async driver (asyncpg / aiosqlite) into the DSN."""
        for prefix, replacement, driver in (
            ("postgresql://", "postgresql+asyncpg://", "+asyncpg"),
            ("postgres://", "postgresql+asyncpg://", "+asyncpg"),
            ("sqlite://", "sqlite+aiosqlite://", "+aiosqlite"),
        ):
            if dsn.startswith(prefix) and driver not in dsn:
                return dsn.replace(prefix, replacement, 1)
        return dsn


def detect_dialect_from_dsn(dsn: str) -> str:
    """Return "postgresql" or "sqlite" for `dsn`.

    Raises:
        ValueError: If the DSN names neither.
    """
    dsn_lower = dsn.lower()
    if dsn_lower.startswith(("postgresql://", "postgres://", "postgresql+asyncpg://")):
        return "postgresql"
    if dsn_lower.startswith(("sqlite://", "sqlite+aiosqlite://")):
        return "sqlite"
    raise ValueError(f"Cannot detect dialect from DSN: {dsn}")


def _extract_sqlstate(exc: BaseException) -> str | None:
    for candidate in (exc, getattr(exc, "orig", None), exc.__cause__):
        if candidate is None:
            continue
        sqlstate = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if sqlstate:
            return str(sqlstate)
    return None
