"""SQLAlchemy implementation of the recording inventory and settings store."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, cast

from sqlalchemy import (
    BigInteger,
    Index,
    Integer,
    Table,
    Text,
    delete,
    func,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from homenvr.db import DialectHelper, UTCDateTime, create_async_engine_for_dsn
from homenvr.interfaces import InventoryStore, SettingsStore
from homenvr.models.enums import RecordingStatus
from homenvr.models.recording import Recording
from homenvr.models.settings import Settings, SettingsUpdate

logger = logging.getLogger(__name__)

SYSTEM_SETTINGS_ID = "system"

# BIGINT does not autoincrement on SQLite; only INTEGER PRIMARY KEY does.
_RecordingId = BigInteger().with_variant(Integer(), "sqlite")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class RecordingRow(Base):
    """One row per segment file, keyed uniquely by absolute path."""

    __tablename__ = "recordings"

    id: Mapped[int] = mapped_column(_RecordingId, primary_key=True, autoincrement=True)
    camera_id: Mapped[str] = mapped_column(Text, nullable=False)
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=RecordingStatus.COMPLETE.value
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (
        Index("idx_recordings_camera_start", "camera_id", "start_time"),
        Index("idx_recordings_start", "start_time"),
    )


class SettingsRow(Base):
    """Singleton settings row (id = "system")."""

    __tablename__ = "settings"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    clean_threshold_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    target_threshold_percent: Mapped[int] = mapped_column(Integer, nullable=False)
    node_name: Mapped[str] = mapped_column(Text, nullable=False)
    storage_cap_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow
    )


def _recording_from_row(row: Any) -> Recording:
    return Recording(
        id=row.id,
        camera_id=row.camera_id,
        filename=row.filename,
        path=row.path,
        start_time=row.start_time,
        end_time=row.end_time,
        size=row.size,
        status=RecordingStatus(row.status),
    )


class SQLAlchemyInventoryStore(InventoryStore):
    """Inventory backed by PostgreSQL or SQLite.

    Unlike read paths used for health reporting, every query here raises on
    database errors so the repository can retry and callers can isolate the
    failure to one file or camera.
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn
        self._dialect = DialectHelper.from_dsn(dsn)
        self._engine: AsyncEngine | None = None

    @property
    def dialect(self) -> DialectHelper:
        return self._dialect

    @property
    def engine(self) -> AsyncEngine | None:
        return self._engine

    async def initialize(self, *, create_schema: bool = False) -> bool:
        """Open the connection pool and verify connectivity.

        Tables are normally created by alembic migrations. `create_schema`
        creates them directly, which is what single-box SQLite deployments
        and tests use.

        Returns:
            True if initialization succeeded, False otherwise
        """
        try:
            self._engine = create_async_engine_for_dsn(self._dsn)
            async with self._engine.begin() as conn:
                if create_schema:
                    await conn.run_sync(Base.metadata.create_all)
                await conn.execute(select(1))
            logger.info("Inventory store initialized (%s)", self._dialect.dialect_name)
            return True
        except Exception as e:
            logger.error("Failed to initialize inventory store: %s", e, exc_info=True)
            if self._engine is not None:
                await self._engine.dispose()
            self._engine = None
            return False

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Inventory store not initialized")
        return self._engine

    def settings_store(self, defaults: Settings) -> SQLAlchemySettingsStore:
        """Settings store sharing this store's engine."""
        return SQLAlchemySettingsStore(self, defaults)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_recording(self, recording_id: int) -> Recording | None:
        return await self._fetch_one(select(RecordingRow).where(RecordingRow.id == recording_id))

    async def get_by_path(self, path: str) -> Recording | None:
        return await self._fetch_one(select(RecordingRow).where(RecordingRow.path == path))

    async def records_by_path(self, camera_id: str) -> dict[str, Recording]:
        query = select(RecordingRow).where(RecordingRow.camera_id == camera_id)
        return {record.path: record for record in await self._fetch_all(query)}

    async def oldest_recording(self, exclude_paths: Iterable[str] = ()) -> Recording | None:
        excluded = list(exclude_paths)
        query = select(RecordingRow)
        if excluded:
            query = query.where(RecordingRow.path.not_in(excluded))
        query = query.order_by(RecordingRow.start_time.asc(), RecordingRow.id.asc()).limit(1)
        return await self._fetch_one(query)

    async def latest_recording(self, camera_id: str) -> Recording | None:
        query = (
            select(RecordingRow)
            .where(RecordingRow.camera_id == camera_id)
            .order_by(RecordingRow.start_time.desc(), RecordingRow.id.desc())
            .limit(1)
        )
        return await self._fetch_one(query)

    async def list_overlapping(
        self, camera_id: str, start: datetime, end: datetime
    ) -> list[Recording]:
        query = (
            select(RecordingRow)
            .where(
                RecordingRow.camera_id == camera_id,
                RecordingRow.start_time <= end,
                RecordingRow.end_time >= start,
            )
            .order_by(RecordingRow.start_time.asc(), RecordingRow.id.asc())
        )
        return await self._fetch_all(query)

    async def list_recordings(
        self,
        *,
        camera_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        newest_first: bool = True,
    ) -> list[Recording]:
        query = select(RecordingRow)
        if camera_id is not None:
            query = query.where(RecordingRow.camera_id == camera_id)
        if since is not None:
            query = query.where(RecordingRow.start_time >= since)
        if until is not None:
            query = query.where(RecordingRow.start_time < until)
        if newest_first:
            query = query.order_by(RecordingRow.start_time.desc(), RecordingRow.id.desc())
        else:
            query = query.order_by(RecordingRow.start_time.asc(), RecordingRow.id.asc())
        return await self._fetch_all(query)

    async def list_start_times(self) -> list[datetime]:
        engine = self._require_engine()
        query = select(RecordingRow.start_time).order_by(RecordingRow.start_time.desc())
        async with engine.connect() as conn:
            result = await conn.execute(query)
            return list(result.scalars().all())

    async def total_size(self) -> int:
        engine = self._require_engine()
        async with engine.connect() as conn:
            result = await conn.execute(select(func.coalesce(func.sum(RecordingRow.size), 0)))
            return int(result.scalar() or 0)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert_recording(self, recording: Recording) -> bool:
        engine = self._require_engine()
        table = cast(Table, RecordingRow.__table__)
        now = _utcnow()
        stmt = self._dialect.insert(table).values(
            camera_id=recording.camera_id,
            filename=recording.filename,
            path=recording.path,
            start_time=recording.start_time,
            end_time=recording.end_time,
            size=recording.size,
            status=recording.status.value,
            created_at=now,
            updated_at=now,
        )
        stmt = self._dialect.on_conflict_do_nothing(stmt, ["path"])
        async with engine.begin() as conn:
            result = await conn.execute(stmt)
        return bool(result.rowcount)

    async def update_progress(self, recording_id: int, size: int, end_time: datetime) -> None:
        engine = self._require_engine()
        stmt = (
            update(RecordingRow)
            .where(RecordingRow.id == recording_id)
            .values(size=size, end_time=end_time, updated_at=_utcnow())
        )
        async with engine.begin() as conn:
            await conn.execute(stmt)

    async def delete_recording(self, recording_id: int) -> bool:
        engine = self._require_engine()
        async with engine.begin() as conn:
            result = await conn.execute(delete(RecordingRow).where(RecordingRow.id == recording_id))
        return bool(result.rowcount)

    async def delete_all(self) -> int:
        engine = self._require_engine()
        async with engine.begin() as conn:
            result = await conn.execute(delete(RecordingRow))
        return int(result.rowcount or 0)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def ping(self) -> bool:
        """Health check. Returns True if the database is reachable."""
        if self._engine is None:
            return False
        try:
            async with self._engine.connect() as conn:
                await conn.execute(select(1))
            return True
        except Exception as e:
            logger.warning("Database ping failed: %s", e, exc_info=True)
            return False

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
        logger.info("Inventory store closed")

    async def _fetch_one(self, query: Any) -> Recording | None:
        engine = self._require_engine()
        async with engine.connect() as conn:
            result = await conn.execute(query)
            row = result.one_or_none()
        return _recording_from_row(row) if row is not None else None

    async def _fetch_all(self, query: Any) -> list[Recording]:
        engine = self._require_engine()
        async with engine.connect() as conn:
            result = await conn.execute(query)
            rows = result.all()
        return [_recording_from_row(row) for row in rows]


class SQLAlchemySettingsStore(SettingsStore):
    """Settings persisted in the singleton "system" row."""

    def __init__(self, inventory: SQLAlchemyInventoryStore, defaults: Settings) -> None:
        self._inventory = inventory
        self._defaults = defaults

    async def get_settings(self) -> Settings:
        engine = self._inventory._require_engine()
        async with engine.connect() as conn:
            result = await conn.execute(
                select(SettingsRow).where(SettingsRow.id == SYSTEM_SETTINGS_ID)
            )
            row = result.one_or_none()
        if row is None:
            await self._write(self._defaults, only_if_missing=True)
            logger.info("Seeded default settings: %s", self._defaults.model_dump())
            return await self.get_settings()
        return Settings(
            clean_threshold_percent=row.clean_threshold_percent,
            target_threshold_percent=row.target_threshold_percent,
            node_name=row.node_name,
            storage_cap_bytes=row.storage_cap_bytes,
        )

    async def update_settings(self, update: SettingsUpdate) -> Settings:
        current = await self.get_settings()
        merged = update.apply(current)
        await self._write(merged, only_if_missing=False)
        logger.info("Settings updated: %s", update.model_dump(exclude_none=True))
        return merged

    async def _write(self, settings: Settings, *, only_if_missing: bool) -> None:
        engine = self._inventory._require_engine()
        dialect = self._inventory.dialect
        table = cast(Table, SettingsRow.__table__)
        values = {**settings.model_dump(), "updated_at": _utcnow()}
        stmt = dialect.insert(table).values(id=SYSTEM_SETTINGS_ID, **values)
        if only_if_missing:
            stmt = dialect.on_conflict_do_nothing(stmt, ["id"])
        else:
            stmt = dialect.on_conflict_do_update(stmt, ["id"], values)
        async with engine.begin() as conn:
            await conn.execute(stmt)
