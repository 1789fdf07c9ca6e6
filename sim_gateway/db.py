"""
In-memory SQLite store with whole-image snapshots to disk.

All sessions go through one asyncio lock, so request handlers and background
loops share a single access discipline. After any session that modified rows
the full database image is written to ``path``; a periodic snapshot is the
safety net. A crash between a commit and its snapshot loses that batch: the
file on disk only ever holds the last completed snapshot.
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Mapping

import aiosqlite
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from sim_gateway.constants import KNOWN_CHANNELS
from sim_gateway.errors import StorageError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class Store:
    def __init__(self, path: str | os.PathLike | None):
        self.path = Path(path) if path else None
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None
        self._raw: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()
        self._saved_changes = 0

    async def open(self) -> "Store":
        # Import registers the tables on Base.metadata.
        from sim_gateway import models

        self._engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        self._sessionmaker = async_sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)

        async with self._engine.connect() as conn:
            raw = await conn.get_raw_connection()
            self._raw = raw.driver_connection

        if self.path and self.path.exists():
            async with aiosqlite.connect(self.path, check_same_thread=False) as src:
                await src.backup(self._raw)
            logger.info("Loaded database image from %s", self.path)

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        async with self.session() as session:
            existing = set((await session.execute(select(models.PushConfig.channel))).scalars())
            for channel in KNOWN_CHANNELS:
                if channel not in existing:
                    session.add(models.PushConfig(channel=channel))
                    logger.info("Initialized push channel %s", channel)
            await session.commit()

        await self.snapshot()
        return self

    async def close(self) -> None:
        if self._engine is None:
            return
        await self.snapshot()
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        self._raw = None

    async def __aenter__(self) -> "Store":
        return await self.open()

    async def __aexit__(self, *exc) -> None:
        await self.close()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Exclusive session; snapshots the image afterwards if rows changed."""
        if self._sessionmaker is None:
            raise StorageError("store is not open")
        async with self._lock:
            try:
                async with self._sessionmaker() as session:
                    try:
                        yield session
                    except (SQLAlchemyError, OverflowError) as e:
                        await session.rollback()
                        raise StorageError(str(e)) from e
            finally:
                await self._snapshot_if_changed()

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Run one parameterized mutating statement; returns the affected row count."""
        async with self.session() as session:
            result = await session.execute(text(sql), params or {})
            await session.commit()
            return result.rowcount

    async def query(self, sql: str, params: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run one parameterized SELECT; returns rows as dicts."""
        async with self.session() as session:
            result = await session.execute(text(sql), params or {})
            return [dict(row) for row in result.mappings()]

    async def _total_changes(self) -> int:
        cursor = await self._raw.execute("SELECT total_changes()")
        row = await cursor.fetchone()
        await cursor.close()
        return row[0]

    async def _snapshot_if_changed(self) -> None:
        if self.path is None:
            return
        if await self._total_changes() != self._saved_changes:
            await self._write_snapshot()

    async def _write_snapshot(self) -> None:
        changes = await self._total_changes()
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(tmp, check_same_thread=False) as dst:
                await self._raw.backup(dst)
            os.replace(tmp, self.path)
        except (OSError, aiosqlite.Error) as e:
            logger.error("Saving database image to %s failed: %s", self.path, e)
            return
        self._saved_changes = changes

    async def snapshot(self) -> None:
        """Write the full image to disk now."""
        if self.path is None or self._raw is None:
            return
        async with self._lock:
            await self._write_snapshot()

    async def run_snapshots(self, interval: float, before_save=None) -> None:
        """Snapshot every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            try:
                if before_save is not None:
                    await before_save()
                await self.snapshot()
            except StorageError:
                logger.exception("Periodic snapshot failed")
