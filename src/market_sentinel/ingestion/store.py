"""Storage backend: Protocol definition, SQLite implementation, factory."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from market_sentinel.core.config import StorageConfig
from market_sentinel.core.exceptions import PersistenceError, StorageError
from market_sentinel.core.models import (
    PriceObservation,
    StorageBackend as StorageBackendEnum,
)

logger = logging.getLogger(__name__)


def _to_db_time(ts: datetime) -> str:
    """Fixed-width UTC ISO string so lexical order matches time order."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


@runtime_checkable
class ObservationStore(Protocol):
    """Abstract storage interface for price observations.

    Writes are inserts only. Reads return rows newest first.
    """

    async def save_observations(self, observations: list[PriceObservation]) -> int: ...
    async def query_observations(
        self,
        item: str | None = None,
        location: str | None = None,
        source: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[PriceObservation]: ...
    async def get_statistics(self) -> dict[str, int]: ...
    async def initialize(self) -> None: ...
    async def close(self) -> None: ...
    async def health_check(self) -> bool: ...


class SqliteStore:
    """SQLite implementation of the observation store.

    Uses aiosqlite for async access, WAL mode for concurrent reads,
    and a version-tracked migration system.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS market_data (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    item TEXT NOT NULL,
                    price REAL NOT NULL CHECK (price > 0),
                    currency TEXT NOT NULL,
                    source TEXT NOT NULL,
                    location TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )""",
                "CREATE INDEX IF NOT EXISTS idx_market_updated_at ON market_data(updated_at)",
                "CREATE INDEX IF NOT EXISTS idx_market_source ON market_data(source)",
            ],
        ),
    }

    def __init__(self, config: StorageConfig) -> None:
        self._path = config.sqlite_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._db.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._db.execute(sql)
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Observation Operations ---

    async def save_observations(self, observations: list[PriceObservation]) -> int:
        """Insert a batch of observations in one transaction.

        Returns the number of rows written.

        Raises:
            PersistenceError: the batch could not be written. Nothing from
                the batch is committed.
        """
        if not observations:
            return 0
        try:
            await self._db.executemany(
                """INSERT INTO market_data
                   (item, price, currency, source, location, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (
                        obs.item,
                        obs.price,
                        obs.currency,
                        obs.source,
                        obs.location,
                        _to_db_time(obs.observed_at),
                    )
                    for obs in observations
                ],
            )
            await self._db.commit()
            logger.info("Inserted %d market data records", len(observations))
            return len(observations)
        except Exception as e:
            if self._db is not None:
                try:
                    await self._db.rollback()
                except Exception:
                    logger.debug("Rollback after failed insert also failed", exc_info=True)
            raise PersistenceError(
                f"Failed to save observations: {e}",
                context={
                    "operation": "insert",
                    "table": "market_data",
                    "count": len(observations),
                },
            ) from e

    async def query_observations(
        self,
        item: str | None = None,
        location: str | None = None,
        source: str | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[PriceObservation]:
        """Filtered read, newest first.

        `item` and `location` match case-insensitive substrings, `source`
        matches exactly, `since` keeps rows observed at or after it.
        """
        try:
            query = "SELECT * FROM market_data WHERE 1=1"
            params: list = []
            if item is not None:
                query += " AND instr(LOWER(item), LOWER(?)) > 0"
                params.append(item)
            if location is not None:
                query += " AND instr(LOWER(location), LOWER(?)) > 0"
                params.append(location)
            if source is not None:
                query += " AND source = ?"
                params.append(source)
            if since is not None:
                query += " AND updated_at >= ?"
                params.append(_to_db_time(since))
            query += " ORDER BY updated_at DESC, id DESC"
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)
            async with self._db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_observation(r) for r in rows]
        except Exception as e:
            raise StorageError(
                f"Failed to query observations: {e}",
                context={"operation": "query", "table": "market_data"},
            ) from e

    async def get_statistics(self) -> dict[str, int]:
        try:
            async with self._db.execute(
                "SELECT COUNT(*), COUNT(DISTINCT item), COUNT(DISTINCT source) FROM market_data"
            ) as cursor:
                row = await cursor.fetchone()
            return {
                "total_records": row[0],
                "unique_items": row[1],
                "sources": row[2],
            }
        except Exception as e:
            raise StorageError(
                f"Failed to get statistics: {e}",
                context={"operation": "query", "table": "market_data"},
            ) from e

    # --- Row Mapping Helpers ---

    @staticmethod
    def _row_to_observation(row: aiosqlite.Row) -> PriceObservation:
        return PriceObservation(
            id=row["id"],
            item=row["item"],
            price=row["price"],
            currency=row["currency"],
            source=row["source"],
            location=row["location"],
            observed_at=datetime.fromisoformat(row["updated_at"]),
        )


async def create_store(config: StorageConfig) -> SqliteStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackendEnum.SQLITE:
        store = SqliteStore(config)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
