"""RecordStore — aiosqlite-backed keyed record persistence.

Every entity the app persists (routines, inventory rows, check-ins, chat
messages, ...) is a JSON record in a named collection.  Callers use plain
keyed CRUD calls; there is no entity-specific wire format.  Filters and
ordering run in SQLite via ``json_extract``.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiosqlite

from skinlog.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS records (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (collection, id)
)
"""

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def make_record_id() -> str:
    """Generate a new record ID."""
    return uuid.uuid4().hex


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _json_path(field_name: str) -> str:
    if not _FIELD_RE.match(field_name):
        msg = f"Invalid field name: {field_name!r}"
        raise ValueError(msg)
    return f"'$.{field_name}'"


def _where_clause(where: dict[str, Any] | None) -> tuple[str, list[Any]]:
    """Build an AND-ed equality clause over JSON fields."""
    if not where:
        return "", []
    parts: list[str] = []
    params: list[Any] = []
    for key, value in where.items():
        path = _json_path(key)
        if value is None:
            parts.append(f"json_extract(data, {path}) IS NULL")
        else:
            parts.append(f"json_extract(data, {path}) = ?")
            params.append(int(value) if isinstance(value, bool) else value)
    return " AND " + " AND ".join(parts), params


class RecordStore:
    """Persists JSON records in SQLite, one row per record.

    Singleton accessed via ``RecordStore.get()``.  Pass an explicit *db_path*
    for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    _instance: RecordStore | None = None

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    @classmethod
    def get(cls) -> RecordStore:
        """Return the shared RecordStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    @property
    def db_path(self) -> Path:
        return self._db_path

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True
        return db

    # -- CRUD ------------------------------------------------------------------

    async def insert(self, collection: str, record: dict[str, Any]) -> dict[str, Any]:
        """Insert a record, assigning ``id`` and ``created_at`` when missing."""
        data = dict(record)
        data.setdefault("id", make_record_id())
        data.setdefault("created_at", _now())
        db = await self._connect()
        try:
            await db.execute(
                "INSERT INTO records (collection, id, data, created_at) VALUES (?, ?, ?, ?)",
                (collection, data["id"], json.dumps(data), data["created_at"]),
            )
            await db.commit()
            logger.debug("Inserted %s/%s", collection, data["id"])
            return data
        finally:
            await db.close()

    async def insert_many(
        self, collection: str, records: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Insert several records in one transaction."""
        rows: list[dict[str, Any]] = []
        for record in records:
            data = dict(record)
            data.setdefault("id", make_record_id())
            data.setdefault("created_at", _now())
            rows.append(data)
        if not rows:
            return rows
        db = await self._connect()
        try:
            await db.executemany(
                "INSERT INTO records (collection, id, data, created_at) VALUES (?, ?, ?, ?)",
                [(collection, r["id"], json.dumps(r), r["created_at"]) for r in rows],
            )
            await db.commit()
            logger.debug("Inserted %d record(s) into %s", len(rows), collection)
            return rows
        finally:
            await db.close()

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any] | None:
        """Fetch a record by ID, or None if not found."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT data FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            row = await cursor.fetchone()
            return json.loads(row[0]) if row else None
        finally:
            await db.close()

    async def select(
        self,
        collection: str,
        *,
        where: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return records matching every equality in *where*."""
        clause, params = _where_clause(where)
        direction = "DESC" if descending else "ASC"
        if order_by:
            order = f"json_extract(data, {_json_path(order_by)}) {direction}, rowid {direction}"
        else:
            order = f"rowid {direction}"
        sql = f"SELECT data FROM records WHERE collection = ?{clause} ORDER BY {order}"  # noqa: S608
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        db = await self._connect()
        try:
            cursor = await db.execute(sql, (collection, *params))
            rows = await cursor.fetchall()
            return [json.loads(row[0]) for row in rows]
        finally:
            await db.close()

    async def select_one(
        self, collection: str, *, where: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Return the first record matching *where*, or None."""
        rows = await self.select(collection, where=where, limit=1)
        return rows[0] if rows else None

    async def update(
        self, collection: str, record_id: str, changes: dict[str, Any]
    ) -> dict[str, Any] | None:
        """Merge *changes* into a record. Returns the new record or None."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT data FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            data = {**json.loads(row[0]), **changes, "id": record_id, "updated_at": _now()}
            await db.execute(
                "UPDATE records SET data = ? WHERE collection = ? AND id = ?",
                (json.dumps(data), collection, record_id),
            )
            await db.commit()
            return data
        finally:
            await db.close()

    async def update_where(
        self, collection: str, where: dict[str, Any], changes: dict[str, Any]
    ) -> int:
        """Merge *changes* into every record matching *where*. Returns the count."""
        rows = await self.select(collection, where=where)
        for row in rows:
            await self.update(collection, row["id"], changes)
        return len(rows)

    async def upsert(
        self,
        collection: str,
        record: dict[str, Any],
        *,
        on_conflict: tuple[str, ...],
    ) -> dict[str, Any]:
        """Update the record sharing the *on_conflict* key values, else insert."""
        key = {name: record.get(name) for name in on_conflict}
        existing = await self.select_one(collection, where=key)
        if existing is not None:
            updated = await self.update(collection, existing["id"], record)
            if updated is not None:
                return updated
        return await self.insert(collection, record)

    async def delete(self, collection: str, record_id: str) -> bool:
        """Delete a record. Returns True if a row was removed."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            )
            await db.commit()
            deleted = cursor.rowcount > 0
            if deleted:
                logger.debug("Deleted %s/%s", collection, record_id)
            return deleted
        finally:
            await db.close()
