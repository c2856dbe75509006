"""SQLite feature store.

One row per (feature, context key), enforced by a ``UNIQUE`` constraint, so
concurrent first writes cannot both land. Values are stored as JSON.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from flagcore.errors import StorageError, StoreConflictError
from flagcore.stores.base import GLOBAL_KEY, FeatureStore

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


class DatabaseFeatureStore(FeatureStore):
    """Feature values persisted in a SQLite ``features`` table."""

    name = "database"

    def __init__(self, path: str = "features.db"):
        """
        Initialize the SQLite store.

        Args:
            path: Database file, or ``:memory:`` for a private in-memory database
        """
        if path != MEMORY_PATH:
            db_path = Path(path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
            path = str(db_path)
        self.path = path
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._mutex = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._mutex:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS features (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    context_key TEXT NOT NULL,
                    value TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    UNIQUE(name, context_key)
                )
            """)
            self._conn.commit()

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        with self._mutex:
            try:
                cursor = self._conn.execute(sql, tuple(params))
                rows = cursor.fetchall()
                self._conn.commit()
                return rows
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            except sqlite3.Error as e:
                self._conn.rollback()
                raise StorageError(f"SQLite error: {e}") from e

    async def _run(self, sql: str, params: Sequence[Any] = ()) -> List[Tuple[Any, ...]]:
        return await asyncio.to_thread(self._execute, sql, params)

    async def get(self, feature: str, context_key: str) -> Tuple[bool, Any]:
        rows = await self._run(
            "SELECT value FROM features WHERE name = ? AND context_key = ?",
            (feature, context_key),
        )
        if not rows:
            return False, None
        return True, json.loads(rows[0][0])

    async def insert(self, feature: str, context_key: str, value: Any) -> None:
        now = time.time()
        try:
            await self._run(
                """
                INSERT INTO features (name, context_key, value, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (feature, context_key, json.dumps(value), now, now),
            )
        except sqlite3.IntegrityError as e:
            raise StoreConflictError(feature, context_key) from e

    async def set(self, feature: str, context_key: str, value: Any) -> None:
        now = time.time()
        await self._run(
            """
            INSERT INTO features (name, context_key, value, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(name, context_key)
            DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (feature, context_key, json.dumps(value), now, now),
        )

    async def set_for_all(self, feature: str, value: Any) -> None:
        await self._run(
            "UPDATE features SET value = ?, updated_at = ? WHERE name = ?",
            (json.dumps(value), time.time(), feature),
        )
        await self.set(feature, GLOBAL_KEY, value)

    async def delete(self, feature: str, context_key: str) -> None:
        await self._run(
            "DELETE FROM features WHERE name = ? AND context_key = ?",
            (feature, context_key),
        )

    async def purge(self, features: Optional[Sequence[str]] = None) -> None:
        if features is None:
            await self._run("DELETE FROM features")
            logger.info("Purged all stored feature values")
            return
        names = list(features)
        if not names:
            return
        placeholders = ", ".join("?" for _ in names)
        await self._run(f"DELETE FROM features WHERE name IN ({placeholders})", names)

    async def list_stored(self) -> List[str]:
        rows = await self._run("SELECT DISTINCT name FROM features ORDER BY name")
        return [row[0] for row in rows]

    async def context_keys(self, feature: str) -> List[str]:
        rows = await self._run(
            "SELECT context_key FROM features WHERE name = ? ORDER BY context_key",
            (feature,),
        )
        return [row[0] for row in rows]

    async def row_count(self, feature: Optional[str] = None) -> int:
        if feature is None:
            rows = await self._run("SELECT COUNT(*) FROM features")
        else:
            rows = await self._run("SELECT COUNT(*) FROM features WHERE name = ?", (feature,))
        return int(rows[0][0])

    def close(self) -> None:
        with self._mutex:
            self._conn.close()
