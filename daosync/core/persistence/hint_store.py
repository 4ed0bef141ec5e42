"""
Durable storage for the reconnect hint.

Only two string entries ever live here: whether the last session ended
connected, and the address it was connected as. They are read once at
startup, written on connect and removed on disconnect or a failed restore.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from ...datastructures.type_aliases import HintName, HintValue

WAS_CONNECTED = "was_connected"
LAST_ADDRESS = "last_address"


class HintStore(Protocol):
    """String key/value storage that survives restarts."""

    async def get(self, name: HintName) -> HintValue | None: ...

    async def put(self, name: HintName, value: HintValue) -> None: ...

    async def delete(self, name: HintName) -> None: ...

    async def close(self) -> None: ...


@dataclass(slots=True)
class MemoryHintStore:
    """In-memory hint store for tests and ephemeral sessions."""

    _entries: dict[HintName, HintValue] = field(default_factory=dict)

    async def get(self, name: HintName) -> HintValue | None:
        return self._entries.get(name)

    async def put(self, name: HintName, value: HintValue) -> None:
        self._entries[name] = value

    async def delete(self, name: HintName) -> None:
        self._entries.pop(name, None)

    async def close(self) -> None:
        return None


@dataclass(slots=True)
class SQLiteHintStore:
    """SQLite-backed hint store; blocking calls run in a worker thread."""

    db_path: Path
    namespace: str = "daosync"
    _conn: sqlite3.Connection | None = field(init=False, default=None)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    async def open(self) -> None:
        if self._conn is not None:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        await self._execute(
            """
            CREATE TABLE IF NOT EXISTS session_hints (
                namespace TEXT NOT NULL,
                name TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (namespace, name)
            )
            """
        )

    async def close(self) -> None:
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    async def get(self, name: HintName) -> HintValue | None:
        row = await self._fetch_one(
            "SELECT value FROM session_hints WHERE namespace=? AND name=?",
            (self.namespace, name),
        )
        return None if row is None else str(row[0])

    async def put(self, name: HintName, value: HintValue) -> None:
        await self._execute(
            "INSERT OR REPLACE INTO session_hints (namespace, name, value)"
            " VALUES (?, ?, ?)",
            (self.namespace, name, value),
        )

    async def delete(self, name: HintName) -> None:
        await self._execute(
            "DELETE FROM session_hints WHERE namespace=? AND name=?",
            (self.namespace, name),
        )

    async def _execute(self, query: str, params: tuple[Any, ...] = ()) -> None:
        conn = self._require_conn()
        async with self._lock:
            await asyncio.to_thread(self._execute_blocking, conn, query, params)

    async def _fetch_one(
        self, query: str, params: tuple[Any, ...]
    ) -> tuple[Any, ...] | None:
        conn = self._require_conn()
        async with self._lock:
            return await asyncio.to_thread(self._fetch_blocking, conn, query, params)

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("SQLite hint store not opened")
        return self._conn

    @staticmethod
    def _execute_blocking(
        conn: sqlite3.Connection, query: str, params: tuple[Any, ...]
    ) -> None:
        cursor = conn.cursor()
        cursor.execute(query, params)
        conn.commit()
        cursor.close()

    @staticmethod
    def _fetch_blocking(
        conn: sqlite3.Connection, query: str, params: tuple[Any, ...]
    ) -> tuple[Any, ...] | None:
        cursor = conn.cursor()
        cursor.execute(query, params)
        row = cursor.fetchone()
        cursor.close()
        return row
