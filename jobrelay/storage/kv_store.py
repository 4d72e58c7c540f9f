from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Callable


class KeyValueStore:
    """String key-value table with per-entry expiry. Expired rows read as absent."""

    def __init__(self, db_path: str = "data/jobrelay.db", clock: Callable[[], float] = time.time) -> None:
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.clock = clock
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                expires_at REAL
            );
            CREATE INDEX IF NOT EXISTS idx_kv_expires_at ON kv(expires_at);
            """
        )
        self.conn.commit()

    def get(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value, expires_at FROM kv WHERE key=?", (key,)).fetchone()
        if row is None:
            return None
        if row["expires_at"] is not None and row["expires_at"] <= self.clock():
            self.delete(key)
            return None
        return row["value"]

    def put(self, key: str, value: str, ttl_seconds: float | None = None) -> None:
        expires_at = self.clock() + ttl_seconds if ttl_seconds else None
        self.conn.execute(
            "INSERT INTO kv(key, value, expires_at) VALUES (?,?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value, expires_at=excluded.expires_at",
            (key, value, expires_at),
        )
        self.conn.commit()

    def delete(self, key: str) -> bool:
        cur = self.conn.execute("DELETE FROM kv WHERE key=?", (key,))
        self.conn.commit()
        return cur.rowcount > 0

    def purge_expired(self) -> int:
        cur = self.conn.execute("DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?", (self.clock(),))
        self.conn.commit()
        return cur.rowcount

    def list_keys(self, prefix: str = "", limit: int | None = None) -> list[str]:
        self.purge_expired()
        query = "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key"
        params: tuple = (len(prefix), prefix)
        if limit is not None:
            query += " LIMIT ?"
            params = (len(prefix), prefix, limit)
        return [row["key"] for row in self.conn.execute(query, params).fetchall()]

    def close(self) -> None:
        self.conn.close()
