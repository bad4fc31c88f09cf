import json
import sqlite3
import time
from typing import Any


class StateStore:
    """SQLite-backed key/value store of JSON blobs.

    Keys are logical names (``trades``, ``settings``, ``stats``,
    ``sessions``); each save replaces the whole blob.
    """

    def __init__(self, db_path: str = "binbot_state.db"):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path)
        self._init_db()

    def _init_db(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS state (
                key         TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                updated_at  REAL
            )
        """)
        self.conn.commit()

    def save(self, key: str, value: Any):
        self.conn.execute(
            "INSERT OR REPLACE INTO state VALUES (?,?,?)",
            (key, json.dumps(value), time.time()),
        )
        self.conn.commit()

    def load(self, key: str, default: Any = None) -> Any:
        row = self.conn.execute("SELECT value FROM state WHERE key = ?", (key,)).fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    def keys(self) -> list[str]:
        return [r[0] for r in self.conn.execute("SELECT key FROM state ORDER BY key")]

    def close(self):
        self.conn.close()
