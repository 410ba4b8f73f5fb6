"""
Key-value persistence for the vault's small independent units:
provider configs, custom personas, active persona id, PIN hash and storage mode.
"""

import json
import sqlite3
import threading
from typing import Any, Optional

from util.logging import logger
from .db import connect, init_keychain_db, remove_db_files

PROVIDER_CONFIGS = "provider_configs"
CUSTOM_PERSONAS = "custom_personas"
ACTIVE_PERSONA_ID = "active_persona_id"
PIN_HASH = "pin_hash"
STORAGE_MODE = "storage_mode"


class KeychainStore:
    """Each unit is loaded on its own; one bad unit never poisons the others."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._lock = threading.RLock()
        try:
            self._conn = connect(db_path)
            init_keychain_db(self._conn)
            self._conn.execute("SELECT COUNT(*) FROM kv").fetchone()
        except sqlite3.DatabaseError as e:
            logger.log_operation("keychain.load", "error", {
                "db_path": db_path, "error": str(e), "recovery": "reset_to_empty"
            })
            remove_db_files(db_path)
            self._conn = connect(db_path)
            init_keychain_db(self._conn)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)",
                (key, value)
            )

    def load_json(self, key: str, default: Any) -> Any:
        """Decode a JSON unit. Missing or malformed units return ``default``."""
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            logger.log_operation("keychain.load_unit", "degraded", {"unit": key, "error": str(e)})
            return default

    def load_list(self, key: str) -> list:
        """Decode a JSON list unit. Anything that is not a list degrades to ``[]``."""
        value = self.load_json(key, [])
        if not isinstance(value, list):
            logger.log_operation("keychain.load_unit", "degraded", {
                "unit": key, "error": f"expected list, got {type(value).__name__}"
            })
            return []
        return value

    def save_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))

    def clear(self) -> None:
        """Remove every unit."""
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute("DELETE FROM kv")
            except sqlite3.Error as e:
                logger.log_operation("keychain.clear", "degraded", {"error": str(e), "fallback": "remove_files"})
                self._conn.close()
                remove_db_files(self.db_path)
                self._conn = connect(self.db_path)
                init_keychain_db(self._conn)

    def close(self):
        with self._lock:
            self._conn.close()
