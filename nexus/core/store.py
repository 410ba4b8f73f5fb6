"""
Durable record table with an in-memory vector index.

SQLite is the canonical truth. The id -> vector map is rebuilt from the table
at load time and kept in lockstep with every insert, delete and wipe.
"""

import json
import sqlite3
import threading
from typing import Dict, List, Optional
import numpy as np

from util.logging import logger
from .db import connect, init_memory_db, remove_db_files
from .errors import CorruptStore
from .schema import MemoryRecord

COLUMNS = (
    "id", "content", "embedding", "tags", "origin", "is_user_authored",
    "created_at", "last_accessed_at", "is_synced", "integrity_tag"
)

UPDATABLE_FIELDS = (
    "content", "embedding", "tags", "origin", "is_user_authored",
    "last_accessed_at", "is_synced", "integrity_tag"
)


class PersistentStore:
    """Key-ordered table of MemoryRecords with whole-transaction commits."""

    def __init__(self, db_path: str, dimension: int):
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        self.db_path = db_path
        self.dimension = dimension
        self.recovered_from_corruption = False
        self._lock = threading.RLock()
        self._index: Dict[str, np.ndarray] = {}
        self._conn: Optional[sqlite3.Connection] = None
        self._load()

    # ── load / recovery ─────────────────────────────────────────────

    def _load(self):
        stored_dimension = None
        try:
            self._conn = connect(self.db_path)
            init_memory_db(self._conn)
            stored_dimension = self._read_dimension()
            records = self._read_table(stored_dimension or self.dimension)
        except (sqlite3.DatabaseError, CorruptStore, ValueError, KeyError, TypeError) as e:
            logger.log_operation("store.load", "error", {
                "db_path": self.db_path,
                "error": str(CorruptStore(f"Unreadable durable state: {e}")),
                "recovery": "reset_to_empty"
            })
            self._reset_medium()
            self.recovered_from_corruption = True
            stored_dimension = None
            records = []

        if stored_dimension is None:
            self._write_dimension()
        elif stored_dimension != self.dimension:
            raise ValueError(
                f"Store at {self.db_path} was created with dimension {stored_dimension}, "
                f"not {self.dimension}"
            )

        self._index = {r.id: np.asarray(r.embedding, dtype=np.float64) for r in records}
        logger.log_operation("store.load", "success", {
            "db_path": self.db_path,
            "records": len(self._index),
            "dimension": self.dimension
        })

    def _read_dimension(self) -> Optional[int]:
        row = self._conn.execute("SELECT value FROM meta WHERE key = 'dimension'").fetchone()
        return int(row["value"]) if row else None

    def _write_dimension(self):
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO meta (key, value) VALUES ('dimension', ?)",
                (str(self.dimension),)
            )

    def _read_table(self, dimension: int) -> List[MemoryRecord]:
        cursor = self._conn.execute(f"SELECT {', '.join(COLUMNS)} FROM memories ORDER BY seq")
        records = []
        for row in cursor.fetchall():
            record = MemoryRecord.from_row(dict(row))
            if len(record.embedding) != dimension:
                raise CorruptStore(
                    f"Record {record.id} has embedding length {len(record.embedding)}, expected {dimension}"
                )
            records.append(record)
        return records

    def _reset_medium(self):
        """Drop the backing file and start from an empty schema."""
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                pass
        remove_db_files(self.db_path)
        self._conn = connect(self.db_path)
        init_memory_db(self._conn)

    # ── mutations ───────────────────────────────────────────────────

    def _check_dimension(self, embedding) -> np.ndarray:
        vector = np.asarray(embedding, dtype=np.float64)
        if vector.shape != (self.dimension,):
            raise ValueError(
                f"Embedding dimension {vector.size} does not match store dimension {self.dimension}"
            )
        return vector

    def insert(self, record: MemoryRecord) -> None:
        """Insert a single record and commit."""
        self.insert_many([record])

    def insert_many(self, records: List[MemoryRecord]) -> None:
        """Insert records in one transaction; either all rows land or none do."""
        vectors = {r.id: self._check_dimension(r.embedding) for r in records}
        placeholders = ", ".join("?" for _ in COLUMNS)

        with self._lock:
            try:
                with self._conn:
                    self._conn.executemany(
                        f"INSERT INTO memories ({', '.join(COLUMNS)}) VALUES ({placeholders})",
                        [tuple(r.to_row()[c] for c in COLUMNS) for r in records]
                    )
            except sqlite3.IntegrityError as e:
                raise ValueError(f"Duplicate record id: {e}")

            self._index.update(vectors)

        for record in records:
            logger.log_memory_operation("insert", record.id, {
                "origin": record.origin.value,
                "length": len(record.content)
            })

    def update(self, record_id: str, **changes) -> bool:
        """Apply a partial update to one record. Returns False if it does not exist."""
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")
        if not changes:
            return self.select_by_id(record_id) is not None

        with self._lock:
            current = self.select_by_id(record_id)
            if current is None:
                return False

            for name, value in changes.items():
                setattr(current, name, value)
            # Re-run normalisation (tag de-dup, enum coercion)
            current.__post_init__()
            vector = self._check_dimension(current.embedding)
            row = current.to_row()

            assignments = ", ".join(f"{name} = ?" for name in changes)
            with self._conn:
                self._conn.execute(
                    f"UPDATE memories SET {assignments} WHERE id = ?",
                    tuple(row[name] for name in changes) + (record_id,)
                )

            self._index[record_id] = vector
        return True

    def delete(self, record_id: str) -> bool:
        """Delete one record. Returns False if it did not exist."""
        with self._lock:
            with self._conn:
                cursor = self._conn.execute("DELETE FROM memories WHERE id = ?", (record_id,))
            self._index.pop(record_id, None)
            deleted = cursor.rowcount > 0

        if deleted:
            logger.log_memory_operation("delete", record_id)
        return deleted

    def wipe(self) -> None:
        """Irreversibly delete every record."""
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute("DELETE FROM memories")
                    self._conn.execute("DELETE FROM sqlite_sequence WHERE name = 'memories'")
            except sqlite3.Error as e:
                # Fall back to destroying the medium outright
                logger.log_operation("store.wipe", "degraded", {"error": str(e), "fallback": "remove_files"})
                self._reset_medium()
                self._write_dimension()
            self._index.clear()

        logger.log_operation("store.wipe", "success", {"db_path": self.db_path})

    # ── reads ───────────────────────────────────────────────────────

    def select_all(self) -> List[MemoryRecord]:
        """All records in insertion order."""
        with self._lock:
            cursor = self._conn.execute(f"SELECT {', '.join(COLUMNS)} FROM memories ORDER BY seq")
            return [MemoryRecord.from_row(dict(row)) for row in cursor.fetchall()]

    def select_by_id(self, record_id: str) -> Optional[MemoryRecord]:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {', '.join(COLUMNS)} FROM memories WHERE id = ?", (record_id,)
            ).fetchone()
        return MemoryRecord.from_row(dict(row)) if row else None

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM memories").fetchone()[0]

    def size_bytes(self) -> int:
        """UTF-8 size of the JSON serialization of every row; 0 when empty."""
        with self._lock:
            cursor = self._conn.execute(f"SELECT {', '.join(COLUMNS)} FROM memories")
            return sum(
                len(json.dumps(dict(row), ensure_ascii=False).encode("utf-8"))
                for row in cursor.fetchall()
            )

    def get_vector(self, record_id: str) -> Optional[np.ndarray]:
        return self._index.get(record_id)

    def index_ids(self) -> List[str]:
        return list(self._index.keys())

    def close(self):
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
