"""
SQLite helpers for the vault's durable units.
Records live in one database file; keychain scalars live in another.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

MEMORY_PATH = ":memory:"


def connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with dict-like rows. Parent directory is created on demand."""
    if db_path != MEMORY_PATH:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def get_db(db_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Get a short-lived SQLite database connection."""
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


def init_memory_db(conn: sqlite3.Connection):
    """Create the memories table and its meta table."""
    cursor = conn.cursor()

    # seq keeps insertion order; id is the public key
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS memories (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            content TEXT NOT NULL,
            embedding TEXT NOT NULL,
            tags TEXT NOT NULL,
            origin TEXT NOT NULL,
            is_user_authored BOOLEAN DEFAULT FALSE,
            created_at TEXT NOT NULL,
            last_accessed_at TEXT NOT NULL,
            is_synced BOOLEAN DEFAULT FALSE,
            integrity_tag TEXT
        )
    ''')

    cursor.execute('''
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    ''')

    conn.commit()


def init_keychain_db(conn: sqlite3.Connection):
    """Create the keychain kv table."""
    cursor = conn.cursor()
    cursor.execute('''
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value TEXT,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    ''')
    conn.commit()


def remove_db_files(db_path: str):
    """Delete a database file and its journal siblings."""
    if db_path == MEMORY_PATH:
        return
    for suffix in ("", "-journal", "-wal", "-shm"):
        Path(f"{db_path}{suffix}").unlink(missing_ok=True)


def health_check(db_path: str, required_tables=("memories", "meta")) -> bool:
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]
            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
