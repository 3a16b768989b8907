"""SQLite database connection management and schema initialization.

Provides a single-file database at ~/.brewmaestro/brewmaestro.db.
Every public function that needs a connection should call get_connection(),
use it, and close it in a finally block.
"""

import functools
import os
import sqlite3
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

_db_path_override: ContextVar["Path | None"] = ContextVar("_db_path_override", default=None)


@contextmanager
def override_db_path(path: "Path"):
    """Context manager to override the DB path for the current task/thread.

    Used by the test-suite to point the core at a throwaway database.

    Example:
        with override_db_path(tmp_path / "brew.db"):
            init_db()
            sessions.get_all()
    """
    token = _db_path_override.set(path)
    try:
        yield
    finally:
        _db_path_override.reset(token)


def get_db_path() -> Path:
    """Return the active DB path.

    Priority order:
    1. ContextVar override
    2. DB_PATH environment variable (used by Docker / local dev)
    3. Default ~/.brewmaestro/brewmaestro.db
    """
    override = _db_path_override.get()
    if override is not None:
        return override
    env_url = os.environ.get("DB_PATH")
    if env_url:
        p = Path(env_url)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    db_dir = Path.home() / ".brewmaestro"
    db_dir.mkdir(exist_ok=True)
    return db_dir / "brewmaestro.db"


def get_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Return a new SQLite connection with Row factory and foreign keys enabled.

    Callers are responsible for closing the connection when done.
    """
    if db_path is None:
        db_path = get_db_path()
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


# Held across every load-modify-save in the core. Sync routes run concurrently in
# FastAPI's thread pool, so a user action can overlap the timer tick. Reentrant.
write_lock = threading.RLock()


def serialized(func):
    """Run func while holding write_lock."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with write_lock:
            return func(*args, **kwargs)
    return wrapper


def init_db(db_path: Optional[Path] = None) -> None:
    """Create all tables if they don't already exist.

    Called once at application startup from app/main.py.
    Tables: settings, kv_store, brews, scheduled_notifications.
    """
    conn = get_connection(db_path)
    cursor = conn.cursor()

    cursor.executescript("""
        CREATE TABLE IF NOT EXISTS settings (
            key   TEXT PRIMARY KEY,
            value TEXT
        );

        CREATE TABLE IF NOT EXISTS kv_store (
            key        TEXT PRIMARY KEY,
            value      TEXT,
            updated_at TEXT DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS brews (
            id                       TEXT PRIMARY KEY NOT NULL,
            recipe_id                TEXT,
            recipe_name              TEXT NOT NULL,
            brew_date                TEXT NOT NULL,
            status                   TEXT NOT NULL,
            fermentation_start       TEXT,
            conditioning_start       TEXT,
            packaging_date           TEXT,
            batch_size               REAL,
            original_gravity         REAL,
            final_gravity            REAL,
            measured_abv             REAL,
            fermentation_temp        REAL,
            target_fermentation_days INTEGER DEFAULT 14,
            target_conditioning_days INTEGER DEFAULT 14,
            fermentation_days        INTEGER,
            conditioning_days        INTEGER,
            notes                    TEXT,
            quick_notes              TEXT,
            measurements             TEXT,
            created_at               TEXT DEFAULT (datetime('now')),
            updated_at               TEXT DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS scheduled_notifications (
            id         TEXT PRIMARY KEY NOT NULL,
            kind       TEXT NOT NULL,
            title      TEXT NOT NULL,
            body       TEXT,
            data       TEXT,
            fire_at    INTEGER NOT NULL,
            created_at TEXT DEFAULT (datetime('now'))
        );
    """)

    conn.commit()

    # Migrations for existing databases
    for col, table, col_type in [
        ("fermentation_days", "brews", "INTEGER"),
        ("conditioning_days", "brews", "INTEGER"),
    ]:
        try:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {col} {col_type}")
            conn.commit()
        except sqlite3.OperationalError:
            pass  # Column already exists

    conn.close()
