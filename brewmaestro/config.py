"""Key-value settings storage backed by the SQLite settings table.

Known keys:
    notifications_enabled     : "1" or "0"; "0" behaves like a denied notification permission.
    default_fermentation_days : target days used when a new brew gives none (default 14).
    default_conditioning_days : target days used when a new brew gives none (default 14).
"""

from typing import Optional

from brewmaestro.db.database import get_connection

DEFAULT_TARGET_DAYS = 14


def get_setting(key: str, default: Optional[str] = None) -> Optional[str]:
    """Return the value for a settings key, or default if not found."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else default
    finally:
        conn.close()


def set_setting(key: str, value: str) -> None:
    """Insert or update a settings key-value pair (upsert)."""
    conn = get_connection()
    try:
        conn.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )
        conn.commit()
    finally:
        conn.close()


def notifications_enabled() -> bool:
    return get_setting("notifications_enabled", "1") != "0"


def get_int_setting(key: str, default: int) -> int:
    """Return a settings value parsed as int, falling back to default on bad data."""
    raw = get_setting(key)
    try:
        return int(raw) if raw is not None else default
    except (ValueError, TypeError):
        return default


def default_fermentation_days() -> int:
    return get_int_setting("default_fermentation_days", DEFAULT_TARGET_DAYS)


def default_conditioning_days() -> int:
    return get_int_setting("default_conditioning_days", DEFAULT_TARGET_DAYS)
