"""JSON key-value storage backed by the kv_store table.

Each key holds one logical collection serialized as JSON text.

Known keys:
    sessions          : list of brew-day sessions (see core/sessions.py).
    stepTaskTemplates : {step_id: [task text, ...]} (see core/task_templates.py).
    recipes           : list of recipes (see core/recipes.py).
"""

import json
from typing import Any

from brewmaestro.db.database import get_connection


def load(key: str) -> Any:
    """Return the decoded JSON value stored under key, or None if not found."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None or row["value"] is None:
            return None
        return json.loads(row["value"])
    finally:
        conn.close()


def save(key: str, value: Any) -> None:
    """Encode value as JSON and store it under key (upsert)."""
    payload = json.dumps(value)
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, datetime('now'))
               ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at""",
            (key, payload),
        )
        conn.commit()
    finally:
        conn.close()
