"""Local notification scheduler: one-shot alerts stored for future delivery.

Scheduling is best-effort: every public function swallows and logs its own
failures, and returns None instead of a handle when notifications are
disabled in settings (the equivalent of a denied OS permission) or the fire
time is not far enough in the future. Callers never need a try/except.
"""

import json
import logging
import uuid
from typing import Callable, Optional

from brewmaestro.config import notifications_enabled
from brewmaestro.core import clock
from brewmaestro.db.database import get_connection

logger = logging.getLogger(__name__)

STEP_MIN_LEAD_MS = 10 * 1000

TITLES = {
    "fermentation": "Fermentation ready",
    "conditioning": "Conditioning complete",
    "brew-step": "Brew step complete",
}

BODIES = {
    "fermentation": "Check the gravity and decide whether to move on to conditioning.",
    "conditioning": "Time to bottle or keg your beer.",
    "brew-step": "It's time for the next step of your brew day.",
}


def _row_to_dict(row) -> dict:
    return {
        "id": row["id"],
        "kind": row["kind"],
        "title": row["title"],
        "body": row["body"],
        "data": json.loads(row["data"]) if row["data"] else {},
        "fire_at": row["fire_at"],
    }


def schedule(kind: str, title: str, body: str, data: dict, fire_at_ms: int,
             min_lead_ms: int = 0) -> Optional[str]:
    """Schedule a one-shot alert at fire_at_ms. Return its handle, or None if not scheduled."""
    try:
        if not notifications_enabled():
            logger.debug("Notifications disabled; not scheduling %s", kind)
            return None
        if fire_at_ms - clock.now_ms() <= min_lead_ms:
            return None
        notification_id = uuid.uuid4().hex
        conn = get_connection()
        try:
            conn.execute(
                """INSERT INTO scheduled_notifications (id, kind, title, body, data, fire_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (notification_id, kind, title, body, json.dumps(data), fire_at_ms),
            )
            conn.commit()
        finally:
            conn.close()
        logger.debug("Scheduled %s notification %s at %d", kind, notification_id, fire_at_ms)
        return notification_id
    except Exception:
        logger.warning("Failed to schedule %s notification", kind, exc_info=True)
        return None


def cancel(notification_id: Optional[str]) -> None:
    """Cancel a scheduled alert. Unknown or empty handles are ignored."""
    if not notification_id:
        return
    try:
        conn = get_connection()
        try:
            conn.execute("DELETE FROM scheduled_notifications WHERE id = ?", (notification_id,))
            conn.commit()
        finally:
            conn.close()
    except Exception:
        logger.warning("Failed to cancel notification %s", notification_id, exc_info=True)


def get_pending() -> list[dict]:
    """Return all scheduled alerts ordered by fire time."""
    conn = get_connection()
    try:
        rows = conn.execute(
            "SELECT * FROM scheduled_notifications ORDER BY fire_at"
        ).fetchall()
        return [_row_to_dict(r) for r in rows]
    finally:
        conn.close()


def cancel_all_matching(predicate: Callable[[dict], bool]) -> None:
    """Cancel every scheduled alert whose data payload satisfies predicate."""
    try:
        for notification in get_pending():
            if predicate(notification["data"]):
                cancel(notification["id"])
    except Exception:
        logger.warning("Failed to cancel matching notifications", exc_info=True)


def schedule_step_notification(session_id: str, step_name: str, target_ts: int) -> Optional[str]:
    """Alert when a brew-day step countdown reaches zero."""
    return schedule(
        "brew-step",
        TITLES["brew-step"],
        f"{step_name}: {BODIES['brew-step']}",
        {"sessionId": session_id, "stepName": step_name, "type": "brew-step"},
        target_ts,
        min_lead_ms=STEP_MIN_LEAD_MS,
    )


def cancel_step_notifications(session_id: Optional[str] = None) -> None:
    """Cancel step alerts for one session, or for every session when session_id is None."""
    cancel_all_matching(
        lambda data: data.get("type") == "brew-step"
        and (session_id is None or data.get("sessionId") == session_id)
    )


def schedule_brew_notification(brew_id: str, kind: str, fire_at_ms: int) -> Optional[str]:
    """Alert when a brew's fermentation or conditioning target is reached."""
    return schedule(
        kind,
        TITLES[kind],
        BODIES[kind],
        {"brewId": brew_id, "type": kind},
        fire_at_ms,
    )


def cancel_brew_notifications(brew_id: str) -> None:
    cancel_all_matching(lambda data: data.get("brewId") == brew_id)
