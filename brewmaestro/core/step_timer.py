"""Resumable countdown for the current brew-day step.

A running timer is stored only as an absolute deadline,
current_step_target_ts (epoch millis). Remaining time is recomputed from the
wall clock on every read, so it stays correct across app restarts and missed
ticks. There is no separate "paused remaining" field: the caller keeps the
last value it read and passes it back to resume_step_timer().

observe() is the once-per-second / on-foreground call. When it finds a
deadline that has passed it runs the step-complete path, which clears the
deadline, so a second observation of the same deadline does nothing.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from brewmaestro.core import clock, notifications, sessions
from brewmaestro.db.database import serialized

logger = logging.getLogger(__name__)

# Expired deadlines older than this are cleared by get_remaining_time().
STALE_TIMER_MS = 60 * 60 * 1000


@dataclass
class TimerReading:
    """What the UI needs to render the countdown on one tick."""
    remaining: int
    running: bool
    step_completed: bool = False


def _remaining(target_ts: Optional[int], now_ms: int) -> int:
    if target_ts is None:
        return 0
    # Halves round up.
    return max(0, math.floor((target_ts - now_ms) / 1000 + 0.5))


@serialized
def start_step_timer(session_id: str, remaining_seconds: int) -> Optional[int]:
    """Start the current step's countdown; return the new deadline (epoch millis).

    Any alert already scheduled for the session is replaced by one for the
    new deadline. Returns None if the session no longer exists.
    """
    session = sessions.get(session_id)
    if session is None:
        return None
    target_ts = clock.now_ms() + int(remaining_seconds * 1000)

    notifications.cancel(session.current_step_notification_id)
    notifications.cancel_step_notifications(session_id)
    notification_id = notifications.schedule_step_notification(
        session_id, sessions.current_step(session).name, target_ts
    )

    sessions.update_session(session_id, {
        "current_step_target_ts": target_ts,
        "current_step_notification_id": notification_id,
    })
    logger.debug("Timer for session %s runs until %d", session_id, target_ts)
    return target_ts


def resume_step_timer(session_id: str, remaining_seconds: int) -> Optional[int]:
    """Restart a paused countdown from the remaining seconds the caller kept."""
    return start_step_timer(session_id, remaining_seconds)


@serialized
def clear_step_timer(session_id: str) -> None:
    """Stop the countdown and cancel its alert."""
    session = sessions.get(session_id)
    if session is None:
        return
    sessions.update_session(session_id, sessions.stop_timer_updates(session))


def pause_step_timer(session_id: str) -> None:
    """Stop the countdown. The caller remembers the remaining time for resume."""
    clear_step_timer(session_id)


@serialized
def get_remaining_time(session_id: str) -> int:
    """Seconds left on the current step, recomputed from the stored deadline.

    A deadline that expired more than an hour ago is cleared as a side effect,
    so abandoned timers do not linger.
    """
    session = sessions.get(session_id)
    if session is None or session.current_step_target_ts is None:
        return 0
    now_ms = clock.now_ms()
    remaining = _remaining(session.current_step_target_ts, now_ms)
    if remaining == 0 and now_ms - session.current_step_target_ts > STALE_TIMER_MS:
        logger.info("Clearing stale step timer for session %s", session_id)
        sessions.update_session(session_id, sessions.stop_timer_updates(session))
    return remaining


@serialized
def handle_step_elapsed(session_id: str) -> bool:
    """Run the step-complete path for an expired deadline.

    Marks the current step completed and clears the deadline. Returns True if
    it fired, False when there was nothing to do (no deadline, not yet
    expired, or already handled).
    """
    session = sessions.get(session_id)
    if session is None or session.current_step_target_ts is None:
        return False
    if _remaining(session.current_step_target_ts, clock.now_ms()) > 0:
        return False

    step = sessions.current_step(session)
    step.completed = True
    step.completed_at = clock.to_iso()
    updates = sessions.stop_timer_updates(session)
    updates["steps"] = session.steps
    sessions.update_session(session_id, updates)
    logger.info("Step %s of session %s finished", step.name, session_id)
    return True


def observe(session_id: str) -> TimerReading:
    """Read the countdown for one UI tick, firing the step-complete path at zero."""
    session = sessions.get(session_id)
    if session is None or session.current_step_target_ts is None:
        return TimerReading(remaining=0, running=False)
    if _remaining(session.current_step_target_ts, clock.now_ms()) == 0:
        fired = handle_step_elapsed(session_id)
        return TimerReading(remaining=0, running=False, step_completed=fired)
    return TimerReading(remaining=get_remaining_time(session_id), running=True)
