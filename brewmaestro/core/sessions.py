"""Brew-day sessions: step sequencing, checklists, notes and status lifecycle.

All sessions are stored as one JSON list under the "sessions" key.
update_session() is the only function that writes that list; every other
mutation loads the session, builds a partial update and routes it through
update_session(). There is no cached "active session": get_active() picks
it from the stored list on every call, so it cannot drift from storage.

Statuses only move forward (planning → brewing → fermenting → conditioning
→ completed). At most one session is active (brewing or fermenting).
"""

import logging
import sqlite3
import uuid
from dataclasses import asdict, replace
from typing import Optional

from brewmaestro.core import brews, clock, notifications, progress, recipes, task_templates
from brewmaestro.db import storage
from brewmaestro.db.database import serialized
from brewmaestro.db.models import (
    ACTIVE_SESSION_STATUSES,
    SESSION_STATUSES,
    BrewSession,
    BrewStep,
    BrewStepTask,
    Measurement,
    is_forward,
)

logger = logging.getLogger(__name__)

SESSIONS_KEY = "sessions"

# Canonical brew-day template. A duration of None is derived from the recipe's boil time.
STEP_TEMPLATE = [
    {"id": "1", "name": "Prepare Equipment", "duration": 15,
     "description": "Sanitize all equipment and gather ingredients"},
    {"id": "2", "name": "Heat Water", "duration": 30, "temperature": 72,
     "description": "Heat strike water to mash temperature"},
    {"id": "3", "name": "Mash In", "duration": 60, "temperature": 66,
     "description": "Add grains and maintain mash temperature"},
    {"id": "4", "name": "Mash Out", "duration": 10, "temperature": 75,
     "description": "Raise temperature to mash out"},
    {"id": "5", "name": "Sparge", "duration": 30, "temperature": 75,
     "description": "Rinse grains to extract remaining sugars"},
    {"id": "6", "name": "Boil - Bittering Hops", "duration": None,
     "description": "Add bittering hops and start boil timer"},
    {"id": "7", "name": "Boil - Flavor Hops", "duration": 10,
     "description": "Add flavor hops"},
    {"id": "8", "name": "Boil - Aroma Hops", "duration": 5,
     "description": "Add aroma hops and finish boil"},
    {"id": "9", "name": "Cool Down", "duration": 20, "temperature": 20,
     "description": "Cool wort to pitching temperature"},
    {"id": "10", "name": "Transfer & Pitch", "duration": 15,
     "description": "Transfer to fermenter and pitch yeast"},
]

# Flavor + aroma additions take the last 15 minutes of the boil.
LATE_BOIL_MINUTES = 15


# --- serialization ---------------------------------------------------------

def _step_from_dict(data: dict) -> BrewStep:
    step = BrewStep(**{k: v for k, v in data.items() if k != "tasks"})
    step.tasks = [BrewStepTask(**t) for t in data.get("tasks", [])]
    return step


def _session_from_dict(data: dict) -> BrewSession:
    fields = {k: v for k, v in data.items() if k not in ("steps", "measurements")}
    session = BrewSession(**fields)
    session.steps = [_step_from_dict(s) for s in data.get("steps", [])]
    session.measurements = [Measurement(**m) for m in data.get("measurements", [])]
    return session


def _save_all(sessions: list[BrewSession]) -> None:
    storage.save(SESSIONS_KEY, [asdict(s) for s in sessions])


# --- queries ---------------------------------------------------------------

def get_all() -> list[BrewSession]:
    """Return every stored session in creation order."""
    return [_session_from_dict(d) for d in storage.load(SESSIONS_KEY) or []]


def get(session_id: str) -> Optional[BrewSession]:
    """Return a single session, or None if not found."""
    return next((s for s in get_all() if s.id == session_id), None)


def get_active() -> Optional[BrewSession]:
    """Return the session currently in progress (brewing or fermenting), if any."""
    return next((s for s in get_all() if s.status in ACTIVE_SESSION_STATUSES), None)


def current_step(session: BrewSession) -> BrewStep:
    return session.steps[session.current_step_index]


def planned_seconds(session: BrewSession) -> int:
    """Full planned length of the current step, in seconds."""
    return current_step(session).duration * 60


def is_last_step(session: BrewSession) -> bool:
    return session.current_step_index >= len(session.steps) - 1


# --- creation and the single write path ------------------------------------

def create_default_steps(recipe) -> list[BrewStep]:
    """Build the brew-day steps for recipe, pre-populated from saved task templates."""
    templates = task_templates.get_all()
    steps = []
    for entry in STEP_TEMPLATE:
        duration = entry["duration"]
        if duration is None:
            duration = max(0, recipe.boil_time - LATE_BOIL_MINUTES)
        steps.append(BrewStep(
            id=entry["id"],
            name=entry["name"],
            duration=duration,
            temperature=entry.get("temperature"),
            description=entry.get("description"),
            tasks=[BrewStepTask(id=uuid.uuid4().hex, text=text)
                   for text in templates.get(entry["id"], [])],
        ))
    return steps


@serialized
def start_session(recipe_id: str) -> BrewSession:
    """Start a brew day for a recipe.

    Raises ValueError if the recipe does not exist or another session is
    already active. The session only becomes visible once the write succeeds.
    """
    recipe = recipes.get(recipe_id)
    if recipe is None:
        raise ValueError("Recipe not found")
    if get_active() is not None:
        raise ValueError("A brew session is already in progress")

    session = BrewSession(
        id=uuid.uuid4().hex,
        recipe_id=recipe.id,
        recipe_name=recipe.name,
        status="brewing",
        started_at=clock.to_iso(),
        current_step_index=0,
        steps=create_default_steps(recipe),
    )
    _save_all(get_all() + [session])
    logger.info("Started brew session %s for %s", session.id, recipe.name)
    return session


@serialized
def update_session(session_id: str, updates: dict) -> Optional[BrewSession]:
    """Merge updates into the stored session and return the result.

    Returns None if the session no longer exists. Raises ValueError on a
    status change that is not strictly forward.
    """
    stored = get_all()
    index = next((i for i, s in enumerate(stored) if s.id == session_id), None)
    if index is None:
        return None
    session = stored[index]
    new_status = updates.get("status", session.status)
    if new_status != session.status and not is_forward(SESSION_STATUSES, session.status, new_status):
        raise ValueError(f"Cannot move session from {session.status} to {new_status}")
    updated = replace(session, **updates)
    stored[index] = updated
    _save_all(stored)
    return updated


def stop_timer_updates(session: BrewSession) -> dict:
    """Cancel the session's pending step alert and return the fields that clear its timer."""
    notifications.cancel(session.current_step_notification_id)
    return {"current_step_target_ts": None, "current_step_notification_id": None}


# --- step navigation -------------------------------------------------------

@serialized
def go_to_step(session_id: str, target_index: int) -> Optional[BrewSession]:
    """Move to target_index (clamped) with the countdown stopped.

    The destination step's timer is left paused at its full planned duration;
    use planned_seconds() on the result for the value to display.
    """
    session = get(session_id)
    if session is None:
        return None
    target_index = max(0, min(target_index, len(session.steps) - 1))

    updates = {}
    if session.current_step_target_ts is not None or session.current_step_notification_id:
        updates.update(stop_timer_updates(session))
    if target_index != session.current_step_index:
        updates["current_step_index"] = target_index
    if not updates:
        return session
    return update_session(session_id, updates)


@serialized
def next_step(session_id: str) -> Optional[BrewSession]:
    """Advance one step, or finish the session when already on the last step."""
    session = get(session_id)
    if session is None:
        return None
    if is_last_step(session):
        complete_session(session_id)
        return get(session_id)
    return go_to_step(session_id, session.current_step_index + 1)


@serialized
def previous_step(session_id: str) -> Optional[BrewSession]:
    session = get(session_id)
    if session is None:
        return None
    return go_to_step(session_id, session.current_step_index - 1)


@serialized
def complete_step(session_id: str, step_id: str) -> Optional[BrewSession]:
    """Mark a step done and move on to the step after it."""
    session = get(session_id)
    if session is None:
        return None
    index = next((i for i, s in enumerate(session.steps) if s.id == step_id), None)
    if index is None:
        return None
    step = session.steps[index]
    step.completed = True
    step.completed_at = clock.to_iso()
    updates = stop_timer_updates(session)
    updates["steps"] = session.steps
    updates["current_step_index"] = min(index + 1, len(session.steps) - 1)
    return update_session(session_id, updates)


@serialized
def complete_session(session_id: str, hand_off: bool = True) -> Optional[tuple]:
    """Finish the brew day.

    The session is marked completed (kept as history, no longer active). With
    hand_off, a brew record is created for fermentation tracking; a failure
    there is reported in the message but does not reopen the session.
    Returns (record or None, message), or None if there is no such session
    or it is already completed.
    """
    session = get(session_id)
    if session is None or session.status == "completed":
        return None

    updates = stop_timer_updates(session)
    updates["status"] = "completed"
    updates["completed_at"] = clock.to_iso()
    session = update_session(session_id, updates)
    logger.info("Completed brew session %s", session_id)

    if not hand_off:
        return None, "Brew day finished. Fermentation tracking was not started for this batch."

    try:
        record = brews.create_from_session(session)
    except (sqlite3.Error, ValueError):
        logger.exception("Failed to hand session %s off to fermentation tracking", session_id)
        return None, "Brew day finished, but the batch could not be added to fermentation tracking."
    return record, f"{session.recipe_name} is now being tracked in fermentation."


# --- checklist tasks -------------------------------------------------------

def _mirror_template(func, step_id: str, text: str) -> None:
    """Apply a template change without letting it fail the task mutation."""
    try:
        func(step_id, text)
    except (sqlite3.Error, ValueError, TypeError):
        logger.warning("Failed to update task template for step %s", step_id, exc_info=True)


@serialized
def add_step_task(session_id: str, text: str) -> Optional[BrewStepTask]:
    """Add a checklist task to the current step and remember it for future sessions."""
    session = get(session_id)
    if session is None:
        return None
    step = current_step(session)
    task = BrewStepTask(id=uuid.uuid4().hex, text=text)
    step.tasks.append(task)
    update_session(session_id, {"steps": session.steps})
    _mirror_template(task_templates.add_task, step.id, text)
    return task


@serialized
def toggle_step_task(session_id: str, task_id: str) -> Optional[BrewStepTask]:
    session = get(session_id)
    if session is None:
        return None
    step = current_step(session)
    task = next((t for t in step.tasks if t.id == task_id), None)
    if task is None:
        return None
    task.completed = not task.completed
    update_session(session_id, {"steps": session.steps})
    return task


@serialized
def remove_step_task(session_id: str, task_id: str) -> None:
    """Delete a task from the current step and from the step's template."""
    session = get(session_id)
    if session is None:
        return
    step = current_step(session)
    task = next((t for t in step.tasks if t.id == task_id), None)
    if task is None:
        return
    step.tasks = [t for t in step.tasks if t.id != task_id]
    update_session(session_id, {"steps": session.steps})
    _mirror_template(task_templates.remove_task, step.id, task.text)


# --- notes and measurements ------------------------------------------------

@serialized
def add_note(session_id: str, text: str) -> Optional[BrewSession]:
    """Append a timestamp-prefixed note. Existing notes are never changed."""
    session = get(session_id)
    if session is None:
        return None
    note = f"{clock.format_datetime()}: {text}"
    return update_session(session_id, {"notes": session.notes + [note]})


@serialized
def add_measurement(session_id: str, measurement_type: str, value: float,
                    unit: Optional[str], notes: Optional[str] = None) -> Optional[BrewSession]:
    """Record a reading. og/fg readings refresh the cached gravity and ABV fields."""
    session = get(session_id)
    if session is None:
        return None
    measurement = Measurement(
        id=uuid.uuid4().hex,
        type=measurement_type,
        value=value,
        unit=unit,
        timestamp=clock.to_iso(),
        notes=notes,
    )
    updates = {"measurements": session.measurements + [measurement]}
    if measurement_type == "og":
        updates["actual_og"] = value
        if session.actual_fg is not None:
            updates["actual_abv"] = progress.calculate_abv(value, session.actual_fg, 2)
    elif measurement_type == "fg":
        updates["actual_fg"] = value
        if session.actual_og is not None:
            updates["actual_abv"] = progress.calculate_abv(session.actual_og, value, 2)
    return update_session(session_id, updates)
