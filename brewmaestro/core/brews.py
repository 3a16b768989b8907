"""Brew records: fermentation, conditioning and packaging tracking.

Each record is one row in the brews table; quick notes and measurements are
JSON-encoded text columns. Records only move forward through
brewing → fermenting → conditioning → completed → archived. Every
transition is a single UPDATE, and callers always reload from the table,
so a failed write leaves nothing half-applied.
"""

import json
import logging
import uuid
from datetime import timedelta
from typing import Optional

from brewmaestro.config import (
    DEFAULT_TARGET_DAYS,
    default_conditioning_days,
    default_fermentation_days,
)
from brewmaestro.core import clock, notifications
from brewmaestro.core.progress import calculate_abv, days_between
from brewmaestro.db.database import get_connection, serialized
from brewmaestro.db.models import (
    ACTIVE_BREW_STATUSES,
    BREW_STATUSES,
    BrewRecord,
    Measurement,
    QuickNote,
    is_forward,
)

logger = logging.getLogger(__name__)


def _parse_maybe_number(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _parse_maybe_int(value) -> Optional[int]:
    number = _parse_maybe_number(value)
    return int(number) if number is not None else None


def _target_days(value) -> int:
    days = _parse_maybe_int(value)
    return days if days is not None else DEFAULT_TARGET_DAYS


def _parse_json_column(value, fallback):
    if not value:
        return fallback
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return fallback


def _row_to_brew(row) -> BrewRecord:
    """Convert a database row into a BrewRecord, decoding its JSON columns."""
    return BrewRecord(
        id=row["id"],
        recipe_id=row["recipe_id"],
        recipe_name=row["recipe_name"],
        status=row["status"],
        brew_date=row["brew_date"],
        fermentation_start=row["fermentation_start"],
        conditioning_start=row["conditioning_start"],
        packaging_date=row["packaging_date"],
        batch_size=_parse_maybe_number(row["batch_size"]),
        original_gravity=_parse_maybe_number(row["original_gravity"]),
        final_gravity=_parse_maybe_number(row["final_gravity"]),
        measured_abv=_parse_maybe_number(row["measured_abv"]),
        fermentation_temp=_parse_maybe_number(row["fermentation_temp"]),
        target_fermentation_days=_target_days(row["target_fermentation_days"]),
        target_conditioning_days=_target_days(row["target_conditioning_days"]),
        actual_fermentation_days=_parse_maybe_int(row["fermentation_days"]),
        actual_conditioning_days=_parse_maybe_int(row["conditioning_days"]),
        notes=row["notes"],
        quick_notes=[QuickNote(**n) for n in _parse_json_column(row["quick_notes"], [])],
        measurements=[Measurement(**m) for m in _parse_json_column(row["measurements"], [])],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _to_json(items: list) -> str:
    return json.dumps([vars(i) for i in items])


def get_all() -> list[BrewRecord]:
    """Return all brews, most recent brew date first."""
    conn = get_connection()
    try:
        rows = conn.execute("SELECT * FROM brews ORDER BY datetime(brew_date) DESC").fetchall()
        return [_row_to_brew(r) for r in rows]
    finally:
        conn.close()


def get_active() -> list[BrewRecord]:
    """Return brews that are still brewing, fermenting or conditioning."""
    return [b for b in get_all() if b.status in ACTIVE_BREW_STATUSES]


def get_archived() -> list[BrewRecord]:
    """Return completed and archived brews."""
    return [b for b in get_all() if b.status not in ACTIVE_BREW_STATUSES]


def get(brew_id: str) -> Optional[BrewRecord]:
    """Return a single brew, or None if not found."""
    conn = get_connection()
    try:
        row = conn.execute("SELECT * FROM brews WHERE id = ?", (brew_id,)).fetchone()
        return _row_to_brew(row) if row else None
    finally:
        conn.close()


def start_new_brew(
    recipe_name: str,
    recipe_id: Optional[str] = None,
    batch_size: Optional[float] = None,
    target_fermentation_days: Optional[int] = None,
    target_conditioning_days: Optional[int] = None,
    fermentation_temp: Optional[float] = None,
    notes: Optional[str] = None,
    quick_notes: Optional[list] = None,
) -> BrewRecord:
    """Insert a new brew in the brewing state and return it.

    Missing targets fall back to the default_*_days settings.
    """
    now_iso = clock.to_iso()
    record = BrewRecord(
        id=f"brew_{uuid.uuid4().hex[:12]}",
        recipe_id=recipe_id,
        recipe_name=recipe_name,
        status="brewing",
        brew_date=now_iso,
        batch_size=batch_size,
        fermentation_temp=fermentation_temp,
        target_fermentation_days=target_fermentation_days or default_fermentation_days(),
        target_conditioning_days=target_conditioning_days or default_conditioning_days(),
        notes=notes,
        quick_notes=quick_notes or [],
        created_at=now_iso,
        updated_at=now_iso,
    )
    conn = get_connection()
    try:
        conn.execute(
            """INSERT INTO brews (
                   id, recipe_id, recipe_name, brew_date, status, batch_size, fermentation_temp,
                   target_fermentation_days, target_conditioning_days, fermentation_days,
                   conditioning_days, notes, quick_notes, measurements, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.id, record.recipe_id, record.recipe_name, record.brew_date,
                record.status, record.batch_size, record.fermentation_temp,
                record.target_fermentation_days, record.target_conditioning_days,
                None, None, record.notes,
                _to_json(record.quick_notes), _to_json(record.measurements),
                record.created_at, record.updated_at,
            ),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Started brew %s (%s)", record.id, recipe_name)
    return record


def create_from_session(session) -> BrewRecord:
    """Hand a finished brew-day session over to fermentation tracking.

    Each session note becomes its own quick note on the new record.
    """
    now_iso = clock.to_iso()
    quick_notes = [
        QuickNote(id=f"note_{uuid.uuid4().hex[:12]}", timestamp=now_iso, text=text)
        for text in session.notes
    ]
    return start_new_brew(
        recipe_name=session.recipe_name,
        recipe_id=session.recipe_id,
        quick_notes=quick_notes,
    )


def _check_transition(record: BrewRecord, new_status: str) -> None:
    if not is_forward(BREW_STATUSES, record.status, new_status):
        raise ValueError(f"Cannot move brew from {record.status} to {new_status}")


def _after_days(days: int) -> int:
    """Epoch millis for now + days."""
    return int((clock.now() + timedelta(days=days)).timestamp() * clock.MS_IN_SECOND)


@serialized
def start_fermentation(brew_id: str, og: float, temperature: Optional[float] = None,
                       target_days: Optional[int] = None) -> Optional[BrewRecord]:
    """Move a brew into fermentation, recording its original gravity.

    Returns the updated record, or None if the brew no longer exists.
    Raises ValueError unless the brew is still brewing.
    """
    record = get(brew_id)
    if record is None:
        return None
    _check_transition(record, "fermenting")

    now_iso = clock.to_iso()
    target = target_days or record.target_fermentation_days
    measured_abv = (calculate_abv(og, record.final_gravity)
                    if record.final_gravity is not None else record.measured_abv)
    fermentation_temp = temperature if temperature is not None else record.fermentation_temp

    conn = get_connection()
    try:
        conn.execute(
            """UPDATE brews SET status=?, fermentation_start=?, original_gravity=?,
               measured_abv=?, fermentation_temp=?, target_fermentation_days=?, updated_at=?
               WHERE id=?""",
            ("fermenting", now_iso, og, measured_abv, fermentation_temp, target, now_iso, brew_id),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Brew %s started fermentation (OG %.3f)", brew_id, og)

    notifications.schedule_brew_notification(brew_id, "fermentation", _after_days(target))
    return get(brew_id)


@serialized
def start_conditioning(brew_id: str, fg: float, target_days: Optional[int] = None) -> Optional[BrewRecord]:
    """Move a brew into conditioning, recording its final gravity.

    Freezes actual_fermentation_days and computes measured ABV when the OG
    is known. Raises ValueError unless the brew is brewing or fermenting.
    """
    record = get(brew_id)
    if record is None:
        return None
    _check_transition(record, "conditioning")

    now_iso = clock.to_iso()
    target = target_days or record.target_conditioning_days
    measured_abv = (calculate_abv(record.original_gravity, fg)
                    if record.original_gravity is not None else None)
    fermentation_days = (days_between(record.fermentation_start, now_iso)
                         if record.fermentation_start else None)

    conn = get_connection()
    try:
        conn.execute(
            """UPDATE brews SET status=?, conditioning_start=?, final_gravity=?, measured_abv=?,
               fermentation_days=?, target_conditioning_days=?, updated_at=?
               WHERE id=?""",
            ("conditioning", now_iso, fg, measured_abv, fermentation_days, target, now_iso, brew_id),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Brew %s started conditioning after %s days", brew_id, fermentation_days)

    notifications.cancel_brew_notifications(brew_id)
    notifications.schedule_brew_notification(brew_id, "conditioning", _after_days(target))
    return get(brew_id)


@serialized
def complete_brew(brew_id: str) -> Optional[BrewRecord]:
    """Mark a brew as packaged, freezing actual_conditioning_days."""
    record = get(brew_id)
    if record is None:
        return None
    _check_transition(record, "completed")

    now_iso = clock.to_iso()
    conditioning_days = (days_between(record.conditioning_start, now_iso)
                         if record.conditioning_start else None)
    measured_abv = record.measured_abv
    if record.original_gravity is not None and record.final_gravity is not None:
        measured_abv = calculate_abv(record.original_gravity, record.final_gravity)

    conn = get_connection()
    try:
        conn.execute(
            """UPDATE brews SET status=?, packaging_date=?, conditioning_days=?,
               measured_abv=?, updated_at=?
               WHERE id=?""",
            ("completed", now_iso, conditioning_days, measured_abv, now_iso, brew_id),
        )
        conn.commit()
    finally:
        conn.close()
    logger.info("Brew %s completed", brew_id)

    notifications.cancel_brew_notifications(brew_id)
    return get(brew_id)


@serialized
def archive_brew(brew_id: str) -> Optional[BrewRecord]:
    """Move a completed brew to the archive."""
    record = get(brew_id)
    if record is None:
        return None
    _check_transition(record, "archived")
    conn = get_connection()
    try:
        conn.execute(
            "UPDATE brews SET status=?, updated_at=? WHERE id=?",
            ("archived", clock.to_iso(), brew_id),
        )
        conn.commit()
    finally:
        conn.close()
    return get(brew_id)


@serialized
def add_measurement(brew_id: str, measurement_type: str, value: float,
                    unit: Optional[str] = None, note: Optional[str] = None) -> Optional[BrewRecord]:
    """Append a reading to the brew's measurement log."""
    record = get(brew_id)
    if record is None:
        return None
    now_iso = clock.to_iso()
    record.measurements.append(Measurement(
        id=f"measurement_{uuid.uuid4().hex[:12]}",
        type=measurement_type,
        value=value,
        unit=unit,
        timestamp=now_iso,
        notes=note,
    ))
    conn = get_connection()
    try:
        conn.execute(
            "UPDATE brews SET measurements=?, updated_at=? WHERE id=?",
            (_to_json(record.measurements), now_iso, brew_id),
        )
        conn.commit()
    finally:
        conn.close()
    return get(brew_id)


@serialized
def add_quick_note(brew_id: str, text: str) -> Optional[BrewRecord]:
    """Append a timestamped quick note."""
    record = get(brew_id)
    if record is None:
        return None
    now_iso = clock.to_iso()
    record.quick_notes.append(
        QuickNote(id=f"note_{uuid.uuid4().hex[:12]}", timestamp=now_iso, text=text)
    )
    conn = get_connection()
    try:
        conn.execute(
            "UPDATE brews SET quick_notes=?, updated_at=? WHERE id=?",
            (_to_json(record.quick_notes), now_iso, brew_id),
        )
        conn.commit()
    finally:
        conn.close()
    return get(brew_id)


def delete_brew(brew_id: str) -> None:
    """Delete a brew by ID and cancel any reminders still pending for it."""
    conn = get_connection()
    try:
        conn.execute("DELETE FROM brews WHERE id = ?", (brew_id,))
        conn.commit()
    finally:
        conn.close()
    notifications.cancel_brew_notifications(brew_id)
