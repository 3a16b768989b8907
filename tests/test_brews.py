import sqlite3

import pytest

from brewmaestro.config import set_setting
from brewmaestro.core import brews, notifications, progress


@pytest.fixture
def brew(db, frozen_clock):
    return brews.start_new_brew("Wheat Beer", recipe_id="r1", batch_size=20)


def test_start_new_brew_defaults(brew):
    stored = brews.get(brew.id)
    assert stored.status == "brewing"
    assert stored.recipe_name == "Wheat Beer"
    assert stored.batch_size == 20
    assert stored.target_fermentation_days == 14
    assert stored.target_conditioning_days == 14
    assert stored.quick_notes == []
    assert stored.measurements == []
    assert progress.get_brew_progress(stored) == 5


def test_start_new_brew_uses_default_days_setting(db, frozen_clock):
    set_setting("default_fermentation_days", "10")
    record = brews.start_new_brew("Lager", target_conditioning_days=30)
    assert record.target_fermentation_days == 10
    assert record.target_conditioning_days == 30


def test_full_lifecycle(brew, frozen_clock):
    fermenting = brews.start_fermentation(brew.id, 1.050, temperature=19)
    assert fermenting.status == "fermenting"
    assert fermenting.fermentation_start is not None
    assert fermenting.original_gravity == 1.050
    assert fermenting.fermentation_temp == 19
    assert fermenting.actual_fermentation_days is None

    frozen_clock.advance(days=12, hours=5)
    conditioning = brews.start_conditioning(brew.id, 1.010)
    assert conditioning.status == "conditioning"
    assert conditioning.actual_fermentation_days == 12
    assert conditioning.final_gravity == 1.010
    assert conditioning.measured_abv == pytest.approx(5.25, abs=0.06)
    assert progress.get_brew_progress(conditioning) == 55

    frozen_clock.advance(days=21)
    done = brews.complete_brew(brew.id)
    assert done.status == "completed"
    assert done.packaging_date is not None
    assert done.actual_conditioning_days == 21
    assert done.actual_fermentation_days == 12
    assert progress.get_brew_progress(done) == 100

    archived = brews.archive_brew(brew.id)
    assert archived.status == "archived"
    assert [b.id for b in brews.get_archived()] == [brew.id]
    assert brews.get_active() == []


def test_fermentation_days_stay_frozen(brew, frozen_clock):
    brews.start_fermentation(brew.id, 1.050)
    frozen_clock.advance(days=9)
    brews.start_conditioning(brew.id, 1.012)
    for _ in range(3):
        frozen_clock.advance(days=30)
        assert brews.get(brew.id).actual_fermentation_days == 9


def test_status_never_moves_backwards(brew):
    brews.start_fermentation(brew.id, 1.050)
    with pytest.raises(ValueError):
        brews.start_fermentation(brew.id, 1.050)
    brews.start_conditioning(brew.id, 1.010)
    with pytest.raises(ValueError):
        brews.start_fermentation(brew.id, 1.050)
    assert brews.get(brew.id).status == "conditioning"


def test_archived_brew_cannot_be_completed(brew):
    brews.archive_brew(brew.id)
    with pytest.raises(ValueError):
        brews.complete_brew(brew.id)


def test_transitions_on_missing_brew_are_noops(db):
    assert brews.start_fermentation("missing", 1.050) is None
    assert brews.start_conditioning("missing", 1.010) is None
    assert brews.complete_brew("missing") is None
    assert brews.add_quick_note("missing", "hello") is None


def test_transitions_schedule_reminders(brew, frozen_clock):
    brews.start_fermentation(brew.id, 1.050, target_days=10)
    pending = notifications.get_pending()
    assert [n["kind"] for n in pending] == ["fermentation"]
    expected_ms = int(frozen_clock.current.timestamp() * 1000) + 10 * 24 * 60 * 60 * 1000
    assert pending[0]["fire_at"] == expected_ms

    brews.start_conditioning(brew.id, 1.010)
    assert [n["kind"] for n in notifications.get_pending()] == ["conditioning"]

    brews.complete_brew(brew.id)
    assert notifications.get_pending() == []


def test_reminder_failure_does_not_block_transition(brew, monkeypatch):
    def broken():
        raise RuntimeError("permission denied")

    monkeypatch.setattr(notifications, "notifications_enabled", broken)
    assert brews.start_fermentation(brew.id, 1.050).status == "fermenting"


def test_write_failure_leaves_record_unchanged(brew, monkeypatch):
    real_get_connection = brews.get_connection

    class FailingConnection:
        def __init__(self):
            self._conn = real_get_connection()

        def execute(self, sql, params=()):
            if sql.lstrip().upper().startswith("UPDATE"):
                raise sqlite3.OperationalError("disk I/O error")
            return self._conn.execute(sql, params)

        def commit(self):
            self._conn.commit()

        def close(self):
            self._conn.close()

    monkeypatch.setattr(brews, "get_connection", FailingConnection)
    with pytest.raises(sqlite3.OperationalError):
        brews.start_fermentation(brew.id, 1.050)
    monkeypatch.undo()
    assert brews.get(brew.id).status == "brewing"
    assert brews.get(brew.id).fermentation_start is None


def test_quick_notes_and_measurements(brew):
    brews.add_quick_note(brew.id, "Airlock active")
    brews.add_measurement(brew.id, "gravity", 1.020, unit="SG", note="day 4")
    stored = brews.get(brew.id)
    assert [n.text for n in stored.quick_notes] == ["Airlock active"]
    assert stored.measurements[0].type == "gravity"
    assert stored.measurements[0].value == 1.020
    assert stored.measurements[0].notes == "day 4"


def test_get_all_orders_by_brew_date_desc(db, frozen_clock):
    first = brews.start_new_brew("Stout")
    frozen_clock.advance(days=1)
    second = brews.start_new_brew("Saison")
    assert [b.id for b in brews.get_all()] == [second.id, first.id]


def test_delete_brew_cancels_reminders(brew):
    brews.start_fermentation(brew.id, 1.050)
    assert notifications.get_pending()
    brews.delete_brew(brew.id)
    assert brews.get(brew.id) is None
    assert notifications.get_pending() == []


def test_bad_json_columns_fall_back_to_empty(brew):
    conn = brews.get_connection()
    try:
        conn.execute("UPDATE brews SET quick_notes = ? WHERE id = ?", ("{not json", brew.id))
        conn.commit()
    finally:
        conn.close()
    assert brews.get(brew.id).quick_notes == []
