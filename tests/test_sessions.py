import sqlite3

import pytest

from brewmaestro.core import brews, notifications, sessions, step_timer, task_templates


@pytest.fixture
def session(recipe, frozen_clock):
    return sessions.start_session(recipe.id)


def test_start_session_builds_default_steps(session):
    assert session.status == "brewing"
    assert session.current_step_index == 0
    assert session.current_step_target_ts is None
    assert len(session.steps) == 10
    assert [s.id for s in session.steps] == [str(i) for i in range(1, 11)]
    assert session.steps[5].name == "Boil - Bittering Hops"
    assert session.steps[5].duration == 45


def test_start_session_is_persisted_and_active(session):
    assert sessions.get(session.id) == session
    assert sessions.get_active().id == session.id


def test_start_session_unknown_recipe(db):
    with pytest.raises(ValueError, match="Recipe not found"):
        sessions.start_session("nope")
    assert sessions.get_all() == []


def test_start_session_rejects_second_active(session, recipe):
    with pytest.raises(ValueError, match="already in progress"):
        sessions.start_session(recipe.id)


def test_start_session_write_failure_leaves_nothing_active(recipe, monkeypatch):
    def broken_save(key, value):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(sessions.storage, "save", broken_save)
    with pytest.raises(sqlite3.OperationalError):
        sessions.start_session(recipe.id)
    monkeypatch.undo()
    assert sessions.get_active() is None


def test_update_session_merges_fields(session):
    updated = sessions.update_session(session.id, {"efficiency": 72.5})
    assert updated.efficiency == 72.5
    assert sessions.get(session.id).efficiency == 72.5
    assert sessions.get(session.id).recipe_name == session.recipe_name


def test_update_session_missing_is_noop(db):
    assert sessions.update_session("missing", {"efficiency": 1}) is None


def test_update_session_rejects_backwards_status(session):
    sessions.update_session(session.id, {"status": "fermenting"})
    with pytest.raises(ValueError):
        sessions.update_session(session.id, {"status": "brewing"})
    assert sessions.get(session.id).status == "fermenting"


def test_go_to_step_clamps_index(session):
    assert sessions.go_to_step(session.id, 99).current_step_index == 9
    assert sessions.go_to_step(session.id, -5).current_step_index == 0


def test_go_to_step_stops_running_timer(session):
    step_timer.start_step_timer(session.id, 600)
    moved = sessions.go_to_step(session.id, 3)
    assert moved.current_step_index == 3
    assert moved.current_step_target_ts is None
    assert moved.current_step_notification_id is None
    assert notifications.get_pending() == []
    assert sessions.planned_seconds(moved) == 10 * 60


def test_go_to_same_step_still_stops_timer(session):
    step_timer.start_step_timer(session.id, 600)
    stayed = sessions.go_to_step(session.id, 0)
    assert stayed.current_step_index == 0
    assert stayed.current_step_target_ts is None


def test_next_and_previous_step(session):
    assert sessions.next_step(session.id).current_step_index == 1
    assert sessions.next_step(session.id).current_step_index == 2
    assert sessions.previous_step(session.id).current_step_index == 1


def test_next_step_on_last_step_completes_session(session):
    sessions.go_to_step(session.id, 9)
    finished = sessions.next_step(session.id)
    assert finished.status == "completed"
    assert finished.current_step_index == 9
    assert sessions.get_active() is None
    assert len(brews.get_all()) == 1


def test_complete_step_marks_done_and_advances(session):
    updated = sessions.complete_step(session.id, "1")
    assert updated.steps[0].completed
    assert updated.steps[0].completed_at is not None
    assert updated.current_step_index == 1


def test_complete_session_hands_off_notes(session):
    sessions.add_note(session.id, "Mash pH 5.3")
    sessions.add_note(session.id, "Boil over at 20 min")
    record, message = sessions.complete_session(session.id)

    assert record.recipe_name == "American IPA"
    assert record.recipe_id == session.recipe_id
    assert record.status == "brewing"
    assert [n.text for n in record.quick_notes] == sessions.get(session.id).notes
    assert "fermentation" in message

    done = sessions.get(session.id)
    assert done.status == "completed"
    assert done.completed_at is not None


def test_complete_session_without_hand_off(session):
    record, message = sessions.complete_session(session.id, hand_off=False)
    assert record is None
    assert message
    assert brews.get_all() == []
    assert sessions.get_active() is None


def test_complete_session_hand_off_failure_keeps_session_closed(session, monkeypatch):
    def broken(_session):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(brews, "create_from_session", broken)
    record, message = sessions.complete_session(session.id)
    assert record is None
    assert "could not" in message
    assert sessions.get(session.id).status == "completed"
    assert sessions.get_active() is None


def test_complete_session_clears_timer(session):
    step_timer.start_step_timer(session.id, 600)
    sessions.complete_session(session.id, hand_off=False)
    done = sessions.get(session.id)
    assert done.current_step_target_ts is None
    assert notifications.get_pending() == []


def test_complete_session_twice_is_noop(session):
    sessions.complete_session(session.id)
    assert sessions.complete_session(session.id) is None
    assert len(brews.get_all()) == 1


def test_add_note_is_append_only_and_prefixed(session):
    sessions.add_note(session.id, "first")
    sessions.add_note(session.id, "second")
    notes = sessions.get(session.id).notes
    assert len(notes) == 2
    assert notes[0].endswith(": first")
    assert notes[1].endswith(": second")
    assert notes[0][:2].isdigit()


def test_add_note_missing_session(db):
    assert sessions.add_note("missing", "hello") is None


def test_add_measurement_updates_gravity_and_abv(session):
    sessions.add_measurement(session.id, "og", 1.060, "SG")
    updated = sessions.add_measurement(session.id, "fg", 1.010, "SG")
    assert updated.actual_og == 1.060
    assert updated.actual_fg == 1.010
    assert updated.actual_abv == pytest.approx(6.56, abs=0.01)
    assert [m.type for m in updated.measurements] == ["og", "fg"]


def test_add_step_task_updates_current_step_and_template(session):
    sessions.go_to_step(session.id, 2)
    task = sessions.add_step_task(session.id, "Check mash temp")
    step = sessions.current_step(sessions.get(session.id))
    assert step.id == "3"
    assert [t.text for t in step.tasks] == ["Check mash temp"]
    assert step.tasks[0].id == task.id
    assert task_templates.get_for_step("3") == ["Check mash temp"]
    # Other steps are untouched.
    assert sessions.get(session.id).steps[0].tasks == []


def test_toggle_step_task(session):
    task = sessions.add_step_task(session.id, "Sanitize fermenter")
    assert sessions.toggle_step_task(session.id, task.id).completed is True
    assert sessions.toggle_step_task(session.id, task.id).completed is False
    assert sessions.toggle_step_task(session.id, "missing") is None


def test_remove_step_task_removes_from_template(session):
    task = sessions.add_step_task(session.id, "Weigh grain")
    sessions.toggle_step_task(session.id, task.id)
    sessions.remove_step_task(session.id, task.id)
    assert sessions.current_step(sessions.get(session.id)).tasks == []
    assert task_templates.get_for_step("1") == []


def test_template_failure_does_not_block_task(session, monkeypatch):
    def broken(step_id, text):
        raise sqlite3.OperationalError("readonly database")

    monkeypatch.setattr(task_templates, "add_task", broken)
    task = sessions.add_step_task(session.id, "Grind grain")
    assert task is not None
    assert [t.text for t in sessions.current_step(sessions.get(session.id)).tasks] == ["Grind grain"]


def test_task_template_prepopulates_new_session(session, recipe):
    sessions.go_to_step(session.id, 2)
    sessions.add_step_task(session.id, "Stir in grain slowly")
    sessions.complete_session(session.id, hand_off=False)

    fresh = sessions.start_session(recipe.id)
    mash_in = next(s for s in fresh.steps if s.id == "3")
    assert [t.text for t in mash_in.tasks] == ["Stir in grain slowly"]
    assert mash_in.tasks[0].completed is False


def test_task_templates_do_not_duplicate(db):
    task_templates.add_task("3", "Stir")
    task_templates.add_task("3", "Stir")
    assert task_templates.get_for_step("3") == ["Stir"]
    task_templates.remove_task("3", "Stir")
    assert task_templates.get_all() == {}
