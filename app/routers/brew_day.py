from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, HTTPException, Request, Form
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from brewmaestro.core import recipes as recipes_core
from brewmaestro.core import sessions as sessions_core
from brewmaestro.core import step_timer
from brewmaestro.db.models import MEASUREMENT_TYPES

router = APIRouter(prefix="/brew-day", tags=["brew-day"])
templates = Jinja2Templates(directory=Path(__file__).parent.parent / "templates")


def _get_or_404(session_id: str):
    session = sessions_core.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Brew session not found")
    return session


def _parse_paused(value: str) -> Optional[int]:
    """Read the paused_remaining field the panel echoes back while a timer is paused."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _panel_ctx(session, paused_remaining: Optional[int] = None) -> dict:
    reading = step_timer.observe(session.id)
    if reading.step_completed:
        session = sessions_core.get(session.id)
    if reading.running:
        remaining = reading.remaining
    elif paused_remaining is not None and 0 < paused_remaining <= sessions_core.planned_seconds(session):
        remaining = paused_remaining
    else:
        remaining = sessions_core.planned_seconds(session)
    return {
        "session": session,
        "step": sessions_core.current_step(session),
        "reading": reading,
        "remaining": remaining,
        "is_last_step": sessions_core.is_last_step(session),
        "measurement_types": MEASUREMENT_TYPES,
    }


def _panel(request: Request, session_id: str, paused_remaining: Optional[int] = None):
    session = _get_or_404(session_id)
    return templates.TemplateResponse(
        request, "partials/brew_day_panel.html", _panel_ctx(session, paused_remaining)
    )


def _completed_redirect(message: str) -> RedirectResponse:
    resp = RedirectResponse(url=f"/brews?message={quote(message)}", status_code=303)
    resp.headers["HX-Redirect"] = "/brews"
    return resp


@router.get("", response_class=HTMLResponse)
def brew_day_page(request: Request):
    session = sessions_core.get_active()
    ctx = {
        "active_tab": "brew-day",
        "recipes": recipes_core.get_all(),
        "session": session,
    }
    if session is not None:
        ctx.update(_panel_ctx(session))
    return templates.TemplateResponse(request, "brew_day.html", ctx)


@router.post("/start")
def brew_day_start(recipe_id: str = Form(...)):
    try:
        sessions_core.start_session(recipe_id)
    except ValueError as e:
        status = 404 if "not found" in str(e) else 409
        raise HTTPException(status_code=status, detail=str(e))
    return RedirectResponse(url="/brew-day", status_code=303)


@router.post("/{session_id}/step", response_class=HTMLResponse)
def brew_day_go_to_step(request: Request, session_id: str, index: int = Form(...)):
    _get_or_404(session_id)
    sessions_core.go_to_step(session_id, index)
    return _panel(request, session_id)


@router.post("/{session_id}/next", response_class=HTMLResponse)
def brew_day_next(request: Request, session_id: str):
    _get_or_404(session_id)
    session = sessions_core.next_step(session_id)
    if session.status == "completed":
        return _completed_redirect(f"{session.recipe_name} brew day finished.")
    return _panel(request, session_id)


@router.post("/{session_id}/previous", response_class=HTMLResponse)
def brew_day_previous(request: Request, session_id: str):
    _get_or_404(session_id)
    sessions_core.previous_step(session_id)
    return _panel(request, session_id)


@router.post("/{session_id}/steps/{step_id}/complete", response_class=HTMLResponse)
def brew_day_complete_step(request: Request, session_id: str, step_id: str):
    _get_or_404(session_id)
    sessions_core.complete_step(session_id, step_id)
    return _panel(request, session_id)


# --- timer -----------------------------------------------------------------

@router.post("/{session_id}/timer/start", response_class=HTMLResponse)
def brew_day_timer_start(request: Request, session_id: str, seconds: str = Form("")):
    session = _get_or_404(session_id)
    try:
        remaining = int(seconds) if seconds else sessions_core.planned_seconds(session)
    except ValueError:
        raise HTTPException(status_code=400, detail="seconds must be a whole number")
    step_timer.start_step_timer(session_id, remaining)
    return _panel(request, session_id)


@router.post("/{session_id}/timer/pause", response_class=HTMLResponse)
def brew_day_timer_pause(request: Request, session_id: str):
    _get_or_404(session_id)
    remaining = step_timer.get_remaining_time(session_id)
    step_timer.pause_step_timer(session_id)
    return _panel(request, session_id, paused_remaining=remaining)


@router.post("/{session_id}/timer/resume", response_class=HTMLResponse)
def brew_day_timer_resume(request: Request, session_id: str, seconds: int = Form(...)):
    _get_or_404(session_id)
    step_timer.resume_step_timer(session_id, seconds)
    return _panel(request, session_id)


@router.get("/{session_id}/timer", response_class=HTMLResponse)
def brew_day_timer_tick(request: Request, session_id: str):
    session = _get_or_404(session_id)
    ctx = _panel_ctx(session)
    if ctx["reading"].step_completed:
        # Re-render the whole panel so the finished step shows as done.
        resp = templates.TemplateResponse(request, "partials/brew_day_panel.html", ctx)
        resp.headers["HX-Retarget"] = "#brew-day-panel"
        return resp
    return templates.TemplateResponse(request, "partials/step_timer.html", ctx)


# --- checklist, notes, measurements ----------------------------------------
# These re-render the panel in place, so a paused countdown is echoed back
# through the paused_remaining field and shown again.

@router.post("/{session_id}/tasks", response_class=HTMLResponse)
def brew_day_add_task(
    request: Request,
    session_id: str,
    text: str = Form(""),
    paused_remaining: str = Form(""),
):
    _get_or_404(session_id)
    if text.strip():
        sessions_core.add_step_task(session_id, text.strip())
    return _panel(request, session_id, _parse_paused(paused_remaining))


@router.post("/{session_id}/tasks/{task_id}/toggle", response_class=HTMLResponse)
def brew_day_toggle_task(
    request: Request, session_id: str, task_id: str, paused_remaining: str = Form("")
):
    _get_or_404(session_id)
    sessions_core.toggle_step_task(session_id, task_id)
    return _panel(request, session_id, _parse_paused(paused_remaining))


@router.delete("/{session_id}/tasks/{task_id}", response_class=HTMLResponse)
def brew_day_remove_task(
    request: Request, session_id: str, task_id: str, paused_remaining: str = Form("")
):
    _get_or_404(session_id)
    sessions_core.remove_step_task(session_id, task_id)
    return _panel(request, session_id, _parse_paused(paused_remaining))


@router.post("/{session_id}/notes", response_class=HTMLResponse)
def brew_day_add_note(
    request: Request,
    session_id: str,
    text: str = Form(""),
    paused_remaining: str = Form(""),
):
    _get_or_404(session_id)
    if text.strip():
        sessions_core.add_note(session_id, text.strip())
    return _panel(request, session_id, _parse_paused(paused_remaining))


@router.post("/{session_id}/measurements", response_class=HTMLResponse)
def brew_day_add_measurement(
    request: Request,
    session_id: str,
    measurement_type: str = Form(..., alias="type"),
    value: str = Form(...),
    unit: str = Form(""),
    paused_remaining: str = Form(""),
):
    _get_or_404(session_id)
    if measurement_type not in MEASUREMENT_TYPES:
        raise HTTPException(status_code=400, detail="Unknown measurement type")
    try:
        number = float(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Measurement value must be a number")
    sessions_core.add_measurement(session_id, measurement_type, number, unit or None)
    return _panel(request, session_id, _parse_paused(paused_remaining))


@router.post("/{session_id}/complete")
def brew_day_complete(session_id: str, hand_off: str = Form("")):
    # An unticked checkbox is left out of the form, so a missing field means no hand-off.
    _get_or_404(session_id)
    result = sessions_core.complete_session(session_id, hand_off=hand_off == "1")
    if result is None:
        return RedirectResponse(url="/brew-day", status_code=303)
    _, message = result
    return _completed_redirect(message)
