from pathlib import Path

from fastapi import APIRouter, HTTPException, Request, Form
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from brewmaestro.core import brews as brews_core
from brewmaestro.core import progress
from brewmaestro.db.models import MEASUREMENT_TYPES

router = APIRouter(prefix="/brews", tags=["brews"])
templates = Jinja2Templates(directory=Path(__file__).parent.parent / "templates")


def _parse_number(value: str, label: str):
    """Parse an optional numeric form field; reject non-numeric input with 400."""
    if not value or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{label} must be a number")


def _parse_days(value: str):
    days = _parse_number(value, "Target days")
    return int(days) if days else None


def _brew_view(record) -> dict:
    completion = progress.get_estimated_completion_date(record)
    return {
        "record": record,
        "day": progress.get_fermentation_day(record),
        "progress": round(progress.get_brew_progress(record), 1),
        "estimated_completion": completion.date().isoformat() if completion else None,
    }


def _rows_ctx(**kwargs) -> dict:
    return {
        "active": [_brew_view(b) for b in brews_core.get_active()],
        "archived": [_brew_view(b) for b in brews_core.get_archived()],
        "measurement_types": MEASUREMENT_TYPES,
        **kwargs,
    }


def _rows(request: Request):
    return templates.TemplateResponse(request, "partials/brew_rows.html", _rows_ctx())


def _transition(request: Request, func, brew_id: str, *args):
    try:
        record = func(brew_id, *args)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if record is None:
        raise HTTPException(status_code=404, detail="Brew not found")
    return _rows(request)


@router.get("", response_class=HTMLResponse)
def brews_page(request: Request, message: str = ""):
    return templates.TemplateResponse(request, "brews.html", _rows_ctx(
        active_tab="brews",
        flash_message=message or None,
        flash_type="success",
    ))


@router.get("/rows", response_class=HTMLResponse)
def brews_rows(request: Request):
    return _rows(request)


@router.post("/new", response_class=HTMLResponse)
def brews_new(
    request: Request,
    recipe_name: str = Form(...),
    batch_size: str = Form(""),
    target_fermentation_days: str = Form(""),
    target_conditioning_days: str = Form(""),
    fermentation_temp: str = Form(""),
    notes: str = Form(""),
):
    brews_core.start_new_brew(
        recipe_name=recipe_name.strip(),
        batch_size=_parse_number(batch_size, "Batch size"),
        target_fermentation_days=_parse_days(target_fermentation_days),
        target_conditioning_days=_parse_days(target_conditioning_days),
        fermentation_temp=_parse_number(fermentation_temp, "Fermentation temperature"),
        notes=notes or None,
    )
    return _rows(request)


@router.post("/{brew_id}/ferment", response_class=HTMLResponse)
def brews_ferment(
    request: Request,
    brew_id: str,
    og: str = Form(...),
    temperature: str = Form(""),
    target_days: str = Form(""),
):
    gravity = _parse_number(og, "Original gravity")
    if gravity is None:
        raise HTTPException(status_code=400, detail="Original gravity is required")
    return _transition(
        request, brews_core.start_fermentation, brew_id,
        gravity, _parse_number(temperature, "Temperature"), _parse_days(target_days),
    )


@router.post("/{brew_id}/condition", response_class=HTMLResponse)
def brews_condition(request: Request, brew_id: str, fg: str = Form(...), target_days: str = Form("")):
    gravity = _parse_number(fg, "Final gravity")
    if gravity is None:
        raise HTTPException(status_code=400, detail="Final gravity is required")
    return _transition(request, brews_core.start_conditioning, brew_id, gravity, _parse_days(target_days))


@router.post("/{brew_id}/complete", response_class=HTMLResponse)
def brews_complete(request: Request, brew_id: str):
    return _transition(request, brews_core.complete_brew, brew_id)


@router.post("/{brew_id}/archive", response_class=HTMLResponse)
def brews_archive(request: Request, brew_id: str):
    return _transition(request, brews_core.archive_brew, brew_id)


@router.post("/{brew_id}/notes", response_class=HTMLResponse)
def brews_add_note(request: Request, brew_id: str, text: str = Form("")):
    if text.strip():
        brews_core.add_quick_note(brew_id, text.strip())
    return _rows(request)


@router.post("/{brew_id}/measurements", response_class=HTMLResponse)
def brews_add_measurement(
    request: Request,
    brew_id: str,
    measurement_type: str = Form(..., alias="type"),
    value: str = Form(...),
    unit: str = Form(""),
    note: str = Form(""),
):
    if measurement_type not in MEASUREMENT_TYPES:
        raise HTTPException(status_code=400, detail="Unknown measurement type")
    number = _parse_number(value, "Measurement value")
    if number is None:
        raise HTTPException(status_code=400, detail="Measurement value is required")
    brews_core.add_measurement(brew_id, measurement_type, number, unit or None, note or None)
    return _rows(request)


@router.delete("/{brew_id}", response_class=HTMLResponse)
def brews_delete(brew_id: str):
    brews_core.delete_brew(brew_id)
    return HTMLResponse("")
