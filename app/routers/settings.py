from pathlib import Path

from fastapi import APIRouter, Request, Form
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from brewmaestro.config import (
    default_conditioning_days,
    default_fermentation_days,
    notifications_enabled,
    set_setting,
)

router = APIRouter(prefix="/settings", tags=["settings"])
templates = Jinja2Templates(directory=Path(__file__).parent.parent / "templates")


@router.get("", response_class=HTMLResponse)
def settings_page(request: Request, saved: str = ""):
    return templates.TemplateResponse(request, "settings.html", {
        "active_tab": "settings",
        "notifications_enabled": notifications_enabled(),
        "fermentation_days": default_fermentation_days(),
        "conditioning_days": default_conditioning_days(),
        "flash_message": "Settings saved." if saved else None,
        "flash_type": "success",
    })


@router.post("")
def settings_save(
    notifications: str = Form(""),
    fermentation_days: str = Form(""),
    conditioning_days: str = Form(""),
):
    set_setting("notifications_enabled", "1" if notifications else "0")
    for key, value in (
        ("default_fermentation_days", fermentation_days),
        ("default_conditioning_days", conditioning_days),
    ):
        if value.strip().isdigit() and int(value) > 0:
            set_setting(key, value.strip())
    return RedirectResponse(url="/settings?saved=1", status_code=303)
