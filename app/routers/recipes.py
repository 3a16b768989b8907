from pathlib import Path

from fastapi import APIRouter, Request, Form
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from brewmaestro.core import recipes as recipes_core
from brewmaestro.db.models import Recipe

router = APIRouter(prefix="/recipes", tags=["recipes"])
templates = Jinja2Templates(directory=Path(__file__).parent.parent / "templates")


@router.get("", response_class=HTMLResponse)
def recipes_page(request: Request):
    return templates.TemplateResponse(request, "recipes.html", {
        "active_tab": "recipes",
        "recipes": recipes_core.get_all(),
    })


@router.post("/add")
def recipes_add(
    name: str = Form(...),
    style: str = Form(""),
    boil_time: int = Form(60),
    batch_size: str = Form(""),
):
    try:
        size = float(batch_size) if batch_size else None
    except ValueError:
        size = None
    recipes_core.add(Recipe(
        id=None,
        name=name.strip(),
        style=style or None,
        boil_time=boil_time,
        batch_size=size,
    ))
    return RedirectResponse(url="/recipes", status_code=303)
