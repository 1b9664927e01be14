"""
Everything Is An Ordeal: View Renderer
=========================================

What:  Renders the HTML pages from Jinja2 templates.
How:   One function per page; each takes the data the route assembled and
       returns a TemplateResponse. Templates live in eiao/templates/.

Pages:
    home.html           total hits across all ordeals
    create_ordeal.html  prompt to create an ordeal at a free key
    ordeal.html         image + hit counter (stored hits + 1)
    leaderboard.html    top ordeals by hits
    manage.html         every ordeal, with delete buttons
"""

from pathlib import Path
from typing import List
from urllib.parse import quote

from fastapi import Request
from fastapi.templating import Jinja2Templates
from starlette.responses import Response

from eiao.schemas.ordeal import OrdealRecord

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
SITE_TITLE = "Everything is an Ordeal"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


def image_url(image_name: str) -> str:
    """Public URL of a processed image."""
    return f"/uploads/{quote(image_name)}"


templates.env.globals["image_url"] = image_url
templates.env.globals["site_title"] = SITE_TITLE


def render_home(request: Request, total_hits: int) -> Response:
    return templates.TemplateResponse(
        request,
        "home.html",
        {"title": SITE_TITLE, "total_hits": total_hits},
    )


def render_create_prompt(request: Request, key: str) -> Response:
    return templates.TemplateResponse(
        request,
        "create_ordeal.html",
        {"title": "Create a new ordeal", "path": key},
    )


def render_ordeal(request: Request, record: OrdealRecord) -> Response:
    """
    Display page for a stored ordeal.

    The count shown includes the view being served: the increment that makes
    the stored value match is applied after the response.
    """
    return templates.TemplateResponse(
        request,
        "ordeal.html",
        {
            "title": f"{record.path} - {SITE_TITLE}",
            "path": record.path,
            "image": image_url(record.image_name),
            "hits": record.hits + 1,
        },
    )


def render_leaderboard(request: Request, ordeals: List[OrdealRecord]) -> Response:
    return templates.TemplateResponse(
        request,
        "leaderboard.html",
        {"title": f"Leaderboard - {SITE_TITLE}", "data": ordeals},
    )


def render_manage(request: Request, ordeals: List[OrdealRecord]) -> Response:
    return templates.TemplateResponse(
        request,
        "manage.html",
        {"title": f"Manage - {SITE_TITLE}", "data": ordeals},
    )
