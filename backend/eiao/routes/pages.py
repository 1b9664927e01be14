"""
Everything Is An Ordeal: HTML Page Routes
============================================

What:  The browser-facing pages.
How:   Each handler asks OrdealService for its data and hands it to a
       renderer in eiao.views.

Routes:
    GET /              homepage, total hits
    GET /leaderboard   top ordeals by hits
    GET /manage        every ordeal with delete buttons
    GET /{ordeal}      show the ordeal, or prompt to create it

Precedence:
    `router` holds the literal pages; `catch_all_router` holds the ordeal
    route and must be included after every other route and static mount
    (see create_app). A request for /leaderboard therefore always reaches the
    leaderboard, never an ordeal called "leaderboard".
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from eiao import views
from eiao.dependencies import get_ordeal_service
from eiao.services.ordeal_service import OrdealService
from eiao.services.path_normalizer import normalize_path

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pages"], default_response_class=HTMLResponse)
catch_all_router = APIRouter(tags=["Pages"], default_response_class=HTMLResponse)


@router.get("/", summary="Homepage with the total hits of all ordeals")
async def home(
    request: Request,
    service: OrdealService = Depends(get_ordeal_service),
):
    total_hits = await service.total_hits()
    return views.render_home(request, total_hits)


@router.get("/leaderboard", summary="Top ordeals by hits")
async def leaderboard(
    request: Request,
    service: OrdealService = Depends(get_ordeal_service),
):
    ordeals = await service.leaderboard()
    return views.render_leaderboard(request, ordeals)


@router.get("/manage", summary="Every ordeal, with delete buttons")
async def manage(
    request: Request,
    service: OrdealService = Depends(get_ordeal_service),
):
    ordeals = await service.list_all()
    return views.render_manage(request, ordeals)


@catch_all_router.get("/{ordeal:path}", summary="Show an ordeal or prompt to create it")
async def show_or_prompt(
    ordeal: str,
    request: Request,
    service: OrdealService = Depends(get_ordeal_service),
):
    """
    Display the ordeal at the requested path.

    A miss renders the create prompt for the normalized key. A hit renders
    the ordeal with the stored hits + 1; the stored counter is incremented
    in the background after the lookup.
    """
    record = await service.view_ordeal(ordeal)
    if record is None:
        return views.render_create_prompt(request, normalize_path(ordeal))
    return views.render_ordeal(request, record)
