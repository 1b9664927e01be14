"""
FastAPI dependencies resolving the services the application factory built.

create_app() stores them on app.state; routes receive them through Depends()
so tests can build an app around an in-memory store.
"""

from fastapi import Request

from eiao.services.hit_counter import HitCounter
from eiao.services.ordeal_service import OrdealService
from eiao.services.ordeal_store import OrdealStore


def get_ordeal_service(request: Request) -> OrdealService:
    return request.app.state.ordeal_service


def get_store(request: Request) -> OrdealStore:
    return request.app.state.store


def get_hit_counter(request: Request) -> HitCounter:
    return request.app.state.hit_counter
