"""
Everything Is An Ordeal: Health Check Route
==============================================

What:  Health endpoint for container health checks and load balancers.
How:   Pings the store and reports the hit-counter backlog.

Lives under /api so it cannot shadow an ordeal named "health".
"""

import logging
import time

from fastapi import APIRouter, Depends, Response

from eiao import __version__
from eiao.dependencies import get_hit_counter, get_store
from eiao.schemas.ordeal import HealthResponse
from eiao.services.hit_counter import HitCounter
from eiao.services.ordeal_store import OrdealStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
)
async def health_check(
    response: Response,
    store: OrdealStore = Depends(get_store),
    hit_counter: HitCounter = Depends(get_hit_counter),
) -> HealthResponse:
    """
    Status levels:
        healthy:   the store answered (HTTP 200)
        unhealthy: the store did not answer (HTTP 503)
    """
    db_status = "connected"
    overall = "healthy"

    try:
        await store.ping()
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        response.status_code = 503
        logger.warning("Health check: database unreachable: %s", str(e))

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        pending_hits=hit_counter.pending,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
