"""
Everything Is An Ordeal: Access Log Middleware
=================================================

What:  One access-log line per request on the "eiao.access" logger.
How:   Times the downstream app with perf_counter and chooses the level from
       the response:

           5xx                               ERROR
           4xx                               WARNING
           /static, /uploads, /api/health    DEBUG  (asset and health-check noise)
           anything else                     INFO   (page views, API calls)

Example line (request ID added by RequestIDLogFilter):
    2026-10-19T12:00:00 [INFO] eiao.access [1a2b3c4d]: GET /cats 200 3.2ms from 10.0.0.7
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

access_logger = logging.getLogger("eiao.access")

QUIET_PREFIXES = ("/static/", "/uploads/", "/api/health")


def access_log_level(path: str, status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path.startswith(QUIET_PREFIXES):
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        path = request.url.path
        # request.client is None under ASGITransport
        client = request.client.host if request.client else "unknown"
        access_logger.log(
            access_log_level(path, response.status_code),
            "%s %s %d %.1fms from %s",
            request.method,
            path,
            response.status_code,
            elapsed_ms,
            client,
        )
        return response
