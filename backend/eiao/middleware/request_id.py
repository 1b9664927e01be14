"""
Everything Is An Ordeal: Request ID Middleware
=================================================

What:  Gives every request a short correlation ID.
How:   Reuses a client-supplied X-Request-ID or generates one, keeps it in a
       ContextVar for the duration of the request, and echoes it back in the
       response headers. RequestIDLogFilter copies it onto every log record,
       so lines logged by services carry the same ID as the access log.
"""

import logging
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Coroutine-local: concurrent requests on the same thread each see their own ID
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDLogFilter(logging.Filter):
    """Sets `record.request_id` ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("") or "-"
        return True


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Binds the request ID for the request and returns it to the client."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        # Not reset afterwards: the 500 handler runs outside this middleware
        # and still reports the ID. Each request runs in its own context.
        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
