"""X-Request-ID propagation and one access log line per request."""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

HEADER = "X-Request-ID"

# Accept caller ids that are safe to log verbatim; anything else is replaced.
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._-]{8,64}$")

log = structlog.get_logger("carnivalsync.api")


def request_id_for(request: Request) -> str:
    supplied = request.headers.get(HEADER, "")
    if _ACCEPTED_ID.match(supplied):
        return supplied
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request_id_for(request)
        tokens = structlog.contextvars.bind_contextvars(
            request_id=request_id, method=request.method, path=request.url.path
        )
        started = time.monotonic()
        try:
            response = await call_next(request)
            response.headers[HEADER] = request_id
            log.info(
                "request.completed",
                status_code=response.status_code,
                elapsed_ms=int((time.monotonic() - started) * 1000),
            )
            return response
        except Exception:
            log.exception("request.failed", elapsed_ms=int((time.monotonic() - started) * 1000))
            raise
        finally:
            structlog.contextvars.reset_contextvars(**tokens)
