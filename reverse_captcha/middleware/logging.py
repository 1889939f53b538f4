"""
Per-request correlation IDs and access events.

Every request gets a short correlation ID, bound into the structlog context and
returned as ``X-Correlation-ID``. Operation streams outlive the handler that
opened them, so their lifetime is logged separately when the client goes away
or the stream finishes.

Challenge tokens in paths are replaced with ``{token}``. Client IPs and query
strings are never logged.
"""

import re
import secrets
import time
from collections.abc import AsyncIterator

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

_TOKEN_SEGMENT = re.compile(
    r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}(?=/|$)", re.IGNORECASE
)

EVENT_STREAM = "text/event-stream"


def generate_correlation_id() -> str:
    """Generate an 8-character correlation ID."""
    return secrets.token_hex(4)


def redact_path(path: str) -> str:
    """Replace challenge tokens embedded in a URL path."""
    return _TOKEN_SEGMENT.sub("/{token}", path)


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


async def track_stream(
    body: AsyncIterator, path: str, correlation_id: str, start_time: float
) -> AsyncIterator:
    """Pass event-stream chunks through and log once the stream closes."""
    frames_sent = 0
    try:
        async for chunk in body:
            frames_sent += 1
            yield chunk
    finally:
        # Runs outside the request context, so the correlation ID is passed explicitly
        structlog.get_logger().info(
            "stream_closed",
            path=path,
            correlation_id=correlation_id,
            frames_sent=frames_sent,
            duration_ms=_elapsed_ms(start_time),
        )


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs:
    - request_started: method, path
    - request_completed: method, path, status_code, duration_ms (time to headers)
    - request_failed: method, path, error, duration_ms
    - stream_closed: path, frames_sent, duration_ms (event streams only)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = generate_correlation_id()
        start_time = time.perf_counter()
        path = redact_path(request.url.path)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(correlation_id=correlation_id)
        logger = structlog.get_logger()

        logger.info("request_started", method=request.method, path=path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                method=request.method,
                path=path,
                error=str(e),
                duration_ms=_elapsed_ms(start_time),
                exc_info=True,
            )
            raise

        logger.info(
            "request_completed",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(start_time),
        )

        if response.headers.get("content-type", "").startswith(EVENT_STREAM):
            response.body_iterator = track_stream(
                response.body_iterator, path, correlation_id, start_time
            )

        response.headers["X-Correlation-ID"] = correlation_id
        return response
