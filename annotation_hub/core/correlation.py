"""
Correlation ID middleware for request tracing.

The correlation ID propagates through:
- HTTP requests/responses
- Log entries
- Outbound email API calls
"""

import uuid
from collections.abc import Callable
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from annotation_hub.log.logging import logger

# Context variable to store correlation ID for the current request
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    """
    Get the current correlation ID.

    Returns:
        The correlation ID for the current context, or None if not set.
    """
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    correlation_id_var.set(correlation_id)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle correlation IDs for request tracing.

    Features:
    - Extracts correlation ID from incoming request headers
    - Generates new ID if none provided
    - Adds correlation ID to response headers
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()

        set_correlation_id(correlation_id)
        request.state.correlation_id = correlation_id

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            event_type="request_start",
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                event_type="request_error",
            )
            raise

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        response.headers[REQUEST_ID_HEADER] = correlation_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            event_type="request_complete",
        )

        return response


def get_correlation_headers() -> dict:
    """
    Get headers to propagate the correlation ID to downstream HTTP calls.

    Returns:
        Dictionary with correlation ID header, or empty dict if not set.
    """
    correlation_id = get_correlation_id()
    if correlation_id:
        return {CORRELATION_ID_HEADER: correlation_id}
    return {}
