"""
API handlers: map service errors to HTTP and format Server-Sent Events.

Responsibility: Bridge HTTP types and services. Exception-to-HTTP mapping and
SSE framing live in the API layer so services stay free of FastAPI/HTTP types.
"""

import json
from typing import Any

from fastapi import HTTPException

from app.core.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    UnauthorizedError,
)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

_STATUS = (
    (BadRequestError, 400),
    (UnauthorizedError, 401),
    (NotFoundError, 404),
    (ConflictError, 409),
    (ServiceUnavailableError, 503),
)


def http_error(error: Exception) -> HTTPException:
    """HTTPException for a service error; anything unrecognised becomes 500."""
    for cls, status in _STATUS:
        if isinstance(error, cls):
            return HTTPException(status_code=status, detail=error.message)
    return HTTPException(status_code=500, detail=str(error) or "Internal server error")


def named_sse(event: str, data: dict[str, Any]) -> str:
    """`event: X` frame, used by the chat stream."""
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def data_sse(data: dict[str, Any]) -> str:
    """Bare `data:` frame, used by the research stream."""
    return f"data: {json.dumps(data, default=str)}\n\n"


SSE_DONE = "data: [DONE]\n\n"
