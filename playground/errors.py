"""Errors the API itself raises, and how they are rendered.

A user's program failing (compile error, nonzero exit, timeout, policy
block) is not an error at this layer: it is a normal ``ExecutionResult``.
What lives here is the API refusing a request (rate limit, engine not up)
and the catch-all for faults of the service, which must reach the client
as a fixed message without paths or tracebacks.

    raise RateLimitedError(retry_after_sec=60)

``register_exception_handlers(app)`` is called once from ``main.py``.
"""

import logging
import math
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """JSON body of every non-2xx response produced here."""

    error: str
    detail: str | None = None
    error_code: str | None = None
    context: dict[str, Any] | None = None


class APIError(Exception):
    """A request the API refuses, with a stable machine-readable ``error``."""

    status_code: int = 500
    error: str = "internal_error"
    detail: str = "Internal server error."

    def __init__(self, detail: str | None = None, error_code: str | None = None, **context: Any) -> None:
        self.detail = detail or type(self).detail
        self.error_code = error_code
        self.context = context or None
        super().__init__(self.detail)

    @property
    def headers(self) -> dict[str, str] | None:
        return None

    def body(self) -> dict[str, Any]:
        return ErrorResponse(
            error=self.error,
            detail=self.detail,
            error_code=self.error_code,
            context=self.context,
        ).model_dump(exclude_none=True)


class RateLimitedError(APIError):
    """The client sent too many execution requests (429)."""

    status_code = 429
    error = "rate_limited"
    detail = "Rate limit exceeded. Slow down and try again shortly."

    @property
    def headers(self) -> dict[str, str] | None:
        retry_after = (self.context or {}).get("retry_after_sec")
        if retry_after is None:
            return None
        return {"Retry-After": str(math.ceil(retry_after))}


class ServiceUnavailableError(APIError):
    """The execution engine is not running (503)."""

    status_code = 503
    error = "service_unavailable"
    detail = "Execution engine is not available."


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    logger.warning("api.error status=%d error=%s path=%s", exc.status_code, exc.error, request.url.path)
    return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=exc.headers)


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Details stay in the log; the client gets a fixed message.
    logger.exception("api.unhandled path=%s", request.url.path)
    return JSONResponse(status_code=500, content=APIError().body())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
