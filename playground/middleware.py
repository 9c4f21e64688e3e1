import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from playground.config import get_settings
from playground.ratelimit import client_ip

# Same set the browser-facing playground was served with.
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class HTTPLogMiddleware(BaseHTTPMiddleware):
    """One debug line per request; enabled with ``REQUEST_DEBUG=1``."""

    def __init__(self, app, logger_name: str = "playground.http"):
        super().__init__(app)
        self._logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.monotonic()
        ip = client_ip(
            request.headers,
            request.client.host if request.client else None,
            trust_forwarded=get_settings().rate_limit.trust_forwarded,
        )
        try:
            response = await call_next(request)
        except Exception as e:
            self._logger.warning(
                "http.error %s %s ip=%s after=%dms err=%r",
                request.method, request.url.path, ip, (time.monotonic() - started) * 1000, e,
            )
            raise
        self._logger.debug(
            "http.done %s %s ip=%s status=%d took=%dms",
            request.method, request.url.path, ip, response.status_code, (time.monotonic() - started) * 1000,
        )
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response
