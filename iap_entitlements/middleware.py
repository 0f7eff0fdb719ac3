"""FastAPI middleware for request/response logging and correlation."""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from iap_entitlements.dependencies import USER_ID_HEADER
from iap_entitlements.logging_config import bind_context, clear_context, get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Health checks hit these constantly; log them at debug only
QUIET_PATHS = frozenset({"/health"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests and responses with correlation IDs.

    Features:
    - Reuses the caller's X-Request-ID or generates one
    - Logs method, path, status code and duration
    - Binds request_id to all logs within request context
    """

    def __init__(self, app: ASGIApp, include_request_details: bool = True):
        """Initialize middleware.

        Args:
            app: ASGI application
            include_request_details: If True, log client host and user agent
        """
        super().__init__(app)
        self.include_request_details = include_request_details

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_context(request_id=request_id)

        log = logger.debug if request.url.path in QUIET_PATHS else logger.info
        details = {}
        if self.include_request_details:
            details = {
                "client_host": request.client.host if request.client else "unknown",
                "user_agent": request.headers.get("user-agent"),
            }
        log("request_started", method=request.method, path=request.url.path, **details)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            log(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            raise

        finally:
            # Clear context so it doesn't leak into the next request on this worker
            clear_context()


class ContextMiddleware(BaseHTTPMiddleware):
    """Middleware for binding business context from requests.

    Binds to the logging context:
    - platform, for /webhooks/{store} and the subscription routes
    - user_id, from the X-User-Id header
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Extract business context from request.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/handler in chain

        Returns:
            HTTP response
        """
        parts = [part for part in request.url.path.split("/") if part]

        # /webhooks/{store}
        if len(parts) >= 2 and parts[0] == "webhooks":
            bind_context(webhook_store=parts[1])

        # /subscriptions/{action}
        if len(parts) >= 2 and parts[0] == "subscriptions":
            bind_context(action=parts[1])

        user_id = request.headers.get(USER_ID_HEADER)
        if user_id:
            bind_context(user_id=user_id)

        return await call_next(request)
