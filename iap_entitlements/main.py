"""FastAPI application entry point and lifecycle management."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from iap_entitlements.dependencies import EntitlementsContainer, build_container
from iap_entitlements.exceptions import EntitlementError
from iap_entitlements.logging_config import configure_logging, get_logger
from iap_entitlements.models.settings import EntitlementsConfig
from iap_entitlements.middleware import ContextMiddleware, RequestLoggingMiddleware

# Initialize logger
logger = get_logger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Builds the service container from configuration unless one was
    injected, and runs the RTDN pull listener when enabled.
    """
    # Startup
    logger.info("service_starting", version=VERSION)

    listener = None
    try:
        # An injected container (tests) runs without config and without the listener
        if app.state.container is None:
            from iap_entitlements.config import get_config

            settings = get_config().settings
            app.state.container = build_container(settings)
            listener = _start_rtdn_listener(settings, app.state.container)

        container: EntitlementsContainer = app.state.container

        logger.info(
            "service_started",
            status="ready",
            platforms=[p.value for p in container.registry.list_supported_platforms()],
        )
        yield
    finally:
        # Shutdown
        logger.info("service_shutting_down")
        if listener is not None:
            listener.stop()
        logger.info("service_stopped")


def _start_rtdn_listener(settings: EntitlementsConfig, container: EntitlementsContainer):
    if not settings.rtdn.enabled:
        return None
    if container.google_decoder is None:
        logger.warning("rtdn_listener_skipped", reason="google store not configured")
        return None

    from iap_entitlements.services.rtdn_listener import RtdnListener

    listener = RtdnListener(settings.rtdn, container.google_decoder, container.processor)
    listener.start()
    return listener


def create_app(container: Optional[EntitlementsContainer] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        container: Prebuilt services (built from config at startup if omitted)

    Returns:
        Configured FastAPI application instance
    """
    # Configure logging
    log_level = os.getenv("LOG_LEVEL", "INFO")
    json_format = os.getenv("LOG_FORMAT", "json").lower() == "json"
    configure_logging(log_level=log_level, json_format=json_format)

    app = FastAPI(
        title="IAP Entitlements",
        description="Subscription entitlement service for App Store and Google Play purchases",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.container = container

    # Add logging middleware
    include_request_details = os.getenv("LOG_REQUEST_DETAILS", "true").lower() == "true"
    app.add_middleware(RequestLoggingMiddleware, include_request_details=include_request_details)
    app.add_middleware(ContextMiddleware)

    # Register routers
    from iap_entitlements.api.subscriptions import router as subscriptions_router
    from iap_entitlements.api.webhooks import router as webhooks_router

    app.include_router(subscriptions_router)
    app.include_router(webhooks_router)

    @app.get("/health")
    async def health(request: Request) -> dict:
        """Health check with the platforms that can be verified."""
        current: Optional[EntitlementsContainer] = request.app.state.container
        platforms = [p.value for p in current.registry.list_supported_platforms()] if current else []
        return {
            "status": "healthy",
            "version": VERSION,
            "platforms": platforms,
        }

    @app.exception_handler(EntitlementError)
    async def entitlement_error_handler(request: Request, exc: EntitlementError) -> JSONResponse:
        """Map domain errors to their status code and error body."""
        logger.warning(
            "request_rejected",
            error_code=exc.code,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "errors.internal",
                "message": "An unexpected error occurred",
            },
        )

    logger.info("app_created", endpoints=len(app.routes))
    return app


# Create app instance
app = create_app()
