"""
FastAPI Proxy Node Application Factory
======================================

This is the main entry point for a KeyFetch regional proxy node: the service
that performs outbound HTTP calls on behalf of authenticated agents from one
geographic region and meters them against the identity/billing service.

Architecture:
    Agent → Edge router → Regional node (this service) → Target URL
                                 ↘ Identity service (verify, usage)

Routers:
    - /v1/fetch     : Forward an HTTP request (requires Bearer token)
    - /v1/usage     : Agent balance and pending usage (requires Bearer token)
    - /v1/regions   : Static region catalog
    - /health       : Health check endpoint

Environment Variables (all optional):
    - KEYFETCH_REGION: Region this node serves (e.g., "eu-frankfurt")
    - PORT: Listen port (default: 3000)
    - IDENTITY_API_URL: Identity/billing service base URL
    - SERVICE_SECRET: Shared secret for the identity service
    - USAGE_REPORT_INTERVAL: Usage flush interval in milliseconds (default: 30000)
    - LOG_LEVEL: Logging level (default: INFO)

Running the Service:
    Development:
        uvicorn fetch_node.app.main:app --reload --port 3000

    Production:
        KEYFETCH_REGION=eu-frankfurt uvicorn fetch_node.app.main:app --host 0.0.0.0 --port 3000

Run with a single worker: the token cache and usage ledger are per process.
On SIGTERM/SIGINT uvicorn runs the lifespan shutdown, which reports the
remaining usage before exit.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from .config import Settings, get_settings, validate_configuration
from .errors import GatewayError
from .models import HealthResponse
from .proxy.routes import proxy_router
from .state import AppState, get_app_state


CORS_MAX_AGE_SECONDS = 86400


# Configure structured JSON logging
def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup tasks:
        - Configure logging
        - Build the AppState (HTTP clients, token cache, usage ledger) unless
          one was injected
        - Start the periodic usage flush

    Shutdown tasks:
        - Stop the periodic flush and report remaining usage once
        - Close outbound HTTP clients
    """
    settings: Settings = app.state.settings

    setup_logging(settings.LOG_LEVEL)
    logger = logging.getLogger("fetch_node.main")

    if app.state.app_state is None:
        app.state.app_state = AppState(settings)
    app_state: AppState = app.state.app_state

    config_status = validate_configuration(settings)
    for warning in config_status["warnings"]:
        logger.warning(f"Configuration warning: {warning}")

    logger.info(
        "Starting proxy node",
        extra={
            "region": settings.KEYFETCH_REGION,
            "port": settings.PORT,
            "identity_api_url": settings.identity_api_url_str,
            "usage_report_interval_ms": settings.USAGE_REPORT_INTERVAL,
        }
    )

    await app_state.start()

    yield

    logger.info("Shutting down proxy node, reporting remaining usage")
    await app_state.stop()
    logger.info("Proxy node shutdown complete")


# Create FastAPI application
def create_app(
    settings: Optional[Settings] = None,
    app_state: Optional[AppState] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Lifespan management
        - CORS middleware
        - Request logging middleware
        - Route handlers
        - Exception handlers

    Args:
        settings: Configuration; loaded from the environment if omitted
        app_state: Pre-built service objects (tests); built at startup if omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="KeyFetch API",
        description="HTTP proxy for AI agents. Make outbound HTTP requests from multiple global regions.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.app_state = app_state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        max_age=CORS_MAX_AGE_SECONDS,
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logging.getLogger("fetch_node.access").info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            }
        )
        return response

    app.include_router(proxy_router, tags=["Proxy"])

    # Health check endpoint
    @app.get("/health", tags=["System"], response_model=HealthResponse)
    async def health_check(request: Request) -> HealthResponse:
        """
        Health check endpoint.

        Returns:
            Node status, region and the number of usage records awaiting flush
        """
        state = get_app_state(request)
        return HealthResponse(
            status="ok",
            region=state.region,
            pending_usage_records=len(state.ledger),
        )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        """Render request-path rejections as {"error": ..., **details}."""
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse(status_code=404, content={"error": "Not found"})
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response; the node
        keeps serving. This handler runs outside CORSMiddleware, so the
        any-origin header is set here.
        """
        logger = logging.getLogger("fetch_node.main")
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__
            },
            exc_info=True
        )

        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"},
            headers={"Access-Control-Allow-Origin": "*"},
        )

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    settings = get_settings()

    uvicorn.run(
        "fetch_node.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )
