"""
Main FastAPI application.

Payment initiation API with:
- Idempotent payment submission
- Broker-backed event delivery with a record store fallback
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from payout_gateway import __version__
from payout_gateway.config import Settings, get_settings
from payout_gateway.database.connection import close_db, create_engine, init_db
from payout_gateway.monitoring.logging import setup_logging

from .dependencies import ServiceContainer, build_container
from .routes import event_router, monitoring_router, payment_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Builds the service container unless one was supplied, connects the
    broker (never fatal), and optionally keeps reconnecting in the background.
    """
    settings: Settings = app.state.settings
    owns_container = app.state.container is None

    logger.info("application_startup", app_name=settings.app_name, env=settings.app_env)

    if owns_container:
        engine = create_engine(settings)
        try:
            await init_db(engine)
            logger.info("database_initialized")
        except Exception as e:
            logger.error("database_initialization_failed", error=str(e))
            await close_db(engine)
            raise
        app.state.container = build_container(settings, engine)
        await app.state.container.event_delivery.connect()

    container: ServiceContainer = app.state.container

    reconnect_task: Optional[asyncio.Task[None]] = None
    if settings.transport_reconnect_interval_seconds > 0:
        reconnect_task = asyncio.create_task(
            container.event_delivery.run_reconnect_loop(
                settings.transport_reconnect_interval_seconds
            )
        )

    yield

    logger.info("application_shutdown")
    if reconnect_task is not None:
        reconnect_task.cancel()
        try:
            await reconnect_task
        except asyncio.CancelledError:
            pass

    if owns_container:
        try:
            await container.close()
            logger.info("connections_closed")
        except Exception as e:
            logger.error("shutdown_error", error=str(e))
        app.state.container = None


async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
    """
    Add request ID to all requests for tracing.

    Also adds timing information and structured logging context.
    """
    request_id = str(uuid.uuid4())
    start_time = time.time()

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=time.time() - start_time,
        )
        return response

    except Exception as e:
        logger.error(
            "request_failed",
            error=str(e),
            duration_seconds=time.time() - start_time,
        )
        raise

    finally:
        structlog.contextvars.clear_contextvars()


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as {"error": ...}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment by default)
        container: Pre-built services; when given, the lifespan neither
            builds nor closes them
    """
    settings = settings or (container.settings if container else get_settings())
    setup_logging(settings)

    app = FastAPI(
        title="Payout Gateway",
        description=(
            "Payment initiation over the Wise payout API with idempotent submissions "
            "and at-least-once payment event delivery."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(add_request_id_middleware)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(payment_router)
    app.include_router(event_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": __version__,
            "environment": settings.app_env,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "payout_gateway.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
