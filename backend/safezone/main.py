"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from safezone.core.config import settings
from safezone.core.database import async_session_maker, create_tables, engine
from safezone.core.logging import setup_logging
from safezone.core.metrics import get_content_type, get_metrics, set_app_info
from safezone.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
    TracingMiddleware,
)
from safezone.core.tracing import setup_tracing, shutdown_tracing
from safezone.modules.pipeline.runtime import build_runtime
from safezone.modules.video.router import router as video_router

logger = logging.getLogger(__name__)

ENVIRONMENT = "development" if settings.DEBUG else "production"

setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment=ENVIRONMENT,
    otlp_endpoint=settings.OTLP_ENDPOINT,
    enable_console_export=settings.TRACING_CONSOLE_EXPORT,
)

set_app_info(version=settings.VERSION, environment=ENVIRONMENT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.DB_AUTO_CREATE:
        await create_tables()

    runtime = build_runtime(settings, async_session_maker)
    app.state.runtime = runtime
    await runtime.start()
    logger.info("Application started", extra={"job_backend": settings.JOB_BACKEND})
    try:
        yield
    finally:
        await runtime.stop()
        shutdown_tracing()
        await engine.dispose()
        logger.info("Application stopped")


def create_app() -> FastAPI:
    """Build the application. Tests set ``app.state.runtime`` themselves."""
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Upload, transcode and stream workplace safety videos.",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Health check endpoints"},
            {"name": "videos", "description": "Video upload, listing and streaming"},
        ],
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware, log_request_body=False)
    app.add_middleware(TracingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    if settings.STORAGE_BACKEND.lower() == "local":
        app.mount(
            settings.LOCAL_MEDIA_URL_PREFIX,
            StaticFiles(directory=settings.LOCAL_STORAGE_PATH, check_dir=False),
            name="media",
        )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint.

        Returns:
            dict: Health status with "healthy" value.
        """
        return {"status": "healthy"}

    @app.get("/metrics", tags=["health"], include_in_schema=False)
    async def metrics() -> Response:
        """Prometheus metrics in text exposition format."""
        return Response(content=get_metrics(), media_type=get_content_type())

    app.include_router(video_router, prefix=settings.API_V1_PREFIX)
    return app


app = create_app()
