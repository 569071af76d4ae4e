from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.middleware.logging_middleware import RequestLoggingMiddleware
from app.middleware.metrics_middleware import MetricsMiddleware
from app.routers import build_router
from app.utils.fastapi_utils import install_exception_handlers
from common.core.config_service import Settings, get_env_file_path, load_settings
from common.utils.utils import get_logger

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    settings: Settings = app.state.settings
    logger.info("Application started", version=settings.version, prefix=settings.http.prefix or "/")
    yield
    logger.info("Application shutting down")


def create_app(settings: Settings) -> FastAPI:
    """Build the FastAPI application for the given settings."""
    prefix = settings.http.prefix
    app = FastAPI(
        title=settings.service_name,
        description="A simple todo app",
        version=settings.version,
        openapi_url=f"{prefix}/openapi.json",
        docs_url=f"{prefix}/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # 1. Request metrics
    app.add_middleware(MetricsMiddleware)

    # 2. Request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # 3. CORS middleware
    if settings.http.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Custom exception handlers
    install_exception_handlers(app)

    # Include routers
    app.include_router(build_router(prefix))

    return app


def create_app_from_env() -> FastAPI:
    """Factory for ``uvicorn --factory``: settings come from the environment."""
    return create_app(load_settings(get_env_file_path()))
