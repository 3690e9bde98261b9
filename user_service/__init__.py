"""
User service package.

Builds the FastAPI application exposing the user lifecycle operations over
HTTP and, alongside it, the message-pattern TCP listener.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from user_service.core.cache import UserCache, create_redis_client
from user_service.core.config import Settings, get_settings
from user_service.core.database import get_engine, init_db
from user_service.routes import health, user
from user_service.routes.errors import register_error_handlers
from user_service.transports.tcp import MessagePatternServer, database_service_factory

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start-up and shutdown of the resources shared by both transports.

    Creates missing tables and starts the TCP listener when enabled.
    """
    settings: Settings = app.state.settings

    if settings.DB_AUTO_CREATE:
        init_db(get_engine(settings))

    tcp_server = None
    if settings.TCP_ENABLED:
        tcp_server = MessagePatternServer(
            database_service_factory(app.state.user_cache, settings),
            host=settings.TCP_HOST,
            port=settings.tcp_port
        )
        await tcp_server.start()

    logger.info(
        f"{settings.SERVICE_NAME} started: HTTP port {settings.PORT}, "
        f"TCP {'port ' + str(settings.tcp_port) if tcp_server else 'disabled'}, "
        f"environment {settings.ENVIRONMENT}"
    )

    yield

    if tcp_server is not None:
        await tcp_server.stop()
    logger.info("Application shutdown complete")


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to use, the environment-derived ones by default

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="User records over HTTP and TCP message patterns",
        version=settings.VERSION,
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.user_cache = (
        UserCache(create_redis_client(settings), expire=settings.USER_CACHE_EXPIRE)
        if settings.CACHE_ENABLED else None
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=".*",
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "PUT", "PATCH", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Include routers
    app.include_router(user.router)
    app.include_router(health.router)

    return app
