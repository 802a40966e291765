# backend/marketchat/main.py
"""
FastAPI application for the marketplace messaging core.

Run with:
    uvicorn marketchat.main:app
"""

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI, Response

from .core.broadcast import connect_broadcast, disconnect_broadcast, is_broadcast_initialized
from .core.config import is_running_tests, settings
from .errors import register_error_handlers
from .monitoring.prometheus_metrics import prometheus_metrics
from .routes.v1 import conversations as conversations_v1, messages as messages_v1
from .routes.v1 import presence as presence_v1
from .services.messaging.publisher import message_publisher
from .services.profile_directory import HttpProfileDirectory, ProfileDirectory

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

API_TITLE = "marketchat API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Connect the fan-out backend on startup and flush pending publishes on shutdown."""
    logger.info(f"{API_TITLE} starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")

    await connect_broadcast(getattr(app.state, "broadcast_url", None))
    # Sync service code hands publishes to this loop from worker threads
    message_publisher.bind_loop(asyncio.get_running_loop())

    try:
        yield
    finally:
        logger.info(f"{API_TITLE} shutting down...")
        await message_publisher.drain()
        message_publisher.bind_loop(None)
        await disconnect_broadcast()


def _default_profile_directory() -> Optional[ProfileDirectory]:
    if settings.profile_directory_url:
        return HttpProfileDirectory(settings.profile_directory_url)
    logger.warning(
        "[CONFIG] PROFILE_DIRECTORY_URL not set; conversation endpoints will return 503"
    )
    return None


def create_app(
    profile_directory: Optional[ProfileDirectory] = None,
    broadcast_url: Optional[str] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        profile_directory: Directory used to resolve users (HTTP directory from settings by default)
        broadcast_url: Fan-out backend URL (settings.broadcast_url by default)
    """
    application = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    application.state.profile_directory = profile_directory or _default_profile_directory()
    application.state.broadcast_url = broadcast_url

    register_error_handlers(application)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(conversations_v1.router, prefix="/conversations")
    api_v1.include_router(messages_v1.router, prefix="/messages")
    api_v1.include_router(presence_v1.router, prefix="/presence")
    application.include_router(api_v1)

    @application.get("/health", tags=["health"])
    async def health() -> dict:
        return {
            "status": "healthy",
            "environment": settings.environment,
            "broadcast_connected": is_broadcast_initialized(),
        }

    @application.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(
            content=prometheus_metrics.get_metrics(),
            media_type=prometheus_metrics.get_content_type(),
        )

    return application


app = create_app()
