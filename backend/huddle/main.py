"""Huddle Backend Application.

This is the main entry point for the Huddle backend service.
Huddle coordinates small video meetings: participants join rooms over a
WebSocket, exchange WebRTC signaling through the server, chat, and share
presence changes. Media never passes through here.

Modules:
    - rooms: Room registry, janitor and the room REST API
    - session: WebSocket endpoint, identity mapping, relay and coordinator
    - recordings: Recording upload, download and DuckDB catalog
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from huddle import __version__
from huddle.config import AppConfig, get_config
from huddle.errors import SessionError
from huddle.ratelimit import RateLimitMiddleware, SlidingWindowLimiter
from huddle.recordings.router import router as recordings_router
from huddle.recordings.service import RecordingService
from huddle.rooms.janitor import Janitor
from huddle.rooms.router import router as rooms_router, session_error_handler
from huddle.session.coordinator import SessionCoordinator
from huddle.session.router import router as session_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn.access logs every HTTP request and WebSocket handshake,
# which drowns the session logs during a meeting.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "multipart",
    "python_multipart",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config: AppConfig = app.state.config

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in huddle.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    app.state.janitor.start()
    logger.info(
        f"Huddle running on http://{config.server.host}:{config.server.port} "
        f"(max {config.rooms.max_participants} participants per room)"
    )

    yield  # Application runs here

    # Shutdown
    await app.state.janitor.stop()
    await app.state.coordinator.close()
    RecordingService.reset_instance()
    logger.info("Application shutdown complete")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application around one session coordinator.

    Args:
        config: Settings to use; defaults to ``huddle.settings.yaml``.

    Returns:
        The configured FastAPI application.
    """
    config = config or get_config()

    app = FastAPI(
        title="Huddle API",
        description="Signaling and room coordination backend for Huddle meetings",
        version=__version__,
        lifespan=lifespan,
    )

    coordinator = SessionCoordinator.from_config(config)
    app.state.config = config
    app.state.coordinator = coordinator
    app.state.janitor = Janitor(
        coordinator.registry,
        interval=config.rooms.cleanup_interval_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if config.rate_limit.enabled:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=SlidingWindowLimiter(
                max_requests=config.rate_limit.max_requests,
                window_seconds=config.rate_limit.window_seconds,
            ),
        )

    app.add_exception_handler(SessionError, session_error_handler)

    # Register all routers
    app.include_router(session_router)
    app.include_router(rooms_router)
    app.include_router(recordings_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    _config = get_config()
    uvicorn.run(app, host=_config.server.host, port=_config.server.port)
