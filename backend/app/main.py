"""StudyMesh Backend Application.

This is the main entry point for the StudyMesh messaging backend: the
connection-gated chat core of a student collaboration platform.

Modules:
    - identity: users and their connection / request relations
    - rooms: two-person rooms with the intro/connected phase flag
    - messages: message log and the messaging gate
    - connections: connection request state machine
    - chat: request/response messaging endpoints
    - realtime: WebSocket fanout, room channels and presence
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.chat.router import router as chat_router
from app.config import get_config
from app.connections.router import router as connections_router
from app.errors import install_error_handlers
from app.realtime.router import router as realtime_router
from app.services import build_services, get_services, has_services, set_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in ("httpx", "httpcore", "uvicorn.access"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in studymesh.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    # Services installed beforehand (tests) are left to their owner.
    owns_services = not has_services()
    if owns_services:
        set_services(build_services(config))
        logger.info("Services ready (database=%s)", config.database.path)

    yield  # Application runs here

    # Shutdown
    if owns_services:
        get_services().close()
        set_services(None)
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="StudyMesh API",
    description="Connection-gated messaging backend for StudyMesh",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

# Register all routers
app.include_router(chat_router)
app.include_router(connections_router)
app.include_router(realtime_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
