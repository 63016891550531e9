"""Threadline Backend Application.

This is the main entry point for the Threadline backend service.
Threadline is a real-time chat service: authenticated users talk to an AI
assistant inside persistent threads, and every connection joined to a thread
sees the conversation live.

Modules:
    - chat: WebSocket sessions, thread rooms, AI reply scheduling, thread REST API
    - agent: Reply and feature generation (currently MockAgent)
    - auth: JWT bearer credentials
    - files: Attachment metadata
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from threadline.chat.router import router as chat_router
from threadline.chat.scheduler import scheduler
from threadline.chat.threads_router import router as threads_router
from threadline.config import get_config
from threadline.database import Database

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# uvicorn.access logs every HTTP request; httpx/httpcore log every
# connection made by the test client.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # logging.level from threadline.settings.yaml overrides the INFO default
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    db = Database.get_instance()
    logger.info("Database ready at %s", db.path)
    logger.info(
        f"Server running on http://{config.server.host}:{config.server.port}"
    )

    yield  # Application runs here

    # Shutdown: let pending AI replies persist before the database closes
    pending = len(scheduler.in_flight())
    if pending:
        logger.info("Waiting for %d pending AI replies", pending)
    await scheduler.drain()
    Database.reset_instance()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Threadline API",
    description="Real-time chat threads with an AI assistant",
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

# WebSocket protocol and thread history
app.include_router(chat_router)
app.include_router(threads_router)


@app.get("/health")
async def health() -> dict:
    """Liveness probe."""
    return {"status": "ok"}
