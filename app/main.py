"""Main FastAPI application."""
from fastapi import FastAPI
from contextlib import asynccontextmanager

from app.core.logging import setup_logging
from app.db.database import init_db
from app.api import health, relay, conversations, student_config
from app.api.webhooks import voice


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging()
    await init_db()
    yield


app = FastAPI(
    title="Workshop Voice Relay",
    description="ConversationRelay WebSocket server for the voice AI workshop",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(relay.router, tags=["relay"])
app.include_router(conversations.router, tags=["conversations"])
app.include_router(student_config.router, tags=["student-config"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])


@app.get("/")
async def root():
    """Service information."""
    return {
        "status": "running",
        "message": "WebSocket server is running",
        "websocket": "/ws?sessionToken=YOUR_SESSION_TOKEN",
        "version": "0.1.0",
    }
