"""Portal API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map PortalError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup and disposed on shutdown via lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers live in api/error_handlers.py; this module only wires
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portal.api.error_handlers import register_error_handlers
from portal.api.routes import (
    appointments, health, inbox, integrations, media, public_inbox,
    public_media, receptionist,
)
from portal.config import get_settings
from portal.infrastructure.database import close_db, init_db
from portal.infrastructure.observability import setup_logging
from portal.infrastructure.twilio_client import get_twilio_gateway

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("Portal API started")
    yield
    logger.info("Portal API shutting down")
    if get_twilio_gateway.cache_info().currsize:
        await get_twilio_gateway().close()
    await close_db()


app = FastAPI(
    title="Business Automation Portal API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(inbox.router)
app.include_router(public_inbox.router)
app.include_router(media.router)
app.include_router(public_media.router)
app.include_router(appointments.router)
app.include_router(appointments.availability_router)
app.include_router(receptionist.router)
app.include_router(receptionist.public_router)
app.include_router(integrations.router)

register_error_handlers(app)
