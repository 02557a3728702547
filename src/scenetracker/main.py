"""Scene tracker API.

Run with:  uvicorn scenetracker.main:app --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from scenetracker.config import settings

# Configure logging for all scenetracker modules
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

from fastapi import FastAPI

from scenetracker import __version__
from scenetracker.api.extraction import router as extraction_router
from scenetracker.api.providers import router as providers_router
from scenetracker.api.stores import router as stores_router
from scenetracker.db.database import close_db, init_db
from scenetracker.orchestration.session import SessionRegistry

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    await init_db()
    app.state.registry = SessionRegistry()
    yield
    log.info("Shutting down with %d open sessions", len(app.state.registry))
    await close_db()


app = FastAPI(
    title="SceneTracker",
    description=(
        "Event-sourced scene state for branching roleplay chats: time, place, "
        "characters, relationships and narrative, projected per swipe."
    ),
    version=__version__,
    lifespan=lifespan,
)

# ── API routers ──────────────────────────────────────────────────────────
app.include_router(stores_router)
app.include_router(extraction_router)
app.include_router(providers_router)
