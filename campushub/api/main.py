"""
campushub.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn campushub.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from campushub import __version__  # noqa: E402
from campushub.api.deps import get_cache, get_config, get_engine  # noqa: E402
from campushub.api.errors import install_error_handlers  # noqa: E402
from campushub.api.routes.admin import router as admin_router  # noqa: E402
from campushub.api.routes.events import router as events_router  # noqa: E402
from campushub.api.routes.members import router as members_router  # noqa: E402
from campushub.api.routes.registrations import router as registrations_router  # noqa: E402
from campushub.api.routes.tasks import router as tasks_router  # noqa: E402
from campushub.config import CampusHubConfig  # noqa: E402
from campushub.database.engine import init_db, run_db  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: verify the schema, seed settings, warm the cache."""
    engine = get_engine()
    await run_db(init_db, engine)
    await run_db(get_cache)
    logger.info("CampusHub API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("CampusHub API shutting down")


app = FastAPI(
    title="CampusHub API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

# Mount routers
app.include_router(registrations_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")
app.include_router(members_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


def _community_config() -> CampusHubConfig:
    try:
        return get_config()
    except FileNotFoundError:
        logger.warning("config.yaml not found; community profile unavailable")
        raise HTTPException(404, "Community profile not configured")


@app.get("/api/community")
def community(cfg: CampusHubConfig = Depends(_community_config)):
    return {
        "name": cfg.community_name,
        "motto": cfg.community_motto,
        "contact_email": cfg.contact_email,
    }
