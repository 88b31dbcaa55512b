"""FastAPI application entry point for Commit."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.agreements import router as agreements_router
from src.api.analytics import router as analytics_router
from src.api.deliverables import router as deliverables_router
from src.api.team import router as team_router
from src.api.updates import router as updates_router
from src.config.logging import configure_logging
from src.config.settings import get_settings
from src.db.session import get_session_factory

APP_VERSION = "0.1.0"

settings = get_settings()

# --- Structured logging ---
configure_logging(settings)

logger: structlog.stdlib.BoundLogger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("commit_api_started", version=APP_VERSION, environment=settings.ENVIRONMENT.value)
    yield
    services = getattr(app.state, "services", None)
    if services is not None:
        # Deletions still inside their undo window are committed, not dropped.
        await services.undo.aclose()
    logger.info("commit_api_stopped")


# --- FastAPI app ---
app = FastAPI(
    title="Commit API",
    description="Team agreements, deliverables and status updates.",
    version=APP_VERSION,
    lifespan=lifespan,
)

# --- CORS middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENVIRONMENT == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Routers ---
app.include_router(team_router)
app.include_router(agreements_router)
app.include_router(deliverables_router)
app.include_router(analytics_router)
app.include_router(updates_router)


# --- Infrastructure Endpoints ---


@app.get("/health")
async def health_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> dict:
    """Liveness probe with a database connectivity check.

    Returns 200 always (degraded status if components are down).
    """
    checks: dict[str, bool] = {"api": True}

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception:
        checks["database"] = False

    all_ok = all(checks.values())

    return {
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "checks": checks,
    }


@app.get("/api/version")
async def get_version() -> dict[str, str]:
    """Return application name, version, and environment."""
    return {
        "name": "Commit",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
