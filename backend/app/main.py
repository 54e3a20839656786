"""
Event Log Ledger - auditable incident logging for event control rooms

FastAPI application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.core.config import get_settings
from backend.app.core.database import Base, engine, get_db_context
from backend.app.core.logging import setup_logging, get_logger
from backend.app.api import auth, health, incident_logs
from backend.app.middleware.trace import TracingMiddleware
from backend.app.services.auth_service import seed_default_users

settings = get_settings()

setup_logging(level=settings.log_level, service="event-log-ledger")
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    # Alembic owns the schema in deployed environments; this covers a fresh SQLite file.
    if settings.database_url.startswith("sqlite"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async with get_db_context() as db:
        await seed_default_users(db)

    yield
    logger.info(f"Shutting down {settings.app_name}")
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Immutable incident logs with an append-only amendment trail",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(TracingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID", "X-Event-ID"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(
    auth.router,
    prefix=f"{settings.api_prefix}/auth",
    tags=["Authentication"]
)
app.include_router(
    incident_logs.router,
    prefix=f"{settings.api_prefix}/incident-logs",
    tags=["Incident Logs"],
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
