"""HoldGate main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from holdgate import __version__
from holdgate.api import router
from holdgate.api.deps import validate_auth_config
from holdgate.config import Environment, settings
from holdgate.db.base import close_db, init_db
from holdgate.tasks.sweep import start_expiry_sweep, stop_expiry_sweep

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("holdgate")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting HoldGate server...")
    logger.info(f"Environment: {settings.env.value}")

    # Validate authentication configuration (fail fast if insecure)
    validate_auth_config()

    # Schema is owned by alembic outside development
    if settings.env == Environment.DEVELOPMENT:
        await init_db()
        logger.info("Database initialized")

    await start_expiry_sweep()
    logger.info("Claim expiry sweep started")

    yield

    logger.info("Shutting down HoldGate server...")
    await stop_expiry_sweep()
    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title="HoldGate",
    description="Reservation queue and workflow core for advertising units",
    version=__version__,
    lifespan=lifespan,
)

# Explicit allowlist, no wildcards
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=False,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)

app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "holdgate.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
