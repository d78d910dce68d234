"""FastAPI application entry point for the NFT escrow.

Startup configures logging, then the database (tables are created in
development and on SQLite) and the asset registry chosen by
``REGISTRY_MODE``. Shutdown releases both. The escrow's mutation guard is
process-wide, so the app is meant to run as a single Uvicorn worker.

Run with:
    uvicorn nft_escrow.main:app --reload
or the ``nft-escrow`` console script.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from nft_escrow.api.middleware import setup_middleware
from nft_escrow.api.routes import health, trades
from nft_escrow.config import Settings, get_settings
from nft_escrow.infrastructure.database.engine import close_db, init_db
from nft_escrow.infrastructure.registry import close_registry, init_registry
from nft_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        deposit_policy=settings.escrow_deposit_policy.value,
        cancel_policy=settings.escrow_cancel_policy.value,
        auto_settle=settings.escrow_auto_settle,
        registry_mode=settings.registry_mode,
    )

    await init_db()
    await init_registry()
    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    try:
        yield
    finally:
        logger.info("app.shutting_down")
        await close_registry()
        await close_db()
        logger.info("app.stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory."""
    settings = settings or get_settings()
    docs = settings.is_development

    app = FastAPI(
        title="NFT Escrow",
        description=(
            "Bilateral escrow for swapping bundles of non-fungible items. "
            "Both sides get what they agreed to, or everyone gets their items back."
        ),
        version=VERSION,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if docs else None,
        redoc_url="/redoc" if docs else None,
    )
    setup_middleware(app)

    for router in (health.router, trades.router, trades.parties_router):
        app.include_router(router)
    return app


def run() -> None:
    """Console entry point: serve the app with Uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "nft_escrow.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
    )


# The app instance used by Uvicorn
app = create_app()
