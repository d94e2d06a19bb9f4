"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relay_console.agent.dispatcher import RunDispatcher
from relay_console.api import chat, integrations, routes
from relay_console.config import get_settings
from relay_console.database.seed import seed_database
from relay_console.database.session import close_db, get_session, init_db
from relay_console.database.storage import Storage
from relay_console.integrations.google import CALENDAR_CONNECTOR, GMAIL_CONNECTOR, TokenCache


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if not settings.runloop_api_key:
        logger.warning("[runloop] RUNLOOP_API_KEY not set. Runloop execution will fail.")

    # Initialize database
    if settings.environment == "development":
        await init_db()
        logger.info("Database initialized")

    async with get_session() as db:
        storage = Storage(db)
        await app.state.dispatcher.recover_orphans(storage)
        if settings.seed_on_startup:
            await seed_database(storage)

    yield

    # Shutdown
    active = app.state.dispatcher.active_runs
    if active:
        logger.warning(f"Shutting down with {len(active)} run(s) still executing: {active}")
    logger.info("Shutting down...")
    await close_db()


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 with field-level detail."""
    return JSONResponse(
        status_code=400,
        content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Relay Console API - robot companion runs on Runloop devboxes",
        lifespan=lifespan,
    )

    app.state.dispatcher = RunDispatcher()
    app.state.token_caches = {
        CALENDAR_CONNECTOR: TokenCache(),
        GMAIL_CONNECTOR: TokenCache(),
    }

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Include routes
    app.include_router(routes.router, prefix="/api")
    app.include_router(chat.router, prefix="/api")
    app.include_router(integrations.router, prefix="/api")

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "relay_console.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
