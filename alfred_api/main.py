"""
FastAPI application entry point.
"""

import asyncio
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.types import Receive, Scope, Send

from alfred_api import __version__
from alfred_api.container import AppContext
from alfred_api.core import get_logger, setup_exception_handlers, setup_logging, setup_middlewares
from alfred_api.routers import connections, health, stream, webhook, workflows
from alfred_sdk.config import load_config

logger = get_logger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


def build_lifespan(context: AppContext | None):
    """Startup builds the context unless one was injected. Shutdown releases it."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Alfred API...")
        ctx = context
        if ctx is None:
            config = load_config()
            setup_logging(log_level=config.log_level)
            ctx = await AppContext.create(config)
        app.state.context = ctx

        yield

        logger.info("Shutting down Alfred API...")
        await ctx.shutdown()
        logger.info("Shutdown complete")

    return lifespan


# =============================================================================
# AppWrapper
# =============================================================================


class AppWrapper:
    """
    ASGI wrapper swallowing ``asyncio.CancelledError`` at the top level.

    FastAPI's exception handlers never see BaseException, so a cancelled
    server task would otherwise end the process with a traceback.
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            return await self.app(scope, receive, send)
        except asyncio.CancelledError:
            pass


# =============================================================================
# Application
# =============================================================================


def create_app(context: AppContext | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        context: Prebuilt context (tests). Built from the environment at startup when omitted.
    """
    app = FastAPI(
        title="Alfred API",
        description="Workflow classification and multi-step agent orchestration",
        version=__version__,
        lifespan=build_lifespan(context),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    setup_middlewares(app)
    setup_exception_handlers(app)

    for module in (webhook, stream, health, workflows, connections):
        app.include_router(module.create_router(), prefix="/api/v1")

    @app.get("/", tags=["root"])
    async def root():
        return {
            "name": "Alfred API",
            "version": __version__,
            "docs": "/docs",
            "health": "/api/v1/health",
        }

    return app


app = AppWrapper(create_app())


if __name__ == "__main__":
    import uvicorn

    debug = os.getenv("DEBUG", "false").lower() == "true"
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8000"))
    reload_enabled = os.getenv("RELOAD", str(debug)).lower() == "true"

    logger.info(f"Starting server - host: {host}, port: {port}, reload: {reload_enabled}")

    uvicorn.run(
        "alfred_api.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        reload_dirs=["alfred_api", "alfred_sdk"] if reload_enabled else None,
        log_level="debug" if debug else "info",
    )
