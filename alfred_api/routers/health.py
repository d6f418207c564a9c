"""Health check route."""

from fastapi import APIRouter

from alfred_api import __version__
from alfred_api.container import AppContextDep
from alfred_api.models import HealthResponse


def create_router() -> APIRouter:
    router = APIRouter(tags=["health"])

    @router.get("/health", response_model=HealthResponse, summary="Service health")
    async def health_check(ctx: AppContextDep):
        if ctx.database is None:
            database = "memory"
        else:
            database = "mongodb" if await ctx.database.ping() else "unreachable"

        if ctx.composio is None:
            platform = "disabled"
        else:
            platform = "ok" if await ctx.composio.ping() else "unreachable"

        healthy = database != "unreachable" and platform != "unreachable"
        return HealthResponse(
            status="healthy" if healthy else "degraded",
            version=__version__,
            database=database,
            platform=platform,
            active_tasks=len(ctx.task_manager.get_active_tasks()) if ctx.task_manager else 0,
        )

    return router
