"""
Routers.

Each module exposes a ``create_router()`` factory, mounted under /api/v1.
"""

from alfred_api.routers import connections, health, stream, webhook, workflows

__all__ = [
    "connections",
    "health",
    "stream",
    "webhook",
    "workflows",
]
