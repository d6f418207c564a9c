"""
Progress streaming route.

GET /stream/{request_id} is a Server-Sent Events channel: ``connected``
first, then run events until a terminal ``complete`` or ``error``.
"""

import json
from typing import Any, AsyncIterator

from fastapi import APIRouter, Path
from fastapi.responses import StreamingResponse

from alfred_api.container import BrokerDep
from alfred_api.core.logging import get_logger
from alfred_api.models import REQUEST_ID_PATTERN
from alfred_api.services.progress_broker import ProgressBroker

logger = get_logger(__name__)


def format_sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event, default=str)}\n\n"


async def event_stream(broker: ProgressBroker, request_id: str) -> AsyncIterator[str]:
    subscription = broker.register(request_id)
    logger.info(f"Stream client connected for {request_id}")
    try:
        yield format_sse({"type": "connected", "request_id": request_id})
        async for event in subscription.events():
            yield format_sse(event)
    finally:
        broker.unregister(request_id, subscription)
        logger.info(f"Stream client disconnected from {request_id}")


def create_router() -> APIRouter:
    router = APIRouter(tags=["stream"])

    @router.get("/stream/{request_id}", summary="Stream run progress")
    async def stream(
        broker: BrokerDep,
        request_id: str = Path(..., pattern=REQUEST_ID_PATTERN),
    ):
        return StreamingResponse(
            event_stream(broker, request_id),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    return router
