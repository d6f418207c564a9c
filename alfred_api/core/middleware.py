"""HTTP middlewares: CORS and the per-request correlation scope."""

import asyncio
import logging
import time

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware

from alfred_api.core.correlation import correlator, generate_request_id

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


def setup_middlewares(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_HEADER],
    )
    app.middleware("http")(correlation_middleware)


async def correlation_middleware(request: Request, call_next) -> Response:
    """
    Run the request inside a correlation scope and echo the id back.

    The caller's ``X-Correlation-ID`` is reused when present. A request
    cancelled mid-flight (client gone, shutdown) answers 503.
    """
    correlation_id = request.headers.get(CORRELATION_HEADER) or f"R{generate_request_id()}"
    route = f"{request.method} {request.url.path}"

    with correlator.scope(correlation_id):
        t_start = time.time()
        try:
            response = await call_next(request)
        except asyncio.CancelledError:
            logger.info(f"{route} cancelled")
            response = Response(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content="Service Unavailable - Request Cancelled",
            )

        response.headers[CORRELATION_HEADER] = correlation_id
        logger.info(f"{route} -> {response.status_code} ({(time.time() - t_start) * 1000:.0f}ms)")
        return response
