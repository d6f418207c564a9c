"""
Error payloads.

Every failure leaves the API as::

    {"error": kind, "message": ..., "correlation_id": ..., "request_id"?: ..., "detail"?: ...}

``kind`` is the ``AlfredError`` subclass name, ``ValidationError`` for
rejected request bodies and ``InternalError`` for anything unexpected.
"""

from http import HTTPStatus
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from alfred_api.core.correlation import get_correlation_id, get_request_id
from alfred_api.core.logging import get_logger
from alfred_sdk.errors import AlfredError

logger = get_logger(__name__)

HTTP_ERROR_KINDS = {
    HTTPStatus.NOT_FOUND: "NotFoundError",
    HTTPStatus.CONFLICT: "ConflictError",
    HTTPStatus.METHOD_NOT_ALLOWED: "MethodNotAllowed",
}


class ErrorResponseModel(BaseModel):
    error: str
    message: str
    correlation_id: str
    request_id: Optional[str] = None
    detail: Optional[Any] = None


def create_error_response(status_code: int, error: str, message: str, detail: Any = None) -> JSONResponse:
    content = ErrorResponseModel(
        error=error,
        message=message,
        correlation_id=get_correlation_id(),
        request_id=get_request_id(),
        detail=detail,
    )
    return JSONResponse(status_code=status_code, content=content.model_dump(exclude_none=True))


async def handle_alfred_error(request: Request, exc: AlfredError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{type(exc).__name__} [{exc.error_code}]: {exc.message}")
    return create_error_response(exc.status_code, type(exc).__name__, exc.message, exc.detail)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    logger.warning(f"Rejected {request.method} {request.url.path}: {len(problems)} validation errors")
    return create_error_response(400, "ValidationError", "Request validation failed", problems)


async def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    kind = HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError")
    return create_error_response(exc.status_code, kind, str(exc.detail or HTTPStatus(exc.status_code).phrase))


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled {type(exc).__name__}: {exc}", exc_info=True)
    return create_error_response(500, "InternalError", "An unexpected error occurred")


def setup_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AlfredError, handle_alfred_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)
