"""
Translation of errors into the JSON error envelope returned by the HTTP API.

Every error response has the shape
``{statusCode, timestamp, path, method, error, message}``.
"""

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from user_service.core.exceptions import UserServiceError

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


def error_body(request: Request, status_code: int, error: str, message: Any) -> dict:
    """Build the error envelope for ``request``."""
    return {
        "statusCode": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "path": request.url.path,
        "method": request.method,
        "error": error,
        "message": message,
    }


def _reason(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


async def user_service_error_handler(request: Request, exc: UserServiceError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, exc.error, exc.detail)
    )


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part not in ("body", "path", "query")]
        field = ".".join(loc) or "body"
        messages.append(f"{field}: {error['msg']}")
    logger.warning(f"{request.method} {request.url.path} -> 400: {messages}")
    return JSONResponse(
        status_code=400,
        content=error_body(request, 400, "Bad Request", messages)
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(request, exc.status_code, _reason(exc.status_code), exc.detail),
        headers=getattr(exc, "headers", None)
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_body(request, 500, "Internal Server Error", INTERNAL_ERROR_MESSAGE)
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the error handlers on ``app``."""
    app.add_exception_handler(UserServiceError, user_service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
