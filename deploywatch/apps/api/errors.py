from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from deploywatch.apps.api.response import error_envelope, is_versioned_request
from deploywatch.core.errors import DeployWatchError


logger = logging.getLogger(__name__)

_STATUS_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
}


def _error_json(request: Request, status_code: int, *, code: str, message: str, details: Any = None) -> JSONResponse:
    # Unversioned routes (the cron trigger) keep the flat {success, message} body schedulers expect.
    if is_versioned_request(request):
        content = error_envelope(request, code=code, message=message, details=details)
    else:
        content = {"success": False, "message": message}
    return JSONResponse(content=content, status_code=status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _STATUS_CODES.get(exc.status_code, "HTTP_ERROR")
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_json(request, exc.status_code, code=code, message=message)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_json(
        request,
        422,
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details={"errors": exc.errors()},
    )


async def deploywatch_exception_handler(request: Request, exc: DeployWatchError) -> JSONResponse:
    # Domain errors reaching the API are infrastructure faults (corrupt state, database).
    logger.error("request_failed path=%s error=%s", request.url.path, type(exc).__name__, exc_info=exc)
    return _error_json(request, 500, code=type(exc).__name__, message=str(exc))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("request_unhandled_error path=%s", request.url.path, exc_info=exc)
    return _error_json(request, 500, code="INTERNAL_ERROR", message="Internal server error")
