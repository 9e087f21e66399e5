# app/logging/exception_handlers.py
"""
Application-level exception handlers.

Handled errors are tagged on ``request.state`` so the logging middleware
records their type with the response. Unhandled exceptions never reach the
middleware, so they are persisted here directly.
"""

import logging
import traceback

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError, ResponseValidationError
from fastapi.responses import JSONResponse

from app.logging.recorder import build_log_entry, persist_log, request_body_of, safe_json_dumps
from app.tables.exceptions import TableQueryError

logger = logging.getLogger(__name__)


def _convert_error(error):
    if isinstance(error, dict):
        return {k: _convert_error(v) for k, v in error.items()}
    if isinstance(error, list):
        return [_convert_error(item) for item in error]
    return str(error)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions and log them to database"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    persist_log(
        build_log_entry(
            request,
            status_code=500,
            request_body=request_body_of(request),
            response_body=safe_json_dumps(
                {"error": str(exc), "type": type(exc).__name__, "traceback": traceback.format_exc()}
            ),
            error_type=type(exc).__name__,
        )
    )
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


async def response_validation_exception_handler(request: Request, exc: ResponseValidationError):
    request.state.error_type = type(exc).__name__
    logger.error("Response validation failed on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error: Response validation failed."},
    )


async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    request.state.error_type = type(exc).__name__
    return JSONResponse(status_code=422, content={"detail": _convert_error(exc.errors())})


async def table_query_exception_handler(request: Request, exc: TableQueryError):
    """Engine errors that escaped a router are answered with their own status."""
    request.state.error_type = type(exc).__name__
    logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def http_exception_handler(request: Request, exc: HTTPException):
    if exc.status_code >= 400:
        cause = exc.__cause__
        request.state.error_type = type(cause).__name__ if cause else type(exc).__name__
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )
