# app/logging/middleware.py
"""Request logging middleware."""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.background import BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.logging.recorder import APPLICATION_ID, HOSTNAME, USERNAME, build_log_entry, persist_log

logger = logging.getLogger(__name__)

EXCLUDED_PATHS = ("/api/logs", "/api/docs", "/api/redoc", "/api/openapi.json")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Records every API request with its response in the ``log`` table."""

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        logger.info(
            "Logging middleware initialized with username: %s on host: %s, App ID: %s",
            USERNAME,
            HOSTNAME,
            APPLICATION_ID,
        )

    async def dispatch(self, request: Request, call_next: Callable):
        if any(request.url.path.startswith(path) for path in EXCLUDED_PATHS):
            return await call_next(request)

        start_time = time.time()

        body_bytes = await request.body()
        request_body = body_bytes.decode("utf-8", errors="ignore")
        request.state.body = request_body

        # Reconstruct stream
        async def receive() -> dict:
            return {"type": "http.request", "body": body_bytes}

        request = Request(request.scope, receive=receive)

        response = await call_next(request)
        duration_ms = (time.time() - start_time) * 1000
        status_code = response.status_code

        response_body = b""
        if isinstance(response, Response) and hasattr(response, "body"):
            response_body = response.body
        elif hasattr(response, "body_iterator"):
            original_iterator = response.body_iterator
            chunks = []

            async def buffer_iterator():
                nonlocal response_body
                async for chunk in original_iterator:
                    chunks.append(chunk)
                    yield chunk
                response_body = b"".join(chunks)

            response.body_iterator = buffer_iterator()

        # File exports are logged by size only
        disposition = response.headers.get("content-disposition", "")
        is_export = disposition.startswith("attachment")

        def log_to_db():
            if is_export:
                body_to_log = f"[File export, {len(response_body)} bytes]"
            elif response_body:
                body_to_log = response_body.decode("utf-8", errors="ignore")
            else:
                body_to_log = "[Response body not available]"

            persist_log(
                build_log_entry(
                    request,
                    status_code=status_code,
                    request_body=request_body,
                    response_body=body_to_log,
                    processing_time=duration_ms,
                    error_type=getattr(request.state, "error_type", None),
                )
            )

        tasks = BackgroundTasks()
        if getattr(response, "background", None) is not None:
            tasks.add_task(response.background)
        tasks.add_task(log_to_db)
        response.background = tasks
        return response
