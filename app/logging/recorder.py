# app/logging/recorder.py
"""Builds and stores request log rows outside of a request-scoped session."""

import getpass
import json
import logging
import os
import platform
import socket
from datetime import datetime
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from app.core.database import SessionLocal
from app.logging.dao import LogDAO
from app.logging.schemas import LogCreate
from app.logging.service import LogService

load_dotenv()

logger = logging.getLogger(__name__)

APPLICATION_ID = os.environ.get("APPLICATION_ID", "Unknown")


def _current_username() -> str:
    try:
        return os.environ.get("USER") or os.environ.get("USERNAME") or getpass.getuser() or "unknown_user"
    except (KeyError, OSError):
        return "unknown_user"


def _current_hostname() -> str:
    try:
        return socket.gethostname() or platform.node() or "unknown_host"
    except OSError:
        return "unknown_host"


USERNAME = _current_username()
HOSTNAME = _current_hostname()


def safe_json_dumps(obj: Any) -> str:
    return json.dumps(obj, indent=2, default=str)


def request_body_of(request: Request) -> str:
    """The body the logging middleware buffered, if it ran for this request."""
    return getattr(request.state, "body", None) or ""


def build_log_entry(
    request: Request,
    status_code: int,
    request_body: str,
    response_body: str,
    processing_time: Optional[float] = None,
    error_type: Optional[str] = None,
) -> LogCreate:
    return LogCreate(
        timestamp=datetime.now(),
        method=request.method,
        path=str(request.url.path),
        status_code=status_code,
        client_ip=request.client.host if request.client else None,
        request_headers=json.dumps(dict(request.headers)),
        request_body=request_body,
        response_body=response_body,
        processing_time=processing_time,
        user_agent=request.headers.get("user-agent"),
        username=USERNAME,
        hostname=HOSTNAME,
        application_id=APPLICATION_ID,
        error_type=error_type,
    )


def persist_log(entry: LogCreate) -> None:
    """Write one log row; a failing log write never fails the request."""
    with SessionLocal() as session:
        try:
            LogService(LogDAO(session)).create(entry)
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Could not persist request log for %s %s", entry.method, entry.path)
