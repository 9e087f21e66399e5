# app/logging/service.py
"""Service layer for reading request logs."""

from typing import List, Optional

from app.logging.dao import LogDAO
from app.logging.models import Log
from app.logging.schemas import LogCreate, LogRead


class LogService:
    def __init__(self, log_dao: LogDAO):
        self.dao = log_dao

    def get_logs_with_filters(
        self,
        limit: int = 50,
        offset: int = 0,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[LogRead]:
        logs = self.dao.get_logs_with_filters(
            limit=limit, offset=offset, hours=hours, status_min=status_min, status_max=status_max, search=search
        )
        return [LogRead.model_validate(log) for log in logs]

    def count_logs_with_filters(
        self,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        search: Optional[str] = None,
    ) -> int:
        return self.dao.count_logs_with_filters(hours=hours, status_min=status_min, status_max=status_max, search=search)

    def get_by_id(self, log_id: int) -> Optional[LogRead]:
        log = self.dao.get_by_id(log_id)
        return LogRead.model_validate(log) if log else None

    def create(self, data: LogCreate) -> LogRead:
        return LogRead.model_validate(self.dao.add(Log(**data.model_dump())))
