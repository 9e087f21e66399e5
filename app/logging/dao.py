# app/logging/dao.py
"""Data access for request logs."""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import String, cast, desc, func, or_, select
from sqlalchemy.orm import Session

from app.core.base_dao import BaseDAO
from app.logging.models import Log


class LogDAO(BaseDAO[Log]):
    def __init__(self, db_session: Session):
        super().__init__(Log, db_session)

    def _apply_filters(
        self,
        query,
        hours: int,
        status_min: Optional[int],
        status_max: Optional[int],
        search: Optional[str],
    ):
        query = query.where(self.model.timestamp >= datetime.now() - timedelta(hours=hours))
        if status_min is not None:
            query = query.where(self.model.status_code >= status_min)
        if status_max is not None:
            query = query.where(self.model.status_code <= status_max)
        if search:
            term = f"%{search}%"
            query = query.where(
                or_(
                    self.model.path.ilike(term),
                    self.model.method.ilike(term),
                    self.model.username.ilike(term),
                    self.model.error_type.ilike(term),
                    cast(self.model.status_code, String).ilike(term),
                )
            )
        return query

    def get_logs_with_filters(
        self,
        limit: int = 50,
        offset: int = 0,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        search: Optional[str] = None,
    ) -> List[Log]:
        """Most recent logs first."""
        query = self._apply_filters(select(self.model), hours, status_min, status_max, search)
        query = query.order_by(desc(self.model.timestamp), desc(self.model.id)).offset(offset).limit(limit)
        return list(self.db.execute(query).scalars().all())

    def count_logs_with_filters(
        self,
        hours: int = 24,
        status_min: Optional[int] = None,
        status_max: Optional[int] = None,
        search: Optional[str] = None,
    ) -> int:
        query = self._apply_filters(
            select(func.count()).select_from(self.model), hours, status_min, status_max, search
        )
        return self.db.execute(query).scalar_one()
