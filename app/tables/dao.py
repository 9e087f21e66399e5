# app/tables/dao.py
"""Data Access Objects for saved table configurations."""

from sqlalchemy.orm import Session
from sqlalchemy import select
from typing import List, Optional
from datetime import datetime

from app.tables.models import TableConfigRecord


class TableConfigDAO:
    """DAO for TableConfigRecord operations."""

    def __init__(self, db_session: Session):
        self.db = db_session

    async def get_all(self) -> List[TableConfigRecord]:
        """Get all active configurations ordered by name."""
        stmt = (
            select(TableConfigRecord)
            .where(TableConfigRecord.is_active == True)  # noqa: E712
            .order_by(TableConfigRecord.name)
        )
        return list(self.db.execute(stmt).scalars().all())

    async def get_by_id(self, config_id: int) -> Optional[TableConfigRecord]:
        stmt = select(TableConfigRecord).where(
            TableConfigRecord.id == config_id, TableConfigRecord.is_active == True  # noqa: E712
        )
        return self.db.execute(stmt).scalars().first()

    async def get_by_name(self, name: str) -> Optional[TableConfigRecord]:
        stmt = select(TableConfigRecord).where(
            TableConfigRecord.name == name, TableConfigRecord.is_active == True  # noqa: E712
        )
        return self.db.execute(stmt).scalars().first()

    async def create(
        self,
        name: str,
        description: Optional[str],
        object_api_name: str,
        config_json: str,
        created_by: str = "system",
    ) -> TableConfigRecord:
        record = TableConfigRecord(
            name=name,
            description=description,
            object_api_name=object_api_name,
            config_json=config_json,
            created_by=created_by or "system",
            is_active=True,
        )
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    async def update(self, config_id: int, **changes) -> Optional[TableConfigRecord]:
        """Update the given columns of an active configuration."""
        record = await self.get_by_id(config_id)
        if not record:
            return None

        for column, value in changes.items():
            if value is not None and hasattr(record, column):
                setattr(record, column, value)
        record.updated_date = datetime.now()

        self.db.commit()
        self.db.refresh(record)
        return record

    async def delete(self, config_id: int) -> bool:
        """Soft delete a configuration by ID."""
        record = await self.get_by_id(config_id)
        if record:
            record.is_active = False
            self.db.commit()
            return True
        return False
