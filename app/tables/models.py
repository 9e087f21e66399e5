# app/tables/models.py
"""Database models for saved table configurations."""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime
from datetime import datetime
from app.core.database import Base


class TableConfigRecord(Base):
    """A saved table configuration; the configuration itself is a JSON document."""

    __tablename__ = "table_configs"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    object_api_name = Column(String, nullable=False)
    config_json = Column(Text, nullable=False)  # Serialized TableConfig, current schema version
    created_by = Column(String, nullable=False, default="system")
    created_date = Column(DateTime, default=datetime.now)
    updated_date = Column(DateTime, default=datetime.now, onupdate=datetime.now)
    is_active = Column(Boolean, default=True)
