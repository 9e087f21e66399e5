# app/tables/service.py
"""Service layer for saved table configurations."""

import logging
from typing import List, Optional

from app.tables.dao import TableConfigDAO
from app.tables.exceptions import ConfigNotFound, ValidationError
from app.tables.interfaces import ConfigStore
from app.tables.models import TableConfigRecord
from app.tables.schemas import (
    TableConfig,
    TableConfigCreate,
    TableConfigRead,
    TableConfigSummary,
    TableConfigUpdate,
    dump_table_config,
    read_table_config,
)

logger = logging.getLogger(__name__)


class TableConfigService(ConfigStore):
    """CRUD over saved configurations; also the persistence collaborator of the builder."""

    def __init__(self, config_dao: TableConfigDAO):
        self.config_dao = config_dao

    # ===== CORE CRUD OPERATIONS =====

    async def get_by_id(self, config_id: int) -> Optional[TableConfigRead]:
        record = await self.config_dao.get_by_id(config_id)
        return self._to_read(record) if record else None

    async def create(self, data: TableConfigCreate) -> TableConfigRead:
        self._validate_config(data.config)
        await self._ensure_unique_name(data.name)

        record = await self.config_dao.create(
            name=data.name,
            description=data.description,
            object_api_name=data.config.object_name,
            config_json=dump_table_config(data.config),
            created_by=data.created_by or "system",
        )
        logger.info("Created table config %s (%s)", record.id, record.name)
        return self._to_read(record)

    async def update(self, config_id: int, data: TableConfigUpdate) -> TableConfigRead:
        existing = await self.config_dao.get_by_id(config_id)
        if not existing:
            raise ConfigNotFound(f"Table config {config_id} not found")

        if data.name is not None and data.name != existing.name:
            await self._ensure_unique_name(data.name, exclude_id=config_id)

        changes = {"name": data.name, "description": data.description}
        if data.config is not None:
            self._validate_config(data.config)
            changes["object_api_name"] = data.config.object_name
            changes["config_json"] = dump_table_config(data.config)

        record = await self.config_dao.update(config_id, **changes)
        logger.info("Updated table config %s", config_id)
        return self._to_read(record)

    async def get_summaries(self) -> List[TableConfigSummary]:
        records = await self.config_dao.get_all()
        return [TableConfigSummary.model_validate(record) for record in records]

    # ===== CONFIG STORE =====

    async def save(
        self, config: TableConfig, name: str, description: Optional[str] = None, config_id: Optional[int] = None
    ) -> int:
        if config_id:
            saved = await self.update(
                config_id, TableConfigUpdate(name=name, description=description, config=config)
            )
        else:
            saved = await self.create(TableConfigCreate(name=name, description=description, config=config))
        return saved.id

    async def load(self, config_id: int) -> TableConfig:
        record = await self.config_dao.get_by_id(config_id)
        if not record:
            raise ConfigNotFound(f"Table config {config_id} not found")
        return read_table_config(record.config_json)

    async def load_by_name(self, name: str) -> TableConfig:
        record = await self.config_dao.get_by_name(name)
        if not record:
            raise ConfigNotFound(f"Table config '{name}' not found")
        return read_table_config(record.config_json)

    async def delete(self, config_id: int) -> bool:
        deleted = await self.config_dao.delete(config_id)
        if deleted:
            logger.info("Deleted table config %s", config_id)
        return deleted

    async def list(self) -> List[TableConfigSummary]:
        return await self.get_summaries()

    # ===== HELPERS =====

    def _validate_config(self, config: TableConfig) -> None:
        if not config.object_name:
            raise ValidationError("Please select an object")
        if not any(field.visible for field in config.fields):
            raise ValidationError("At least one field must be visible")

    async def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        existing = await self.config_dao.get_by_name(name)
        if existing and existing.id != exclude_id:
            raise ValidationError(f"A table config named '{name}' already exists")

    def _to_read(self, record: TableConfigRecord) -> TableConfigRead:
        """Build the response; the stored JSON is read through the versioned reader."""
        return TableConfigRead(
            id=record.id,
            name=record.name,
            description=record.description,
            object_api_name=record.object_api_name,
            created_by=record.created_by,
            created_date=record.created_date,
            updated_date=record.updated_date,
            is_active=record.is_active,
            config=read_table_config(record.config_json),
        )
