# app/tables/interfaces.py
"""Collaborators the table query engine talks to.

Each method is a suspension point of the engine. Implementations live in
``app.datasource.service`` (discovery, context lookup, execution) and
``app.tables.service`` (persistence).
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from app.tables.fields import DiscoveredField
from app.tables.schemas import ObjectOption, QueryResult, TableConfig, TableConfigRead, TableConfigSummary


class SchemaDiscovery(ABC):
    @abstractmethod
    async def list_objects(self) -> List[ObjectOption]:
        """All queryable objects."""

    @abstractmethod
    async def list_fields(self, object_name: str) -> List[DiscoveredField]:
        """Fields of an object; raises ObjectNotFound or EmptyResult."""


class ContextSource(ABC):
    @abstractmethod
    async def search_objects(self, term: str) -> List[ObjectOption]:
        """Free-text object search; an empty list when nothing matches."""

    @abstractmethod
    async def get_field_values(
        self, object_name: Optional[str], record_id: str, field_names: Sequence[str]
    ) -> Dict[str, Any]:
        """Field values of one record; raises ResolutionError."""


class QueryExecutor(ABC):
    @abstractmethod
    async def execute(self, query: str) -> QueryResult:
        """Run a compiled query; raises ExecutionError."""


class ConfigStore(ABC):
    @abstractmethod
    async def save(
        self, config: TableConfig, name: str, description: Optional[str] = None, config_id: Optional[int] = None
    ) -> int:
        """Create or update a configuration and return its identifier."""

    @abstractmethod
    async def get_by_id(self, config_id: int) -> Optional[TableConfigRead]:
        """The saved entry with its name and description; raises ConfigParseError."""

    @abstractmethod
    async def load(self, config_id: int) -> TableConfig:
        """Raises ConfigNotFound or ConfigParseError."""

    @abstractmethod
    async def load_by_name(self, name: str) -> TableConfig:
        """Raises ConfigNotFound or ConfigParseError."""

    @abstractmethod
    async def delete(self, config_id: int) -> bool:
        pass

    @abstractmethod
    async def list(self) -> List[TableConfigSummary]:
        pass
