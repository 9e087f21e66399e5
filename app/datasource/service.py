# app/datasource/service.py
"""Schema discovery, context lookup and query execution over the data source."""

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import sqlparse
from sqlalchemy.exc import SQLAlchemyError

from app.datasource.dao import DatasourceDAO
from app.tables.constants import ID_FIELD, RECORD_TOKEN_PATTERN
from app.tables.exceptions import EmptyResult, ExecutionError, ObjectNotFound, ResolutionError
from app.tables.fields import DiscoveredField
from app.tables.interfaces import ContextSource, QueryExecutor, SchemaDiscovery
from app.tables.schemas import ObjectOption, QueryResult, TableColumn

logger = logging.getLogger(__name__)


def humanize(name: str) -> str:
    """account_contact -> Account Contact; names without underscores are kept as-is."""
    if "_" not in name:
        return name
    return " ".join(part.capitalize() for part in name.split("_") if part)


def validate_select(query: str) -> None:
    """
    Accept exactly one SELECT statement with no unresolved merge fields.

    Raises:
        ExecutionError: for empty, multi-statement or non-SELECT input
    """
    if not query or not query.strip():
        raise ExecutionError("Query string is empty")

    statements = [s for s in sqlparse.split(query) if s.strip()]
    if len(statements) != 1:
        raise ExecutionError("Multiple SQL statements not allowed - only single SELECT statements permitted")

    statement = sqlparse.parse(statements[0])[0]
    if statement.get_type() != "SELECT":
        raise ExecutionError("Only SELECT queries can be executed")

    if RECORD_TOKEN_PATTERN.search(query):
        raise ExecutionError("Query still contains unresolved $record merge fields")


class DatasourceService(SchemaDiscovery, ContextSource, QueryExecutor):
    """Adapter between the table query engine and the data source database."""

    def __init__(self, ds_dao: DatasourceDAO):
        self.ds_dao = ds_dao

    # ===== SCHEMA DISCOVERY =====

    async def list_objects(self) -> List[ObjectOption]:
        return [ObjectOption(api_name=name, label=humanize(name)) for name in self.ds_dao.get_object_names()]

    async def list_fields(self, object_name: str) -> List[DiscoveredField]:
        if not object_name or object_name not in self.ds_dao.get_object_names():
            raise ObjectNotFound(f"Object '{object_name}' not found")

        columns = self.ds_dao.get_columns(object_name)
        if not columns:
            raise EmptyResult(f"Object '{object_name}' has no fields")

        return [
            DiscoveredField(field_name=col["name"], label=col.get("comment") or humanize(col["name"]))
            for col in columns
        ]

    # ===== CONTEXT LOOKUP =====

    async def search_objects(self, term: str) -> List[ObjectOption]:
        needle = (term or "").strip().lower()
        options = await self.list_objects()
        if not needle:
            return options
        return [o for o in options if needle in o.api_name.lower() or needle in o.label.lower()]

    async def get_field_values(
        self, object_name: Optional[str], record_id: str, field_names: Sequence[str]
    ) -> Dict[str, Any]:
        if not field_names:
            return {}
        if not object_name or object_name not in self.ds_dao.get_object_names():
            raise ResolutionError(f"Context object '{object_name}' not found")

        available = {col["name"] for col in self.ds_dao.get_columns(object_name)}
        unknown = [name for name in field_names if name not in available]
        if unknown:
            raise ResolutionError(f"Unknown fields on {object_name}: {', '.join(unknown)}")

        key_column = self._key_column(object_name, available)
        try:
            row = self.ds_dao.get_row(object_name, key_column, record_id, list(field_names))
        except SQLAlchemyError as e:
            self.ds_dao.rollback()
            raise ResolutionError(f"Record data error: {e}") from e

        if row is None:
            raise ResolutionError(f"Record '{record_id}' not found on {object_name}")
        return row

    def _key_column(self, object_name: str, available: set) -> str:
        if ID_FIELD in available:
            return ID_FIELD
        primary_key = self.ds_dao.get_primary_key(object_name)
        if len(primary_key) == 1:
            return primary_key[0]
        raise ResolutionError(f"Object '{object_name}' has no single identifier column")

    # ===== QUERY EXECUTION =====

    async def execute(self, query: str) -> QueryResult:
        validate_select(query)

        start_time = time.time()
        try:
            result = self.ds_dao.run_query(query)
        except SQLAlchemyError as e:
            self.ds_dao.rollback()
            logger.warning("Query failed: %s", query)
            raise ExecutionError(str(getattr(e, "orig", None) or e)) from e
        duration_ms = (time.time() - start_time) * 1000

        logger.info("Executed query returning %d rows in %.1f ms", len(result["rows"]), duration_ms)
        return QueryResult(
            columns=[TableColumn(field_name=key, label=humanize(key)) for key in result["keys"]],
            rows=result["rows"],
        )
