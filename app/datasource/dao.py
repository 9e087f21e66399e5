# app/datasource/dao.py
"""Reflection-based access to the data source database."""

from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy import MetaData, Table, inspect, select
from sqlalchemy.orm import Session


class DatasourceDAO:
    """Reads the data source schema and rows without declared models."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _inspector(self):
        return inspect(self.db.connection())

    def get_object_names(self) -> List[str]:
        """Tables and views, in name order."""
        inspector = self._inspector()
        return sorted(set(inspector.get_table_names()) | set(inspector.get_view_names()))

    def get_columns(self, object_name: str) -> List[Dict[str, Any]]:
        return list(self._inspector().get_columns(object_name))

    def get_primary_key(self, object_name: str) -> List[str]:
        constraint = self._inspector().get_pk_constraint(object_name) or {}
        return list(constraint.get("constrained_columns") or [])

    def get_row(
        self, object_name: str, key_column: str, key_value: Any, columns: Sequence[str]
    ) -> Optional[Dict[str, Any]]:
        """Fetch selected columns of the row whose key column equals key_value."""
        table = Table(object_name, MetaData(), autoload_with=self.db.connection())
        stmt = select(*[table.c[name] for name in columns]).where(table.c[key_column] == key_value).limit(1)
        row = self.db.execute(stmt).first()
        return dict(row._mapping) if row is not None else None

    def run_query(self, query: str) -> Dict[str, Any]:
        """Execute a raw SELECT and return its column names and row mappings."""
        # Driver-level execution: colons inside literals must not become bind parameters
        result = self.db.connection().exec_driver_sql(query)
        keys = list(result.keys())
        rows = [dict(row._mapping) for row in result]
        return {"keys": keys, "rows": rows}

    def rollback(self) -> None:
        self.db.rollback()
