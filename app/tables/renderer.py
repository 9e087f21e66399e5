# app/tables/renderer.py
"""Client-side table model for an executed query result."""

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from app.tables.constants import ID_FIELD, SYNTHETIC_KEY_FIELD, SYNTHETIC_KEY_PREFIX
from app.tables.schemas import QueryResult, RenderedTable, SortDirection, TableColumn


def sort_key(value: Any) -> Tuple[int, Any]:
    """Empty and None come first, then numbers in numeric order, then everything else by its text."""
    if value is None or value == "":
        return (-1, "")
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))


def record_count_label(count: int) -> str:
    return f"{count} record{'' if count == 1 else 's'}"


class TableRenderer:
    """Holds the fetched rows of one table and sorts them in place."""

    def __init__(self) -> None:
        self.columns: List[TableColumn] = []
        self.rows: List[Dict[str, Any]] = []
        self.key_field: str = ID_FIELD
        self.synthesized_keys: bool = False
        self.sorted_by: Optional[str] = None
        self.sorted_direction: SortDirection = SortDirection.ASC

    def load(self, result: QueryResult, label_overrides: Optional[Mapping[str, str]] = None) -> None:
        """Replace the buffer with a new result, applying label overrides."""
        overrides = label_overrides or {}
        self.columns = [
            TableColumn(
                field_name=col.field_name,
                label=overrides.get(col.field_name) or col.label,
                sortable=True,
            )
            for col in result.columns
        ]

        has_id = any(col.field_name == ID_FIELD for col in result.columns)
        if has_id:
            self.key_field = ID_FIELD
            self.synthesized_keys = False
            self.rows = [dict(row) for row in result.rows]
        else:
            self.key_field = SYNTHETIC_KEY_FIELD
            self.synthesized_keys = True
            self.rows = [
                {**row, SYNTHETIC_KEY_FIELD: f"{SYNTHETIC_KEY_PREFIX}{index}"}
                for index, row in enumerate(result.rows)
            ]
        self.sorted_by = None
        self.sorted_direction = SortDirection.ASC

    def clear(self) -> None:
        self.columns = []
        self.rows = []
        self.key_field = ID_FIELD
        self.synthesized_keys = False
        self.sorted_by = None
        self.sorted_direction = SortDirection.ASC

    def sort(self, field_name: str, direction: SortDirection = SortDirection.ASC) -> List[Dict[str, Any]]:
        """Stable re-sort of the rows already fetched; never re-runs the query."""
        direction = SortDirection(direction)
        self.sorted_by = field_name
        self.sorted_direction = direction
        self.rows = sorted(
            self.rows,
            key=lambda row: sort_key(row.get(field_name)),
            reverse=direction == SortDirection.DESC,
        )
        return self.rows

    def row_keys(self) -> List[Any]:
        return [row.get(self.key_field) for row in self.rows]

    @property
    def record_count_label(self) -> str:
        return record_count_label(len(self.rows))

    def to_rendered(self, query: Optional[str] = None, error_message: Optional[str] = None) -> RenderedTable:
        return RenderedTable(
            query=query,
            columns=self.columns,
            rows=self.rows,
            key_field=self.key_field,
            synthesized_keys=self.synthesized_keys,
            sorted_by=self.sorted_by,
            sorted_direction=self.sorted_direction,
            record_count_label=self.record_count_label,
            error_message=error_message,
        )
