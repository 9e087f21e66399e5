# app/tables/compiler.py
"""Compile a field configuration into a query string."""

from typing import Dict, Iterable, Optional, Any

from app.tables.constants import LABEL_PAIR_SEPARATOR, LABEL_SEPARATOR
from app.tables.fields import FieldDescriptor
from app.tables.schemas import coerce_row_limit


def compile_query(
    object_name: Optional[str],
    fields: Iterable[FieldDescriptor],
    filter_clause: Optional[str] = "",
    row_limit: Any = None,
) -> str:
    """
    Build ``SELECT <fields> FROM <object> <filter> LIMIT <limit>``.

    The filter clause is inserted verbatim. An empty clause leaves two
    consecutive spaces before ``LIMIT``; callers may match on substrings, so
    the result is not normalized.

    Returns:
        The query, or an empty string when there is no object or no visible field
    """
    visible = [f.field_name for f in fields if f.visible]
    if not object_name or not visible:
        return ""

    field_list = ", ".join(visible)
    where = filter_clause or ""
    limit = coerce_row_limit(row_limit)
    return f"SELECT {field_list} FROM {object_name} {where} LIMIT {limit}"


def compile_column_label_map(fields: Iterable[FieldDescriptor]) -> Dict[str, str]:
    """Ordered fieldName -> label mapping of the visible fields."""
    return {f.field_name: f.label for f in fields if f.visible}


def serialize_column_labels(label_map: Dict[str, str]) -> str:
    return LABEL_PAIR_SEPARATOR.join(f"{name}{LABEL_SEPARATOR}{label}" for name, label in label_map.items())


def parse_column_labels(column_labels: Optional[str]) -> Dict[str, str]:
    """Inverse of serialize_column_labels; pairs without a separator are ignored."""
    if not column_labels:
        return {}

    label_map: Dict[str, str] = {}
    for pair in column_labels.split(LABEL_PAIR_SEPARATOR):
        if LABEL_SEPARATOR not in pair:
            continue
        name, label = pair.split(LABEL_SEPARATOR, 1)
        label_map[name.strip()] = label.strip()
    return label_map
