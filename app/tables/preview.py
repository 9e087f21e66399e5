# app/tables/preview.py
"""Assemble the executable query from a compiled query and resolved values."""

from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from app.tables.constants import CURRENT_USER_PLACEHOLDER, SUBJECT_RECORD_PLACEHOLDER
from app.tables.resolution import ResolutionState
from app.tables.tokens import token_pattern, token_text


def format_value(value: Any) -> str:
    """
    Render a resolved value as a query literal.

    Strings are wrapped in single quotes without escaping embedded quotes,
    so ``O'Brien`` becomes ``'O'Brien'``.
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    return f"'{value}'"


def substitute(query: str, placeholder: str, literal: str) -> str:
    """Replace every occurrence of a placeholder with a literal."""
    return token_pattern(placeholder).sub(lambda _: literal, query)


def substitute_singletons(
    query: str, viewer_id: Optional[str] = None, subject_record_id: Optional[str] = None
) -> str:
    """Fill ``$CurrentUserId`` and ``$recordId`` with quoted ids when they are known."""
    if viewer_id is not None:
        query = substitute(query, CURRENT_USER_PLACEHOLDER, f"'{viewer_id}'")
    if subject_record_id is not None:
        query = substitute(query, SUBJECT_RECORD_PLACEHOLDER, f"'{subject_record_id}'")
    return query


def assemble(
    compiled_query: str,
    tokens: Sequence[str],
    state: ResolutionState,
    values: Mapping[str, Any],
    viewer_id: Optional[str] = None,
    subject_record_id: Optional[str] = None,
) -> str:
    """
    Produce the query that may be shown or executed.

    An empty string means the query is not previewable yet: it still holds
    merge tokens that have no values, and must not be executed.
    """
    if state == ResolutionState.NO_TOKENS:
        return substitute_singletons(compiled_query, viewer_id, subject_record_id)
    if state != ResolutionState.RESOLVED:
        return ""

    query = compiled_query
    for field_name in tokens:
        query = substitute(query, token_text(field_name), format_value(values.get(field_name)))
    return substitute_singletons(query, viewer_id, subject_record_id)
