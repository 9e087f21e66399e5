# app/tables/tokens.py
"""Merge token detection for compiled queries."""

import re
from typing import List, Optional

from app.tables.constants import RECORD_SIGIL, RECORD_TOKEN_PATTERN


def scan_tokens(query: Optional[str]) -> List[str]:
    """
    Return the distinct ``$record.<Field>`` field names in first-appearance order.

    Example:
        >>> scan_tokens("WHERE Industry = $record.Industry AND Name = $record.Industry")
        ['Industry']
    """
    if not query:
        return []

    tokens: List[str] = []
    for match in RECORD_TOKEN_PATTERN.finditer(query):
        field_name = match.group(1)
        if field_name not in tokens:
            tokens.append(field_name)
    return tokens


def token_text(field_name: str) -> str:
    """Placeholder text of a merge token as it appears in a query."""
    return f"{RECORD_SIGIL}.{field_name}"


def token_pattern(placeholder: str) -> "re.Pattern[str]":
    """Match a placeholder only where it is not followed by more identifier characters."""
    return re.compile(re.escape(placeholder) + r"(?![A-Za-z0-9_])")
