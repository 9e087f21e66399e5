# app/tables/resolution.py
"""Merge token resolution state tracking."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from app.tables.tokens import scan_tokens


class ResolutionState(str, Enum):
    """Where the merge tokens of the current query stand."""

    NO_TOKENS = "NoTokens"
    AWAITING_RECORD = "AwaitingRecord"
    AWAITING_VALUES = "AwaitingValues"
    RESOLVED = "Resolved"
    ERROR = "Error"


def derive_state(
    tokens: Sequence[str],
    context_record_id: Optional[str],
    field_values: Mapping[str, Any],
    error_message: Optional[str] = None,
) -> ResolutionState:
    """Pure derivation of the resolution state; nothing here is stored."""
    if not tokens:
        return ResolutionState.NO_TOKENS
    if error_message:
        return ResolutionState.ERROR
    if not context_record_id:
        return ResolutionState.AWAITING_RECORD
    if not field_values:
        return ResolutionState.AWAITING_VALUES
    return ResolutionState.RESOLVED


@dataclass(frozen=True)
class FetchTicket:
    """Identity of one value fetch; results are applied only while it is still current."""

    context_object_name: Optional[str]
    context_record_id: str
    field_names: Tuple[str, ...]


class ResolutionStateMachine:
    """
    Tracks merge tokens, the selected context record and its fetched values.

    The machine never performs I/O. Operations that make a fetch necessary
    return True; the caller then takes a ticket with ``begin_fetch``, runs the
    fetch, and hands the outcome back with ``apply_values`` or
    ``apply_failure``. Outcomes whose ticket no longer matches the current
    context object and record, or that were fetched for fewer tokens than the
    query now holds, are discarded.
    """

    def __init__(self) -> None:
        self.tokens: List[str] = []
        self.context_object_name: Optional[str] = None
        self.context_record_id: Optional[str] = None
        self.field_values: Dict[str, Any] = {}
        self.error_message: Optional[str] = None

    @property
    def state(self) -> ResolutionState:
        return derive_state(self.tokens, self.context_record_id, self.field_values, self.error_message)

    def needs_fetch(self) -> bool:
        if not self.context_record_id or not self.tokens:
            return False
        return any(token not in self.field_values for token in self.tokens)

    # ===== TRIGGERS =====

    def update_query(self, query: Optional[str]) -> bool:
        """Re-scan tokens after the query changed. Returns True when a fetch is due."""
        self.tokens = scan_tokens(query)
        return self.needs_fetch()

    def select_context_object(self, object_name: Optional[str]) -> bool:
        """Switching to a different object also drops the selected record."""
        if object_name != self.context_object_name:
            self.context_record_id = None
        self.context_object_name = object_name or None
        self._clear_values()
        return self.needs_fetch()

    def select_record(self, record_id: Optional[str]) -> bool:
        self.context_record_id = record_id or None
        self._clear_values()
        return self.needs_fetch()

    def clear_context(self) -> None:
        self.context_object_name = None
        self.context_record_id = None
        self._clear_values()

    # ===== FETCH LIFECYCLE =====

    def begin_fetch(self) -> FetchTicket:
        if not self.context_record_id:
            raise RuntimeError("Cannot fetch values without a context record")
        self.error_message = None
        return FetchTicket(
            context_object_name=self.context_object_name,
            context_record_id=self.context_record_id,
            field_names=tuple(self.tokens),
        )

    def is_current(self, ticket: FetchTicket) -> bool:
        return (
            ticket.context_object_name == self.context_object_name
            and ticket.context_record_id == self.context_record_id
            and set(self.tokens).issubset(ticket.field_names)
        )

    def apply_values(self, ticket: FetchTicket, values: Mapping[str, Any]) -> bool:
        """Store fetched values. Returns False when the ticket is stale."""
        if not self.is_current(ticket):
            return False
        self.field_values = {name: values.get(name) for name in ticket.field_names}
        self.error_message = None
        return True

    def apply_failure(self, ticket: FetchTicket, message: str) -> bool:
        """Record a failed fetch. The token set stays intact."""
        if not self.is_current(ticket):
            return False
        self.field_values = {}
        self.error_message = message or "Failed to fetch context record values"
        return True

    def _clear_values(self) -> None:
        self.field_values = {}
        self.error_message = None
