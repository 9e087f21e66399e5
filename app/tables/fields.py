# app/tables/fields.py
"""Ordered field configuration for a table query."""

from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Any
from pydantic import BaseModel, ConfigDict, Field

from app.tables.exceptions import EmptyResult


class FieldVisibilityFilter(str, Enum):
    """Which fields a builder list shows."""

    ALL = "all"
    SELECTED = "selected"
    UNSELECTED = "unselected"


class DiscoveredField(BaseModel):
    """A field as reported by schema discovery."""

    field_name: str = Field(alias="fieldName")
    label: str

    model_config = ConfigDict(populate_by_name=True)


class FieldDescriptor(BaseModel):
    """One configured column: identity is field_name, everything else is editable."""

    field_name: str = Field(alias="fieldName")
    label: str
    visible: bool = True
    sortable: bool = True

    model_config = ConfigDict(populate_by_name=True)


class FilteredFieldView:
    """Live projection over a FieldSet; re-evaluated on every access."""

    def __init__(self, field_set: "FieldSet", mode: FieldVisibilityFilter):
        self._field_set = field_set
        self._mode = FieldVisibilityFilter(mode)

    def _matches(self, descriptor: FieldDescriptor) -> bool:
        if self._mode == FieldVisibilityFilter.SELECTED:
            return descriptor.visible
        if self._mode == FieldVisibilityFilter.UNSELECTED:
            return not descriptor.visible
        return True

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return (f for f in self._field_set if self._matches(f))

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def field_names(self) -> List[str]:
        return [f.field_name for f in self]


class FieldSet:
    """Ordered collection of FieldDescriptor with unique field names.

    Order is significant: it is both the column order of the compiled query
    and the display order of the rendered table. Every mutating operation
    keeps the set of field names and the total count unchanged; only
    ``load_from`` replaces the contents.
    """

    def __init__(self, descriptors: Optional[Iterable[FieldDescriptor]] = None):
        self._fields: List[FieldDescriptor] = []
        for descriptor in descriptors or []:
            if self._index_of(descriptor.field_name) is not None:
                raise ValueError(f"Duplicate field name: {descriptor.field_name}")
            self._fields.append(descriptor)

    @classmethod
    def load_from(cls, discovered: Iterable[Any]) -> "FieldSet":
        """Build a fully visible, sortable FieldSet in discovery order."""
        descriptors = []
        seen = set()
        for item in discovered:
            field = item if isinstance(item, DiscoveredField) else DiscoveredField.model_validate(item)
            if field.field_name in seen:
                continue
            seen.add(field.field_name)
            descriptors.append(
                FieldDescriptor(field_name=field.field_name, label=field.label, visible=True, sortable=True)
            )
        if not descriptors:
            raise EmptyResult("No fields were discovered")
        return cls(descriptors)

    # ===== READ ACCESS =====

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, field_name: object) -> bool:
        return self._index_of(field_name) is not None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldSet):
            return NotImplemented
        return self.to_list() == other.to_list()

    def __repr__(self) -> str:
        return f"FieldSet({self.field_names()!r})"

    def get(self, field_name: str) -> Optional[FieldDescriptor]:
        index = self._index_of(field_name)
        return self._fields[index] if index is not None else None

    def field_names(self) -> List[str]:
        return [f.field_name for f in self._fields]

    def visible_fields(self) -> List[FieldDescriptor]:
        return [f for f in self._fields if f.visible]

    def has_visible(self) -> bool:
        return any(f.visible for f in self._fields)

    def filtered_view(self, mode: FieldVisibilityFilter = FieldVisibilityFilter.ALL) -> FilteredFieldView:
        return FilteredFieldView(self, mode)

    def copy(self) -> "FieldSet":
        return FieldSet(f.model_copy() for f in self._fields)

    def to_list(self) -> List[Dict[str, Any]]:
        """Serialize in the persisted camelCase shape."""
        return [f.model_dump(by_alias=True) for f in self._fields]

    # ===== FIELD EDITS =====

    def set_visible(self, field_name: str, visible: bool) -> None:
        field = self.get(field_name)
        if field is not None:
            field.visible = bool(visible)

    def set_label(self, field_name: str, label: str) -> None:
        field = self.get(field_name)
        if field is not None:
            field.label = label

    def set_sortable(self, field_name: str, sortable: bool) -> None:
        field = self.get(field_name)
        if field is not None:
            field.sortable = bool(sortable)

    def select_all(self) -> None:
        for field in self._fields:
            field.visible = True

    def deselect_all(self) -> None:
        for field in self._fields:
            field.visible = False

    # ===== ORDERING =====

    def move_up(self, field_name: str) -> None:
        index = self._index_of(field_name)
        if index is None or index == 0:
            return
        self._swap(index, index - 1)

    def move_down(self, field_name: str) -> None:
        index = self._index_of(field_name)
        if index is None or index == len(self._fields) - 1:
            return
        self._swap(index, index + 1)

    def reorder(self, moved_field_name: str, target_field_name: str, insert_after: bool) -> None:
        """Move one field immediately before or after another."""
        if moved_field_name == target_field_name:
            return
        moved_index = self._index_of(moved_field_name)
        if moved_index is None or self._index_of(target_field_name) is None:
            return

        moved = self._fields.pop(moved_index)
        target_index = self._index_of(target_field_name)
        insert_at = target_index + 1 if insert_after else target_index
        self._fields.insert(insert_at, moved)

    # ===== INTERNALS =====

    def _index_of(self, field_name: object) -> Optional[int]:
        for index, field in enumerate(self._fields):
            if field.field_name == field_name:
                return index
        return None

    def _swap(self, i: int, j: int) -> None:
        self._fields[i], self._fields[j] = self._fields[j], self._fields[i]
