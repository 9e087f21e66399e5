# app/tables/reconciler.py
"""Merge a saved field list against a freshly discovered schema."""

from typing import Dict, Iterable, List, Set, Union, Any

from app.tables.fields import FieldDescriptor, FieldSet
from app.tables.schemas import SavedField


def reconcile(saved_fields: Iterable[Union[SavedField, Dict[str, Any]]], discovered: FieldSet) -> FieldSet:
    """
    Produce the effective FieldSet for a loaded configuration.

    Saved fields come first, in saved order, carrying their saved visibility,
    label and sortable flag. Fields that exist in the live schema but not in
    the saved list are appended in discovery order and start hidden, so a
    schema change never silently adds columns to a saved view. Saved fields
    that no longer exist in the schema are dropped.

    Args:
        saved_fields: Field entries from a persisted TableConfig
        discovered: Field list from schema discovery for the same object

    Returns:
        A new FieldSet; neither input is modified
    """
    discovered_index: Dict[str, FieldDescriptor] = {f.field_name: f for f in discovered}
    seen: Set[str] = set()
    merged: List[FieldDescriptor] = []

    for raw in saved_fields:
        saved = raw if isinstance(raw, SavedField) else SavedField.model_validate(raw)
        base = discovered_index.get(saved.field_name)
        if base is None or saved.field_name in seen:
            continue
        seen.add(saved.field_name)
        merged.append(
            base.model_copy(
                update={
                    "visible": saved.visible,
                    "label": saved.label or base.label,
                    "sortable": True if saved.sortable is None else saved.sortable,
                }
            )
        )

    for field in discovered:
        if field.field_name in seen:
            continue
        merged.append(field.model_copy(update={"visible": False, "sortable": True}))

    return FieldSet(merged)
