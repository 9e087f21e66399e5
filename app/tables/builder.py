# app/tables/builder.py
"""Configuration builder session.

A session owns two aggregates: the draft ``TableConfig`` being edited
(object, fields, filter clause, limits, sort and display options) and a
transient ``SessionState`` (context record selection, context search
dropdown, drag marker). Discovery, persistence and context lookups go
through the collaborators in ``app.tables.interfaces``.

Every awaited call may complete after the user has moved on. Results are
applied only if the identity they were requested for (object name, load
generation, context object and record) is still the current one.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.tables.compiler import compile_column_label_map, compile_query, serialize_column_labels
from app.tables.constants import CONFIG_SCHEMA_VERSION, DEFAULT_ROW_LIMIT
from app.tables.exceptions import ConfigNotFound, DiscoveryError, ValidationError
from app.tables.fields import FieldDescriptor, FieldSet, FieldVisibilityFilter, FilteredFieldView
from app.tables.interfaces import ConfigStore, ContextSource, SchemaDiscovery
from app.tables.preview import assemble
from app.tables.reconciler import reconcile
from app.tables.resolution import ResolutionState, ResolutionStateMachine
from app.tables.schemas import (
    DisplayOptions,
    ObjectOption,
    SavedField,
    SortDirection,
    TableConfig,
    TableConfigRead,
    TableConfigSummary,
    ViewState,
    coerce_row_limit,
)

logger = logging.getLogger(__name__)


@dataclass
class ContextRecordSelection:
    context_object_name: Optional[str]
    context_record_id: Optional[str]
    field_values: Dict[str, Any]


@dataclass
class SessionState:
    """Transient, never-persisted state of one builder session."""

    resolution: ResolutionStateMachine = field(default_factory=ResolutionStateMachine)
    context_object_label: Optional[str] = None
    context_search_term: Optional[str] = None
    context_results: List[ObjectOption] = field(default_factory=list)
    show_context_results: bool = False
    dragging_field: Optional[str] = None

    @property
    def context_selection(self) -> ContextRecordSelection:
        return ContextRecordSelection(
            context_object_name=self.resolution.context_object_name,
            context_record_id=self.resolution.context_record_id,
            field_values=dict(self.resolution.field_values),
        )


def field_set_from_saved(saved_fields: List[SavedField]) -> FieldSet:
    """FieldSet straight from saved entries, without a schema to reconcile against."""
    descriptors = []
    seen = set()
    for saved in saved_fields:
        if saved.field_name in seen:
            continue
        seen.add(saved.field_name)
        descriptors.append(
            FieldDescriptor(
                field_name=saved.field_name,
                label=saved.label or saved.field_name,
                visible=saved.visible,
                sortable=True if saved.sortable is None else saved.sortable,
            )
        )
    return FieldSet(descriptors)


class ConfigBuilderSession:
    """One operator editing one table configuration."""

    def __init__(
        self,
        schema: SchemaDiscovery,
        store: ConfigStore,
        context: ContextSource,
        viewer_id: Optional[str] = None,
    ):
        self.schema = schema
        self.store = store
        self.context = context
        self.viewer_id = viewer_id

        self.object_options: List[ObjectOption] = []
        self.is_loading = False
        self._load_generation = 0
        self._reset_draft()
        self.session = SessionState()

    def _reset_draft(self) -> None:
        self.config_id: Optional[int] = None
        self.config_name = ""
        self.config_description = ""
        self.object_name = ""
        self.fields = FieldSet()
        self.filter_clause = ""
        self.row_limit = DEFAULT_ROW_LIMIT
        self.default_sort_field: Optional[str] = None
        self.default_sort_direction = SortDirection.ASC
        self.display_options = DisplayOptions()
        self.field_visibility_filter = FieldVisibilityFilter.ALL

    # ===== PROJECTIONS =====

    @property
    def resolution(self) -> ResolutionStateMachine:
        return self.session.resolution

    @property
    def compiled_query(self) -> str:
        return compile_query(self.object_name, self.fields, self.filter_clause, self.row_limit)

    @property
    def column_label_map(self) -> Dict[str, str]:
        return compile_column_label_map(self.fields)

    @property
    def column_labels(self) -> str:
        return serialize_column_labels(self.column_label_map)

    @property
    def tokens(self) -> List[str]:
        return list(self.resolution.tokens)

    @property
    def resolution_state(self) -> ResolutionState:
        return self.resolution.state

    @property
    def preview_query(self) -> str:
        """Executable preview; empty while merge tokens are unresolved."""
        return assemble(
            self.compiled_query,
            self.resolution.tokens,
            self.resolution.state,
            self.resolution.field_values,
            viewer_id=self.viewer_id,
            subject_record_id=self.resolution.context_record_id,
        )

    @property
    def visible_field_view(self) -> FilteredFieldView:
        return self.fields.filtered_view(self.field_visibility_filter)

    @property
    def has_fields(self) -> bool:
        return len(self.fields) > 0

    @property
    def is_save_disabled(self) -> bool:
        return not self.config_name or not self.object_name or not self.fields.has_visible()

    @property
    def is_delete_disabled(self) -> bool:
        return not self.config_id

    # ===== OBJECT & FIELD DISCOVERY =====

    async def load_objects(self) -> List[ObjectOption]:
        """Objects for the object picker; an unavailable source yields an empty list."""
        try:
            self.object_options = await self.schema.list_objects()
        except DiscoveryError as e:
            logger.info("No objects available: %s", e.message)
            self.object_options = []
        return self.object_options

    async def select_object(self, object_name: Optional[str]) -> None:
        """
        Switch the draft to another object and load its fields.

        Raises:
            DiscoveryError: the field list is cleared first
        """
        self.object_name = object_name or ""
        if not self.object_name:
            self.fields = FieldSet()
            self._rescan()
            return

        requested = self.object_name
        self.is_loading = True
        try:
            discovered = await self.schema.list_fields(requested)
            fields = FieldSet.load_from(discovered)
        except DiscoveryError:
            if self.object_name == requested:
                self.fields = FieldSet()
                self._rescan()
            raise
        finally:
            self.is_loading = False

        if self.object_name != requested:
            logger.debug("Discarding fields for superseded object %s", requested)
            return

        self.fields = fields
        if self.default_sort_field not in self.fields:
            self.default_sort_field = None
        await self._rescan_and_fetch()

    # ===== FIELD EDITS =====

    async def set_field_visible(self, field_name: str, visible: bool) -> None:
        self.fields.set_visible(field_name, visible)
        await self._rescan_and_fetch()

    def set_field_label(self, field_name: str, label: str) -> None:
        self.fields.set_label(field_name, label)

    def set_field_sortable(self, field_name: str, sortable: bool) -> None:
        self.fields.set_sortable(field_name, sortable)

    async def select_all_fields(self) -> None:
        self.fields.select_all()
        await self._rescan_and_fetch()

    async def deselect_all_fields(self) -> None:
        self.fields.deselect_all()
        await self._rescan_and_fetch()

    def move_field_up(self, field_name: str) -> None:
        self.fields.move_up(field_name)

    def move_field_down(self, field_name: str) -> None:
        self.fields.move_down(field_name)

    def set_field_visibility_filter(self, mode: FieldVisibilityFilter) -> None:
        self.field_visibility_filter = FieldVisibilityFilter(mode)

    # Drag and drop: the host UI reports which field is dragged and where it lands.

    def start_drag(self, field_name: str) -> None:
        self.session.dragging_field = field_name if field_name in self.fields else None

    def drop_on(self, target_field_name: str, insert_after: bool) -> None:
        moved = self.session.dragging_field
        self.session.dragging_field = None
        if moved:
            self.fields.reorder(moved, target_field_name, insert_after)

    def end_drag(self) -> None:
        self.session.dragging_field = None

    # ===== QUERY OPTIONS =====

    async def set_filter_clause(self, filter_clause: Optional[str]) -> None:
        self.filter_clause = filter_clause or ""
        await self._rescan_and_fetch()

    def set_row_limit(self, row_limit: Any) -> None:
        self.row_limit = coerce_row_limit(row_limit)

    def set_default_sort(self, field_name: Optional[str], direction: SortDirection = SortDirection.ASC) -> None:
        if field_name and field_name not in self.fields:
            raise ValidationError(f"Unknown sort field: {field_name}")
        self.default_sort_field = field_name or None
        self.default_sort_direction = SortDirection(direction)

    def set_display_options(self, **options: bool) -> None:
        self.display_options = self.display_options.model_copy(update=options)

    # ===== CONTEXT RECORD =====

    async def search_context_objects(self, term: str) -> List[ObjectOption]:
        self.session.context_search_term = term
        results = await self.context.search_objects(term)
        if self.session.context_search_term != term:
            return results
        self.session.context_results = results
        self.session.show_context_results = bool(results)
        return results

    async def select_context_object(self, object_name: Optional[str], label: Optional[str] = None) -> None:
        self.session.context_object_label = label or object_name
        self.session.show_context_results = False
        if self.resolution.select_context_object(object_name):
            await self._fetch_values()

    async def select_context_record(self, record_id: Optional[str]) -> None:
        if self.resolution.select_record(record_id):
            await self._fetch_values()

    def clear_context(self) -> None:
        self.resolution.clear_context()
        self.session.context_object_label = None

    async def refresh_context_values(self) -> None:
        """User-triggered (re)fetch, e.g. after a failed attempt."""
        if self.resolution.context_record_id and self.resolution.tokens:
            await self._fetch_values()

    async def ensure_context_values(self) -> None:
        """Fetch values if the current tokens are not all resolved yet."""
        if self.resolution.needs_fetch():
            await self._fetch_values()

    # ===== LIFECYCLE =====

    def new(self) -> None:
        self._load_generation += 1
        self._reset_draft()
        self.session = SessionState()

    def clone(self) -> None:
        """Keep the draft as an unsaved copy; transient state is discarded."""
        name = self.config_name
        self.config_id = None
        self.config_name = f"{name} (Copy)" if name else ""
        self.session = SessionState()
        self._rescan()

    def apply_draft(self, config: TableConfig) -> None:
        """Take a configuration as-is, without reconciling against the schema."""
        self._apply_config(config, field_set_from_saved(config.fields))

    async def load_config(self, config_id: int) -> None:
        """
        Load a saved configuration and reconcile it against the live schema.

        Raises:
            ConfigNotFound, ConfigParseError: the session is left untouched
            DiscoveryError: the configuration is applied with an empty field list
        """
        self._load_generation += 1
        generation = self._load_generation

        entry = await self.store.get_by_id(config_id)
        if entry is None:
            raise ConfigNotFound(f"Table config {config_id} not found")
        if generation != self._load_generation:
            return
        config = entry.config

        self.is_loading = True
        try:
            discovered = FieldSet.load_from(await self.schema.list_fields(config.object_name))
        except DiscoveryError:
            if generation == self._load_generation:
                self._apply_config(config, FieldSet(), config_id=config_id)
                self._apply_entry(entry)
            raise
        finally:
            self.is_loading = False

        if generation != self._load_generation:
            logger.debug("Discarding superseded load of config %s", config_id)
            return

        self._apply_config(config, reconcile(config.fields, discovered), config_id=config_id)
        self._apply_entry(entry)
        await self.ensure_context_values()

    async def save_config(self, name: Optional[str] = None, description: Optional[str] = None) -> int:
        """
        Persist the draft, creating or updating it.

        Raises:
            ValidationError: nothing is saved and the draft is unchanged
        """
        name = (name if name is not None else self.config_name or "").strip()
        if not name:
            raise ValidationError("Config Name is required")
        if not self.object_name:
            raise ValidationError("Please select an object")
        if not self.fields.has_visible():
            raise ValidationError("At least one field must be visible")

        if description is None:
            description = self.config_description

        self.is_loading = True
        try:
            config_id = await self.store.save(self.to_config(), name, description, self.config_id)
        finally:
            self.is_loading = False

        self.config_id = config_id
        self.config_name = name
        self.config_description = description or ""
        logger.info("Saved table config %s (%s)", config_id, name)
        return config_id

    async def delete_config(self) -> None:
        if not self.config_id:
            raise ValidationError("No saved config is selected")
        await self.store.delete(self.config_id)
        self.new()

    async def list_configs(self) -> List[TableConfigSummary]:
        return await self.store.list()

    def to_config(self) -> TableConfig:
        """Snapshot the draft in the current schema version."""
        return TableConfig(
            schema_version=CONFIG_SCHEMA_VERSION,
            object_name=self.object_name,
            fields=[SavedField.model_validate(f) for f in self.fields.to_list()],
            filter_clause=self.filter_clause,
            row_limit=self.row_limit,
            default_sort_field=self.default_sort_field,
            default_sort_direction=self.default_sort_direction,
            display_options=self.display_options.model_copy(),
            view_state=ViewState(
                field_visibility_filter=self.field_visibility_filter,
                context_object_name=self.resolution.context_object_name,
                context_object_label=self.session.context_object_label,
                context_search_term=self.session.context_search_term,
                context_record_id=self.resolution.context_record_id,
            ),
        )

    # ===== INTERNALS =====

    def _apply_config(self, config: TableConfig, fields: FieldSet, config_id: Optional[int] = None) -> None:
        self.config_id = config_id
        self.object_name = config.object_name
        self.fields = fields
        self.filter_clause = config.filter_clause
        self.row_limit = config.row_limit
        self.default_sort_field = config.default_sort_field if config.default_sort_field in fields else None
        self.default_sort_direction = config.default_sort_direction
        self.display_options = config.display_options.model_copy()
        self.field_visibility_filter = config.view_state.field_visibility_filter

        view_state = config.view_state
        self.session = SessionState(
            context_object_label=view_state.context_object_label,
            context_search_term=view_state.context_search_term,
        )
        self.resolution.select_context_object(view_state.context_object_name)
        self.resolution.select_record(view_state.context_record_id)
        self._rescan()

    def _apply_entry(self, entry: TableConfigRead) -> None:
        self.config_name = entry.name
        self.config_description = entry.description or ""

    def _rescan(self) -> bool:
        return self.resolution.update_query(self.compiled_query)

    async def _rescan_and_fetch(self) -> None:
        if self._rescan():
            await self._fetch_values()

    async def _fetch_values(self) -> None:
        ticket = self.resolution.begin_fetch()
        try:
            values = await self.context.get_field_values(
                ticket.context_object_name, ticket.context_record_id, list(ticket.field_names)
            )
        except Exception as e:
            message = getattr(e, "message", None) or str(e)
            if self.resolution.apply_failure(ticket, message):
                logger.warning("Failed to fetch values for record %s: %s", ticket.context_record_id, message)
            return

        if not self.resolution.apply_values(ticket, values):
            logger.debug("Discarding values for superseded record %s", ticket.context_record_id)
