# app/tables/viewer.py
"""Runtime table viewer: render a saved configuration or a direct query."""

import logging
from typing import Dict, Optional

from app.tables.builder import field_set_from_saved
from app.tables.compiler import compile_column_label_map, compile_query, parse_column_labels
from app.tables.exceptions import ExecutionError, TableQueryError, ValidationError
from app.tables.interfaces import ConfigStore, ContextSource, QueryExecutor
from app.tables.preview import assemble
from app.tables.renderer import TableRenderer
from app.tables.resolution import ResolutionState, ResolutionStateMachine
from app.tables.schemas import RenderedTable, SortDirection

logger = logging.getLogger(__name__)


class TableViewer:
    """
    Shows the result of one table query.

    A viewer either renders a saved configuration by name, resolving
    ``$record.`` merge fields against the record it is displayed on, or
    renders a query string handed over directly (the builder preview).
    Failures never raise out of the render calls; they leave the viewer in an
    error state with no rows.
    """

    def __init__(self, store: ConfigStore, executor: QueryExecutor, context: ContextSource):
        self.store = store
        self.executor = executor
        self.context = context

        self.renderer = TableRenderer()
        self.column_label_map: Dict[str, str] = {}
        self.assembled_query: Optional[str] = None
        self.error_message = ""
        self.is_loading = False
        self._generation = 0

    # ===== STATUS =====

    @property
    def has_data(self) -> bool:
        return not self.is_loading and not self.error_message and len(self.renderer.rows) > 0

    @property
    def has_error(self) -> bool:
        return not self.is_loading and bool(self.error_message)

    @property
    def is_empty(self) -> bool:
        return (
            not self.is_loading
            and not self.error_message
            and len(self.renderer.rows) == 0
            and bool(self.assembled_query)
        )

    @property
    def record_count_label(self) -> str:
        return self.renderer.record_count_label

    def to_rendered(self) -> RenderedTable:
        return self.renderer.to_rendered(query=self.assembled_query, error_message=self.error_message or None)

    # ===== RENDERING =====

    async def render_config(
        self,
        config_name: str,
        record_id: Optional[str] = None,
        object_api_name: Optional[str] = None,
        viewer_id: Optional[str] = None,
    ) -> RenderedTable:
        """Load a saved configuration by name, resolve its placeholders and run it."""
        self._generation += 1
        generation = self._generation
        self._reset()

        if not config_name:
            self._handle_error("Config Error", "A config name is required")
            return self.to_rendered()

        self.is_loading = True
        try:
            config = await self.store.load_by_name(config_name)
        except TableQueryError as e:
            if generation == self._generation:
                self._handle_error("Config Error", e)
            return self.to_rendered()
        finally:
            self.is_loading = False

        if generation != self._generation:
            return self.to_rendered()

        fields = field_set_from_saved(config.fields)
        if not fields.has_visible():
            self._handle_error("Config Error", "No visible fields configured")
            return self.to_rendered()

        self.column_label_map = compile_column_label_map(fields)
        query = compile_query(config.object_name, fields, config.filter_clause, config.row_limit)

        resolution = ResolutionStateMachine()
        resolution.update_query(query)
        if resolution.state != ResolutionState.NO_TOKENS:
            if not object_api_name or not record_id:
                self._handle_error("Config Error", ValidationError("$record merge fields require a record page"))
                return self.to_rendered()

            resolution.select_context_object(object_api_name)
            resolution.select_record(record_id)
            ticket = resolution.begin_fetch()
            self.is_loading = True
            try:
                values = await self.context.get_field_values(
                    object_api_name, record_id, list(ticket.field_names)
                )
            except Exception as e:
                resolution.apply_failure(ticket, str(e))
                if generation == self._generation:
                    self._handle_error("Record data error", e)
                return self.to_rendered()
            finally:
                self.is_loading = False
            resolution.apply_values(ticket, values)

        if generation != self._generation:
            return self.to_rendered()

        final_query = assemble(
            query,
            resolution.tokens,
            resolution.state,
            resolution.field_values,
            viewer_id=viewer_id,
            subject_record_id=record_id,
        )
        await self._execute_and_render(final_query, generation)

        if generation == self._generation and config.default_sort_field and self.has_data:
            self.sort(config.default_sort_field, config.default_sort_direction)
        return self.to_rendered()

    async def refresh_with_query(self, query_string: str, column_labels: Optional[str] = None) -> RenderedTable:
        """Render a query string directly, e.g. the builder's preview."""
        self._generation += 1
        generation = self._generation
        self._reset()
        if column_labels:
            self.column_label_map = parse_column_labels(column_labels)
        await self._execute_and_render(query_string, generation)
        return self.to_rendered()

    def sort(self, field_name: str, direction: SortDirection = SortDirection.ASC) -> RenderedTable:
        self.renderer.sort(field_name, direction)
        return self.to_rendered()

    # ===== INTERNALS =====

    async def _execute_and_render(self, query_string: str, generation: int) -> None:
        self.is_loading = True
        self.error_message = ""
        try:
            result = await self.executor.execute(query_string)
        except ExecutionError as e:
            if generation == self._generation:
                self.renderer.clear()
                self._handle_error("Query Error", e)
            return
        finally:
            self.is_loading = False

        if generation != self._generation:
            logger.debug("Discarding superseded query result")
            return

        self.assembled_query = query_string
        self.renderer.load(result, self.column_label_map)

    def _reset(self) -> None:
        self.renderer.clear()
        self.column_label_map = {}
        self.assembled_query = None
        self.error_message = ""

    def _handle_error(self, title: str, error) -> None:
        self.is_loading = False
        message = error if isinstance(error, str) else getattr(error, "message", None) or str(error)
        self.error_message = message
        logger.warning("%s: %s", title, message)
