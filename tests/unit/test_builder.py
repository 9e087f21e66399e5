"""
Unit tests for the configuration builder session.
Covers field editing, merge token resolution, stale async results and the save/load lifecycle.
"""

import asyncio
from datetime import datetime
from typing import Dict, List
from unittest.mock import AsyncMock, Mock

import pytest

from app.tables.builder import ConfigBuilderSession
from app.tables.exceptions import ConfigNotFound, ConfigParseError, ObjectNotFound, ResolutionError, ValidationError
from app.tables.fields import DiscoveredField, FieldVisibilityFilter
from app.tables.interfaces import ContextSource, SchemaDiscovery
from app.tables.resolution import ResolutionState
from app.tables.schemas import ObjectOption, TableConfig, TableConfigRead

SCHEMAS = {
    "Account": ["Id", "Name", "Industry", "AnnualRevenue"],
    "Contact": ["Id", "FirstName", "LastName"],
}

RECORDS = {
    "001A": {"Industry": "Technology", "Name": "Acme"},
    "001B": {"Industry": "Energy", "Name": "Globex"},
}


class FakeSchema(SchemaDiscovery):
    """Schema discovery over a fixed dictionary"""

    async def list_objects(self) -> List[ObjectOption]:
        return [ObjectOption(api_name=name, label=name) for name in SCHEMAS]

    async def list_fields(self, object_name: str) -> List[DiscoveredField]:
        if object_name not in SCHEMAS:
            raise ObjectNotFound(f"Object '{object_name}' not found")
        return [DiscoveredField(field_name=name, label=name) for name in SCHEMAS[object_name]]


class FakeContext(ContextSource):
    """Context lookups over a fixed dictionary, counting value fetches"""

    def __init__(self):
        self.fetches = []

    async def search_objects(self, term: str) -> List[ObjectOption]:
        return [ObjectOption(api_name=name, label=name) for name in SCHEMAS if term.lower() in name.lower()]

    async def get_field_values(self, object_name, record_id, field_names) -> Dict:
        self.fetches.append((object_name, record_id, tuple(field_names)))
        if record_id not in RECORDS:
            raise ResolutionError(f"Record '{record_id}' not found")
        return {name: RECORDS[record_id].get(name) for name in field_names}


class GatedContext(FakeContext):
    """Value fetches that complete only when the test releases them"""

    def __init__(self):
        super().__init__()
        self.gates: Dict[str, asyncio.Event] = {}

    async def get_field_values(self, object_name, record_id, field_names) -> Dict:
        gate = self.gates.setdefault(record_id, asyncio.Event())
        await gate.wait()
        return await super().get_field_values(object_name, record_id, field_names)


class TokenGatedContext(FakeContext):
    """Value fetches keyed by the requested field names, released by the test"""

    def __init__(self):
        super().__init__()
        self.gates: Dict[tuple, asyncio.Event] = {}

    async def get_field_values(self, object_name, record_id, field_names) -> Dict:
        gate = self.gates.setdefault(tuple(field_names), asyncio.Event())
        await gate.wait()
        return await super().get_field_values(object_name, record_id, field_names)


class GatedSchema(FakeSchema):
    def __init__(self):
        self.gates: Dict[str, asyncio.Event] = {}

    async def list_fields(self, object_name: str) -> List[DiscoveredField]:
        gate = self.gates.setdefault(object_name, asyncio.Event())
        await gate.wait()
        return await super().list_fields(object_name)


def make_entry(config: TableConfig, id=1, name="Accounts") -> TableConfigRead:
    return TableConfigRead(
        id=id,
        name=name,
        description="Saved",
        object_api_name=config.object_name,
        created_by="system",
        created_date=datetime.now(),
        updated_date=datetime.now(),
        is_active=True,
        config=config,
    )


@pytest.fixture
def mock_store():
    store = Mock()
    store.save = AsyncMock(return_value=11)
    store.get_by_id = AsyncMock(return_value=None)
    store.load = AsyncMock()
    store.load_by_name = AsyncMock()
    store.delete = AsyncMock(return_value=True)
    store.list = AsyncMock(return_value=[])
    return store


@pytest.fixture
def context():
    return FakeContext()


@pytest.fixture
def builder(mock_store, context):
    return ConfigBuilderSession(schema=FakeSchema(), store=mock_store, context=context)


async def account_builder(builder):
    """Builder on Account showing Name and Industry, filtered by a merge field."""
    await builder.select_object("Account")
    await builder.set_field_visible("Id", False)
    await builder.set_field_visible("AnnualRevenue", False)
    await builder.set_filter_clause("WHERE Industry = $record.Industry")
    return builder


class TestObjectSelection:
    """Test object discovery and field loading"""

    async def test_load_objects(self, builder):
        options = await builder.load_objects()

        assert [o.api_name for o in options] == ["Account", "Contact"]

    async def test_select_object_loads_visible_fields(self, builder):
        await builder.select_object("Account")

        assert builder.fields.field_names() == SCHEMAS["Account"]
        assert builder.compiled_query == "SELECT Id, Name, Industry, AnnualRevenue FROM Account  LIMIT 100"
        assert builder.resolution_state == ResolutionState.NO_TOKENS

    async def test_unknown_object_clears_fields_and_raises(self, builder):
        await builder.select_object("Account")

        with pytest.raises(ObjectNotFound):
            await builder.select_object("Opportunity")

        assert len(builder.fields) == 0
        assert builder.compiled_query == ""

    async def test_clearing_object(self, builder):
        await builder.select_object("Account")

        await builder.select_object(None)

        assert builder.has_fields is False

    async def test_superseded_field_load_is_discarded(self, mock_store, context):
        schema = GatedSchema()
        builder = ConfigBuilderSession(schema=schema, store=mock_store, context=context)

        first = asyncio.create_task(builder.select_object("Account"))
        await asyncio.sleep(0)
        second = asyncio.create_task(builder.select_object("Contact"))
        await asyncio.sleep(0)

        schema.gates["Contact"].set()
        await second
        schema.gates["Account"].set()
        await first

        assert builder.object_name == "Contact"
        assert builder.fields.field_names() == SCHEMAS["Contact"]


class TestFieldEditing:
    """Test field edits flowing into the compiled query"""

    async def test_end_to_end_compile_without_record(self, builder):
        await account_builder(builder)

        assert builder.compiled_query == (
            "SELECT Name, Industry FROM Account WHERE Industry = $record.Industry LIMIT 100"
        )
        assert builder.tokens == ["Industry"]
        assert builder.resolution_state == ResolutionState.AWAITING_RECORD
        assert builder.preview_query == ""

    async def test_labels_and_order_flow_into_label_map(self, builder):
        await account_builder(builder)
        builder.set_field_label("Name", "Account Name")
        builder.move_field_down("Name")

        assert builder.column_labels == "Industry=>Industry,Name=>Account Name"
        assert builder.compiled_query.startswith("SELECT Industry, Name FROM Account")

    async def test_drag_and_drop_reorder(self, builder):
        await builder.select_object("Account")

        builder.start_drag("AnnualRevenue")
        builder.drop_on("Id", insert_after=False)

        assert builder.fields.field_names() == ["AnnualRevenue", "Id", "Name", "Industry"]
        assert builder.session.dragging_field is None

    async def test_drop_without_drag_is_noop(self, builder):
        await builder.select_object("Account")
        builder.start_drag("Unknown")

        builder.drop_on("Id", insert_after=True)

        assert builder.fields.field_names() == SCHEMAS["Account"]

    async def test_visibility_filter_view(self, builder):
        await account_builder(builder)

        builder.set_field_visibility_filter(FieldVisibilityFilter.UNSELECTED)

        assert builder.visible_field_view.field_names() == ["Id", "AnnualRevenue"]

    async def test_deselect_all_empties_query(self, builder):
        await account_builder(builder)

        await builder.deselect_all_fields()

        assert builder.compiled_query == ""
        assert builder.resolution_state == ResolutionState.NO_TOKENS
        assert builder.is_save_disabled

    async def test_default_sort_must_be_a_known_field(self, builder):
        await builder.select_object("Account")

        with pytest.raises(ValidationError):
            builder.set_default_sort("Missing")

        builder.set_default_sort("Name", "desc")
        assert builder.default_sort_field == "Name"

    async def test_row_limit_coercion(self, builder):
        await builder.select_object("Account")

        builder.set_row_limit("0")

        assert builder.compiled_query.endswith("LIMIT 100")


class TestContextResolution:
    """Test merge token resolution against a context record"""

    async def test_selecting_record_resolves_preview(self, builder, context):
        await account_builder(builder)

        await builder.select_context_object("Account")
        await builder.select_context_record("001A")

        assert context.fetches == [("Account", "001A", ("Industry",))]
        assert builder.resolution_state == ResolutionState.RESOLVED
        assert builder.preview_query == (
            "SELECT Name, Industry FROM Account WHERE Industry = 'Technology' LIMIT 100"
        )

    async def test_filter_edit_with_record_fetches_immediately(self, builder, context):
        await builder.select_object("Account")
        await builder.select_context_object("Account")
        await builder.select_context_record("001B")
        assert context.fetches == []

        await builder.set_filter_clause("WHERE Name = $record.Name")

        assert context.fetches == [("Account", "001B", ("Name",))]
        assert "'Globex'" in builder.preview_query

    async def test_showing_fields_again_fetches_new_tokens(self, builder, context):
        await account_builder(builder)
        await builder.deselect_all_fields()
        await builder.select_context_object("Account")
        await builder.select_context_record("001A")
        assert context.fetches == []

        await builder.select_all_fields()

        assert context.fetches == [("Account", "001A", ("Industry",))]
        assert builder.resolution_state == ResolutionState.RESOLVED
        assert builder.preview_query == (
            "SELECT Id, Name, Industry, AnnualRevenue FROM Account WHERE Industry = 'Technology' LIMIT 100"
        )

    async def test_fetch_failure_sets_error_without_raising(self, builder):
        await account_builder(builder)
        await builder.select_context_object("Account")

        await builder.select_context_record("404")

        assert builder.resolution_state == ResolutionState.ERROR
        assert builder.tokens == ["Industry"]
        assert builder.preview_query == ""
        assert "404" in builder.resolution.error_message

    async def test_refresh_after_failure_is_user_triggered(self, builder, context):
        await account_builder(builder)
        await builder.select_context_object("Account")
        await builder.select_context_record("404")
        RECORDS["404"] = {"Industry": "Retail"}
        try:
            await builder.refresh_context_values()
        finally:
            del RECORDS["404"]

        assert builder.resolution_state == ResolutionState.RESOLVED
        assert len(context.fetches) == 2

    async def test_clear_context(self, builder):
        await account_builder(builder)
        await builder.select_context_object("Account", label="Accounts")
        await builder.select_context_record("001A")

        builder.clear_context()

        assert builder.resolution_state == ResolutionState.AWAITING_RECORD
        assert builder.session.context_object_label is None
        assert builder.session.context_selection.field_values == {}

    async def test_search_context_objects(self, builder):
        results = await builder.search_context_objects("acc")

        assert [o.api_name for o in results] == ["Account"]
        assert builder.session.show_context_results is True

    async def test_out_of_order_values_keep_latest_record(self, mock_store):
        context = GatedContext()
        builder = ConfigBuilderSession(schema=FakeSchema(), store=mock_store, context=context)
        await builder.select_object("Account")
        await builder.set_filter_clause("WHERE Industry = $record.Industry")
        await builder.select_context_object("Account")

        first = asyncio.create_task(builder.select_context_record("001A"))
        await asyncio.sleep(0)
        second = asyncio.create_task(builder.select_context_record("001B"))
        await asyncio.sleep(0)

        context.gates["001B"].set()
        await second
        context.gates["001A"].set()
        await first

        assert builder.resolution.context_record_id == "001B"
        assert builder.resolution.field_values == {"Industry": "Energy"}

    async def test_values_for_deselected_record_are_dropped(self, mock_store):
        context = GatedContext()
        builder = ConfigBuilderSession(schema=FakeSchema(), store=mock_store, context=context)
        await builder.select_object("Account")
        await builder.set_filter_clause("WHERE Industry = $record.Industry")

        pending = asyncio.create_task(builder.select_context_record("001A"))
        await asyncio.sleep(0)
        builder.clear_context()
        context.gates["001A"].set()
        await pending

        assert builder.resolution.field_values == {}
        assert builder.resolution_state == ResolutionState.AWAITING_RECORD

    async def test_values_for_an_older_token_set_are_dropped(self, mock_store):
        context = TokenGatedContext()
        builder = ConfigBuilderSession(schema=FakeSchema(), store=mock_store, context=context)
        await builder.select_object("Account")
        await builder.select_context_object("Account")
        await builder.select_context_record("001A")

        narrow = asyncio.create_task(builder.set_filter_clause("WHERE Industry = $record.Industry"))
        await asyncio.sleep(0)
        wide = asyncio.create_task(
            builder.set_filter_clause("WHERE Industry = $record.Industry AND Name = $record.Name")
        )
        await asyncio.sleep(0)

        context.gates[("Industry", "Name")].set()
        await wide
        context.gates[("Industry",)].set()
        await narrow

        assert builder.resolution.field_values == {"Industry": "Technology", "Name": "Acme"}
        assert builder.resolution.needs_fetch() is False
        assert builder.preview_query == (
            "SELECT Id, Name, Industry, AnnualRevenue FROM Account "
            "WHERE Industry = 'Technology' AND Name = 'Acme' LIMIT 100"
        )


class TestLifecycle:
    """Test save, load, clone and delete of configurations"""

    async def test_save_requires_name(self, builder, mock_store):
        await account_builder(builder)

        with pytest.raises(ValidationError):
            await builder.save_config("")

        mock_store.save.assert_not_called()
        assert builder.config_id is None

    async def test_save_requires_visible_field(self, builder, mock_store):
        await account_builder(builder)
        await builder.deselect_all_fields()

        with pytest.raises(ValidationError):
            await builder.save_config("Accounts")

        mock_store.save.assert_not_called()

    async def test_save_writes_full_current_shape(self, builder, mock_store):
        await account_builder(builder)
        await builder.select_context_object("Account", label="Account")
        await builder.select_context_record("001A")

        config_id = await builder.save_config("Accounts", "Tech accounts")

        assert config_id == 11
        assert builder.config_id == 11
        assert builder.is_delete_disabled is False
        saved_config, name, description, existing_id = mock_store.save.call_args.args
        assert (name, description, existing_id) == ("Accounts", "Tech accounts", None)
        assert saved_config.schema_version == 2
        assert saved_config.filter_clause == "WHERE Industry = $record.Industry"
        assert [f.field_name for f in saved_config.fields if f.visible] == ["Name", "Industry"]
        assert saved_config.view_state.context_record_id == "001A"

    async def test_load_reconciles_and_restores_context(self, builder, mock_store, context):
        config = TableConfig.model_validate(
            {
                "objectApiName": "Account",
                "fields": [
                    {"fieldName": "Industry", "label": "Sector", "visible": True},
                    {"fieldName": "Legacy", "visible": True},
                    {"fieldName": "Name", "visible": True},
                ],
                "whereClause": "WHERE Industry = $record.Industry",
                "viewState": {"contextObjectName": "Account", "contextRecordId": "001B"},
            }
        )
        mock_store.get_by_id.return_value = make_entry(config, id=5)

        await builder.load_config(5)

        assert builder.config_id == 5
        assert builder.config_name == "Accounts"
        assert builder.fields.field_names() == ["Industry", "Name", "Id", "AnnualRevenue"]
        assert [f.visible for f in builder.fields] == [True, True, False, False]
        assert builder.fields.get("Industry").label == "Sector"
        assert context.fetches == [("Account", "001B", ("Industry",))]
        assert builder.preview_query == "SELECT Industry, Name FROM Account WHERE Industry = 'Energy' LIMIT 100"

    async def test_load_missing_config_raises(self, builder):
        with pytest.raises(ConfigNotFound):
            await builder.load_config(99)

    async def test_load_malformed_config_leaves_session_untouched(self, builder, mock_store):
        await account_builder(builder)
        before = builder.to_config()
        mock_store.get_by_id.side_effect = ConfigParseError("Invalid JSON")

        with pytest.raises(ConfigParseError):
            await builder.load_config(3)

        assert builder.to_config() == before

    async def test_load_with_missing_object_applies_empty_fields(self, builder, mock_store):
        config = TableConfig.model_validate({"objectApiName": "Gone", "fields": [{"fieldName": "Name"}]})
        mock_store.get_by_id.return_value = make_entry(config, id=2, name="Old")

        with pytest.raises(ObjectNotFound):
            await builder.load_config(2)

        assert builder.object_name == "Gone"
        assert builder.config_name == "Old"
        assert len(builder.fields) == 0

    async def test_clone_keeps_draft_as_new_copy(self, builder):
        await account_builder(builder)
        await builder.save_config("Accounts")

        builder.clone()

        assert builder.config_id is None
        assert builder.config_name == "Accounts (Copy)"
        assert builder.compiled_query.startswith("SELECT Name, Industry FROM Account")

    async def test_delete_resets_session(self, builder, mock_store):
        await account_builder(builder)
        await builder.save_config("Accounts")

        await builder.delete_config()

        mock_store.delete.assert_called_once_with(11)
        assert builder.object_name == ""
        assert builder.config_id is None

    async def test_list_configs_delegates_to_store(self, builder, mock_store):
        await builder.list_configs()

        mock_store.list.assert_awaited_once()

    async def test_delete_unsaved_raises(self, builder):
        with pytest.raises(ValidationError):
            await builder.delete_config()
