# app/tables/schemas.py
"""Pydantic schemas for the table query module.

``TableConfig`` is the persisted unit. It is stored as JSON using the
camelCase keys of the original configurator payload and is read
forward-compatibly: every key added after version 1 has a default, and
unknown keys are ignored.
"""

import json
from typing import Optional, List, Dict, Any, Union
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from app.tables.constants import CONFIG_SCHEMA_VERSION, DEFAULT_ROW_LIMIT
from app.tables.exceptions import ConfigParseError
from app.tables.fields import FieldVisibilityFilter
from app.tables.resolution import ResolutionState


class SortDirection(str, Enum):
    """Sort direction options."""

    ASC = "asc"
    DESC = "desc"


def coerce_row_limit(value: Any) -> int:
    """Missing, zero, negative or non-numeric limits fall back to the default."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_ROW_LIMIT
    return limit if limit > 0 else DEFAULT_ROW_LIMIT


# ===== PERSISTED CONFIG SCHEMAS =====


class SavedField(BaseModel):
    """A field entry as persisted. Version 1 payloads have no sortable flag."""

    field_name: str = Field(alias="fieldName")
    label: Optional[str] = None
    visible: bool = True
    sortable: Optional[bool] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class DisplayOptions(BaseModel):
    show_record_count: bool = Field(default=False, alias="showRecordCount")
    show_search: bool = Field(default=False, alias="showSearch")
    show_refresh: bool = Field(default=False, alias="showRefresh")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ViewState(BaseModel):
    """Builder view state saved alongside the configuration."""

    field_visibility_filter: FieldVisibilityFilter = Field(
        default=FieldVisibilityFilter.ALL, alias="fieldVisibilityFilter"
    )
    context_object_name: Optional[str] = Field(default=None, alias="contextObjectName")
    context_object_label: Optional[str] = Field(default=None, alias="contextObjectLabel")
    context_search_term: Optional[str] = Field(default=None, alias="contextSearchTerm")
    context_record_id: Optional[str] = Field(default=None, alias="contextRecordId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class TableConfig(BaseModel):
    """Complete persisted configuration of one table query."""

    schema_version: int = Field(default=1, alias="schemaVersion")
    object_name: str = Field(default="", alias="objectApiName")
    fields: List[SavedField] = []
    filter_clause: str = Field(default="", alias="whereClause")
    row_limit: int = Field(default=DEFAULT_ROW_LIMIT, alias="limit")
    default_sort_field: Optional[str] = Field(default=None, alias="defaultSortField")
    default_sort_direction: SortDirection = Field(default=SortDirection.ASC, alias="defaultSortDirection")
    display_options: DisplayOptions = Field(default_factory=DisplayOptions, alias="displayOptions")
    view_state: ViewState = Field(default_factory=ViewState, alias="viewState")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("object_name", "filter_clause", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("row_limit", mode="before")
    @classmethod
    def validate_row_limit(cls, v: Any) -> int:
        return coerce_row_limit(v)

    @field_validator("default_sort_direction", mode="before")
    @classmethod
    def validate_sort_direction(cls, v: Any) -> Any:
        if v is None or v == "":
            return SortDirection.ASC
        return v.lower() if isinstance(v, str) else v

    @field_validator("display_options", "view_state", mode="before")
    @classmethod
    def none_as_default(cls, v: Any) -> Any:
        return {} if v is None else v


def read_table_config(raw: Union[str, bytes, Dict[str, Any], None]) -> TableConfig:
    """
    Read a persisted configuration of any schema version.

    Raises:
        ConfigParseError: if the payload is not JSON, not an object, or has
            values of the wrong shape
    """
    if raw is None:
        raise ConfigParseError("Configuration payload is empty")

    payload: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except ValueError as e:
            raise ConfigParseError(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ConfigParseError("Configuration payload must be a JSON object")

    try:
        return TableConfig.model_validate(payload)
    except PydanticValidationError as e:
        raise ConfigParseError(f"Invalid configuration: {e}") from e


def dump_table_config(config: TableConfig) -> str:
    """Serialize with the current schema version and the full key set."""
    current = config.model_copy(update={"schema_version": CONFIG_SCHEMA_VERSION})
    return json.dumps(current.model_dump(mode="json", by_alias=True))


# ===== CONFIG RECORD SCHEMAS =====


class TableConfigBase(BaseModel):
    """Base schema for saved table configurations."""

    name: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True, extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Config name cannot be empty")
        if len(v.strip()) > 255:
            raise ValueError("Config name cannot exceed 255 characters")
        return v.strip()


class TableConfigCreate(TableConfigBase):
    config: TableConfig
    created_by: Optional[str] = "system"


class TableConfigUpdate(BaseModel):
    """Update schema - allows partial updates."""

    name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[TableConfig] = None

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            if not v.strip():
                raise ValueError("Config name cannot be empty")
            return v.strip()
        return v


class TableConfigRead(TableConfigBase):
    id: int
    object_api_name: str
    created_by: Optional[str] = None
    created_date: datetime
    updated_date: datetime
    is_active: bool
    config: TableConfig


class TableConfigSummary(BaseModel):
    """Listing entry for saved configurations."""

    id: int
    name: str
    object_api_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ===== DATA SOURCE SCHEMAS =====


class ObjectOption(BaseModel):
    api_name: str = Field(alias="apiName")
    label: str

    model_config = ConfigDict(populate_by_name=True)


class TableColumn(BaseModel):
    field_name: str = Field(alias="fieldName")
    label: str
    sortable: bool = True

    model_config = ConfigDict(populate_by_name=True)


class QueryResult(BaseModel):
    """Raw result of executing a query string."""

    columns: List[TableColumn] = []
    rows: List[Dict[str, Any]] = []


# ===== PREVIEW / RENDER SCHEMAS =====


class PreviewRequest(BaseModel):
    config: TableConfig
    context_object_name: Optional[str] = None
    context_record_id: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class PreviewResponse(BaseModel):
    query: str
    column_labels: str
    tokens: List[str] = []
    state: ResolutionState
    preview: str
    error_message: Optional[str] = None


class QueryRequest(BaseModel):
    query_string: str
    column_labels: Optional[str] = None
    sort_field: Optional[str] = None
    sort_direction: SortDirection = SortDirection.ASC

    model_config = ConfigDict(extra="forbid")


class RenderRequest(BaseModel):
    config_name: str
    record_id: Optional[str] = None
    object_api_name: Optional[str] = None
    viewer_id: Optional[str] = None
    sort_field: Optional[str] = None
    sort_direction: Optional[SortDirection] = None

    model_config = ConfigDict(extra="forbid")


class RenderedTable(BaseModel):
    """What the table viewer shows."""

    query: Optional[str] = None
    columns: List[TableColumn] = []
    rows: List[Dict[str, Any]] = []
    key_field: str
    synthesized_keys: bool = False
    sorted_by: Optional[str] = None
    sorted_direction: SortDirection = SortDirection.ASC
    record_count_label: str
    error_message: Optional[str] = None
