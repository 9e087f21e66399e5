# app/tables/router.py
"""API router for the table query module."""

import io
from typing import Dict, List, NoReturn, Optional

import pandas as pd
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response

from app.core.dependencies import DSSessionDep, SessionDep
from app.datasource.dao import DatasourceDAO
from app.datasource.service import DatasourceService
from app.tables.builder import ConfigBuilderSession
from app.tables.constants import SYNTHETIC_KEY_FIELD
from app.tables.dao import TableConfigDAO
from app.tables.exceptions import DiscoveryError, TableQueryError
from app.tables.fields import FieldDescriptor, FieldSet
from app.tables.schemas import (
    ObjectOption,
    PreviewRequest,
    PreviewResponse,
    QueryRequest,
    RenderedTable,
    RenderRequest,
    SortDirection,
    TableConfig,
    TableConfigCreate,
    TableConfigRead,
    TableConfigSummary,
    TableConfigUpdate,
)
from app.tables.service import TableConfigService
from app.tables.viewer import TableViewer

router = APIRouter(prefix="/tables", tags=["tables"])


# ===== DEPENDENCY INJECTION =====


def get_config_dao(db: SessionDep) -> TableConfigDAO:
    return TableConfigDAO(db)


def get_config_service(config_dao: TableConfigDAO = Depends(get_config_dao)) -> TableConfigService:
    return TableConfigService(config_dao)


def get_datasource_dao(ds_db: DSSessionDep) -> DatasourceDAO:
    return DatasourceDAO(ds_db)


def get_datasource_service(ds_dao: DatasourceDAO = Depends(get_datasource_dao)) -> DatasourceService:
    return DatasourceService(ds_dao)


def get_builder(
    config_service: TableConfigService = Depends(get_config_service),
    ds_service: DatasourceService = Depends(get_datasource_service),
) -> ConfigBuilderSession:
    return ConfigBuilderSession(schema=ds_service, store=config_service, context=ds_service)


def get_viewer(
    config_service: TableConfigService = Depends(get_config_service),
    ds_service: DatasourceService = Depends(get_datasource_service),
) -> TableViewer:
    return TableViewer(store=config_service, executor=ds_service, context=ds_service)


def raise_http_error(error: TableQueryError) -> NoReturn:
    """Translate an engine error into an HTTPException."""
    raise HTTPException(status_code=error.status_code, detail=error.message) from error


# ===== SCHEMA DISCOVERY ENDPOINTS =====


@router.get("/objects", response_model=List[ObjectOption])
async def get_objects(
    search: Optional[str] = Query(None, description="Free-text object search"),
    service: DatasourceService = Depends(get_datasource_service),
) -> List[ObjectOption]:
    """List queryable objects, optionally filtered by a search term."""
    if search:
        return await service.search_objects(search)
    return await service.list_objects()


@router.get("/objects/{object_name}/fields", response_model=List[FieldDescriptor])
async def get_object_fields(
    object_name: str, service: DatasourceService = Depends(get_datasource_service)
) -> List[FieldDescriptor]:
    """Discover the fields of an object as a fully visible field list."""
    try:
        return list(FieldSet.load_from(await service.list_fields(object_name)))
    except DiscoveryError as e:
        raise_http_error(e)


# ===== CONFIGURATION ENDPOINTS =====


@router.get("/configs", response_model=List[TableConfigSummary])
async def get_configs(service: TableConfigService = Depends(get_config_service)) -> List[TableConfigSummary]:
    return await service.list()


@router.get("/configs/{config_id}", response_model=TableConfigRead)
async def get_config(config_id: int, service: TableConfigService = Depends(get_config_service)) -> TableConfigRead:
    try:
        config = await service.get_by_id(config_id)
    except TableQueryError as e:
        raise_http_error(e)
    if not config:
        raise HTTPException(status_code=404, detail="Table config not found")
    return config


@router.post("/configs/{config_id}/reconcile", response_model=TableConfig)
async def reconcile_config(
    config_id: int, builder: ConfigBuilderSession = Depends(get_builder)
) -> TableConfig:
    """A saved configuration merged against the object's current schema."""
    try:
        await builder.load_config(config_id)
    except TableQueryError as e:
        raise_http_error(e)
    return builder.to_config()


@router.post("/configs", response_model=TableConfigRead)
async def create_config(
    data: TableConfigCreate, service: TableConfigService = Depends(get_config_service)
) -> TableConfigRead:
    try:
        return await service.create(data)
    except TableQueryError as e:
        raise_http_error(e)


@router.patch("/configs/{config_id}", response_model=TableConfigRead)
async def update_config(
    config_id: int, data: TableConfigUpdate, service: TableConfigService = Depends(get_config_service)
) -> TableConfigRead:
    try:
        return await service.update(config_id, data)
    except TableQueryError as e:
        raise_http_error(e)


@router.delete("/configs/{config_id}")
async def delete_config(
    config_id: int, service: TableConfigService = Depends(get_config_service)
) -> Dict[str, str]:
    if not await service.delete(config_id):
        raise HTTPException(status_code=404, detail="Table config not found")
    return {"message": "Table config deleted successfully"}


# ===== PREVIEW AND RENDER ENDPOINTS =====


@router.post("/preview", response_model=PreviewResponse)
async def preview_query(
    request: PreviewRequest, builder: ConfigBuilderSession = Depends(get_builder)
) -> PreviewResponse:
    """Compile a draft configuration and resolve its merge fields."""
    builder.apply_draft(request.config)
    if request.context_object_name is not None:
        await builder.select_context_object(request.context_object_name)
    if request.context_record_id is not None:
        await builder.select_context_record(request.context_record_id)
    await builder.ensure_context_values()

    return PreviewResponse(
        query=builder.compiled_query,
        column_labels=builder.column_labels,
        tokens=builder.tokens,
        state=builder.resolution_state,
        preview=builder.preview_query,
        error_message=builder.resolution.error_message,
    )


@router.post("/query", response_model=RenderedTable)
async def run_query(request: QueryRequest, viewer: TableViewer = Depends(get_viewer)) -> RenderedTable:
    """Run a query string directly and render it, applying column labels."""
    rendered = await viewer.refresh_with_query(request.query_string, request.column_labels)
    if request.sort_field and viewer.has_data:
        rendered = viewer.sort(request.sort_field, request.sort_direction)
    return rendered


@router.post("/render", response_model=RenderedTable)
async def render_table(request: RenderRequest, viewer: TableViewer = Depends(get_viewer)) -> RenderedTable:
    """Render a saved configuration for a viewer and an optional record page."""
    rendered = await viewer.render_config(
        request.config_name, request.record_id, request.object_api_name, request.viewer_id
    )
    if request.sort_field and viewer.has_data:
        rendered = viewer.sort(request.sort_field, request.sort_direction or SortDirection.ASC)
    return rendered


EXPORT_FORMATS = {
    "csv": "text/csv",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


@router.post("/render/export")
async def export_table(
    request: RenderRequest,
    format: str = Query("csv", description="Export format: csv or xlsx"),
    viewer: TableViewer = Depends(get_viewer),
) -> Response:
    """Render a saved configuration and download it with its column labels as headers."""
    if format not in EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")

    rendered = await render_table(request, viewer)
    if rendered.error_message:
        raise HTTPException(status_code=400, detail=rendered.error_message)

    field_names = [col.field_name for col in rendered.columns]
    df = pd.DataFrame(
        [{k: v for k, v in row.items() if k != SYNTHETIC_KEY_FIELD} for row in rendered.rows],
        columns=field_names,
    )
    df.columns = [col.label for col in rendered.columns]

    if format == "xlsx":
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            # Excel sheet name limit is 31 chars
            df.to_excel(writer, sheet_name=request.config_name[:31] or "Table", index=False)
        content = buffer.getvalue()
    else:
        content = df.to_csv(index=False)

    filename = f"{request.config_name.replace(' ', '_')}.{format}"
    return Response(
        content=content,
        media_type=EXPORT_FORMATS[format],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
