"""Task CSV import API routes."""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from taskimport.auth.dependencies import get_current_user_id
from taskimport.common.db import get_db
from taskimport.common.request_info import get_request_ip, get_request_user_agent
from taskimport.imports import schemas
from taskimport.imports.service import TaskImportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/task-csv-import", tags=["task-csv-import"])


@router.get("/{project_id}/template", response_model=schemas.TemplateResponse)
async def get_template_fields(
    project_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Statuses, priorities and team members available to the import."""
    return schemas.TemplateResponse(
        **TaskImportService.get_template(db, project_id, user_id)
    )


@router.post(
    "/{project_id}/suggest-mappings", response_model=schemas.SuggestMappingsResponse
)
async def suggest_mappings(
    project_id: UUID,
    request: schemas.SuggestMappingsRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Propose column, value and identity mappings for a parsed CSV."""
    field_mappings = None
    if request.field_mappings is not None:
        field_mappings = [m.to_mapping() for m in request.field_mappings]

    suggestions = TaskImportService.suggest(
        db,
        project_id,
        user_id,
        headers=request.headers,
        rows=request.rows,
        field_mappings=field_mappings,
    )

    return schemas.SuggestMappingsResponse(
        field_mappings=[
            schemas.FieldMappingConfig(
                source_column=m.source_column,
                target_field=m.target_field,
                required=m.required,
                mapped=m.mapped,
                fixed_value=m.fixed_value,
            )
            for m in suggestions["field_mappings"]
        ],
        column_suggestions=suggestions["column_suggestions"],
        value_mappings=[
            schemas.ValueMappingConfig(
                source_value=m.source_value,
                target_value=m.target_value,
                field_type=m.field_type,
            )
            for m in suggestions["value_mappings"]
        ],
        identity_mappings=[
            schemas.IdentityMappingConfig(
                source_identity=m.source_identity,
                action=m.action,
                target_identity_email=m.target_identity_email,
                target_member_ref=m.target_member_ref,
            )
            for m in suggestions["identity_mappings"]
        ],
    )


@router.post("/{project_id}/validate", response_model=schemas.TaskValidationResponse)
async def validate_import(
    project_id: UUID,
    request: schemas.TaskImportRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Validate rows and mappings without importing."""
    validation = TaskImportService.validate_only(
        db,
        project_id,
        user_id,
        rows=request.rows,
        field_mappings=[m.to_mapping() for m in request.field_mappings],
        value_mappings=[m.to_mapping() for m in request.value_mappings],
        identity_mappings=[m.to_mapping() for m in request.identity_mappings],
    )
    return schemas.TaskValidationResponse(**validation.to_dict())


@router.post(
    "/{project_id}/tasks",
    response_model=schemas.TaskImportResponse,
    status_code=status.HTTP_201_CREATED,
)
async def import_tasks(
    project_id: UUID,
    request: schemas.TaskImportRequest,
    http_request: Request,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Import tasks from parsed CSV rows in one transaction."""
    report = TaskImportService.import_tasks(
        db,
        project_id,
        user_id,
        rows=request.rows,
        field_mappings=[m.to_mapping() for m in request.field_mappings],
        value_mappings=[m.to_mapping() for m in request.value_mappings],
        identity_mappings=[m.to_mapping() for m in request.identity_mappings],
        ip=get_request_ip(http_request),
        user_agent=get_request_user_agent(http_request),
    )
    return schemas.TaskImportResponse(**report.to_dict())
