"""Pydantic schemas for the task CSV import API."""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from taskimport.imports.mapping import (
    FieldMapping,
    IdentityAction,
    IdentityMapping,
    TargetField,
    ValueFieldType,
    ValueMapping,
)


class FieldMappingConfig(BaseModel):
    """Column to task field mapping."""

    source_column: str
    target_field: TargetField
    required: bool = False
    mapped: bool = True
    fixed_value: Optional[str] = Field(
        default=None, description="Constant applied to every row instead of the column value"
    )

    def to_mapping(self) -> FieldMapping:
        return FieldMapping(
            source_column=self.source_column,
            target_field=self.target_field,
            required=self.required,
            mapped=self.mapped,
            fixed_value=self.fixed_value,
        )


class ValueMappingConfig(BaseModel):
    """Priority/status literal translation."""

    source_value: str
    target_value: str
    field_type: ValueFieldType

    def to_mapping(self) -> ValueMapping:
        return ValueMapping(
            source_value=self.source_value,
            target_value=self.target_value,
            field_type=self.field_type,
        )


class IdentityMappingConfig(BaseModel):
    """Decision for one assignee found in the CSV."""

    source_identity: str
    action: IdentityAction
    target_identity_email: Optional[str] = None
    target_member_ref: Optional[str] = None

    def to_mapping(self) -> IdentityMapping:
        return IdentityMapping(
            source_identity=self.source_identity,
            action=self.action,
            target_identity_email=self.target_identity_email,
            target_member_ref=self.target_member_ref,
        )


class TaskImportRequest(BaseModel):
    """Rows plus the three mapping arrays produced by the import wizard."""

    rows: Optional[list[dict[str, Any]]] = Field(
        default=None, description="Parsed CSV rows keyed by header"
    )
    field_mappings: list[FieldMappingConfig] = Field(default_factory=list)
    value_mappings: list[ValueMappingConfig] = Field(default_factory=list)
    identity_mappings: list[IdentityMappingConfig] = Field(default_factory=list)


class SuggestMappingsRequest(BaseModel):
    """Headers and rows to build wizard defaults from."""

    headers: list[str] = Field(..., min_length=1)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    field_mappings: Optional[list[FieldMappingConfig]] = Field(
        default=None, description="Operator-confirmed mappings; auto-detected when omitted"
    )


class ImportIssueResponse(BaseModel):
    row_number: Optional[int] = None
    field: str
    issue_type: str
    message: str
    original_value: Optional[Any] = None


class TaskValidationResponse(BaseModel):
    """Preview validation result; nothing is written."""

    is_valid: bool
    total_tasks: int
    valid_tasks: int
    skipped_rows: int
    errors: list[ImportIssueResponse]
    warnings: list[ImportIssueResponse]


class TaskImportResponse(BaseModel):
    """Result of a committed import."""

    message: str
    imported_count: int
    inserted_task_ids: list[str] = Field(default_factory=list)
    validation_warnings: list[Any] = Field(default_factory=list)
    import_errors: list[Any] = Field(default_factory=list)
    project_name: str
    strategy: str


class StatusOption(BaseModel):
    id: UUID
    name: str
    category: str
    sort_order: int
    is_done: bool


class PriorityOption(BaseModel):
    id: UUID
    name: str
    value: int
    color: Optional[str] = None


class MemberOption(BaseModel):
    id: UUID
    name: str
    email: str
    avatar_url: Optional[str] = None


class TemplateResponse(BaseModel):
    """Target vocabularies offered by the import wizard."""

    project_statuses: list[StatusOption]
    priorities: list[PriorityOption]
    team_members: list[MemberOption]


class SuggestMappingsResponse(BaseModel):
    """Wizard defaults: column, value and identity mapping proposals."""

    field_mappings: list[FieldMappingConfig]
    column_suggestions: dict[str, dict[str, Any]]
    value_mappings: list[ValueMappingConfig]
    identity_mappings: list[IdentityMappingConfig]
