"""
Import Session Schemas
Pydantic models for the roster import API.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime
from uuid import UUID

from roster_import.services.column_mapping import CanonicalField


class SheetInfoSchema(BaseModel):
    """Sheet catalog entry."""
    name: str
    row_count: int

    class Config:
        from_attributes = True


class UploadPreview(BaseModel):
    """What the client needs to build the mapping step."""
    sheets: List[SheetInfoSchema]
    selected_sheet: Optional[str] = None
    headers: List[str]
    preview_rows: List[List[Any]]
    total_rows: int
    suggested_mapping: Dict[str, str]
    ocr_confidence: Optional[float] = None


class UploadResponse(BaseModel):
    """Schema for upload response."""
    session_id: UUID
    version: int
    preview: UploadPreview


class MappingRequest(BaseModel):
    """Column mapping submitted by the client; unknown field keys are rejected."""
    mapping: Dict[str, CanonicalField]
    version: Optional[int] = None


class MappingResponse(BaseModel):
    status: str = "success"
    step: int
    session_status: str
    version: int


class ValidateRequest(BaseModel):
    version: Optional[int] = None


class SheetSwitchRequest(BaseModel):
    sheet_name: str = Field(..., min_length=1)


class DiagnosticSchema(BaseModel):
    """One validation finding; `row` is null for batch-level findings."""
    scope: str
    severity: str
    code: str
    row: Optional[int] = None
    rows: List[int] = []
    field: str
    message: str
    raw_value: Optional[str] = None


class ValidationResponse(BaseModel):
    """Schema for validation response."""
    errors: List[DiagnosticSchema]
    warnings: List[DiagnosticSchema]
    valid_rows_count: int
    status: str
    version: int


class ImportSessionResponse(BaseModel):
    """Schema for import session response."""
    id: UUID
    tenant_id: UUID
    source_format: str
    source_file_name: str
    selected_sheet: Optional[str] = None
    headers: List[str]
    total_rows: int
    ocr_confidence: Optional[float] = None
    column_mapping: Optional[Dict[str, str]] = None
    diagnostics: List[DiagnosticSchema] = []
    step: int
    status: str
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FieldDefinitionSchema(BaseModel):
    """Canonical field offered as a mapping target."""
    key: str
    label: str
    required: bool
