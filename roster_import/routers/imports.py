"""
Imports Router
Upload, mapping, validation and lifecycle of roster import sessions.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from roster_import.config import settings
from roster_import.database import get_db
from roster_import.dependencies.auth import get_current_active_user
from roster_import.errors import ImportPipelineError, SheetSwitchUnsupportedError
from roster_import.models import ImportSession, User
from roster_import.schemas.import_session import (
    DiagnosticSchema,
    FieldDefinitionSchema,
    ImportSessionResponse,
    MappingRequest,
    MappingResponse,
    SheetInfoSchema,
    SheetSwitchRequest,
    UploadPreview,
    UploadResponse,
    ValidateRequest,
    ValidationResponse,
)
from roster_import.services.column_mapping import FIELD_DEFINITIONS, suggest_mapping
from roster_import.services.extraction import detect_source_format, extract_file, read_upload
from roster_import.services.import_session_service import (
    cancel_session,
    create_session,
    get_accessible_tenant,
    get_session,
    run_validation,
    save_mapping,
)


router = APIRouter()
logger = logging.getLogger(__name__)


def _session_response(session: ImportSession) -> ImportSessionResponse:
    return ImportSessionResponse(
        id=session.id,
        tenant_id=session.tenant_id,
        source_format=session.source_format,
        source_file_name=session.source_file_name,
        selected_sheet=session.selected_sheet,
        headers=session.headers or [],
        total_rows=session.total_rows,
        ocr_confidence=session.ocr_confidence,
        column_mapping=session.column_mapping,
        diagnostics=[DiagnosticSchema(**d) for d in session.diagnostics or []],
        step=session.step,
        status=session.status,
        version=session.version,
        created_at=session.created_at,
        updated_at=session.updated_at,
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_roster(
    file: UploadFile = File(...),
    tenant_id: str = Form(...),
    sheet_name: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """
    Upload a roster file and open an import session.

    The format and size are checked before anything is parsed; the session
    is only created once extraction produced a header and at least one row.
    """
    filename = file.filename or ""
    detect_source_format(filename)
    content = await read_upload(file)
    tenant = await get_accessible_tenant(db, tenant_id, current_user)

    try:
        extraction = await extract_file(content, filename, sheet_name or None)
    except ImportPipelineError:
        raise
    except Exception:
        logger.exception("Unexpected failure extracting %s", filename)
        raise HTTPException(status_code=500, detail="Failed to process the uploaded file")

    suggested = suggest_mapping(extraction.headers)
    session = await create_session(db, current_user, tenant, filename, extraction)

    return UploadResponse(
        session_id=session.id,
        version=session.version,
        preview=UploadPreview(
            sheets=[SheetInfoSchema(name=s.name, row_count=s.row_count) for s in extraction.sheets],
            selected_sheet=extraction.selected_sheet,
            headers=extraction.headers,
            preview_rows=extraction.rows[:settings.preview_rows],
            total_rows=extraction.total_rows,
            suggested_mapping=suggested,
            ocr_confidence=extraction.ocr_confidence,
        ),
    )


@router.get("/fields", response_model=List[FieldDefinitionSchema])
async def list_mapping_fields(
    current_user: User = Depends(get_current_active_user)
):
    """Canonical fields a header can be mapped to."""
    return [
        FieldDefinitionSchema(key=d.field.value, label=d.label, required=d.required)
        for d in FIELD_DEFINITIONS
    ]


@router.get("/{session_id}", response_model=ImportSessionResponse)
async def get_import_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Current state of an import session, for resuming the wizard."""
    session = await get_session(db, session_id, current_user)
    return _session_response(session)


@router.post("/{session_id}/mapping", response_model=MappingResponse)
async def submit_column_mapping(
    session_id: str,
    data: MappingRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Save the header -> field mapping; resubmitting resets validation."""
    session = await save_mapping(db, session_id, current_user, data.mapping, data.version)
    return MappingResponse(
        step=session.step,
        session_status=session.status,
        version=session.version,
    )


@router.post("/{session_id}/validate", response_model=ValidationResponse)
async def validate_import_session(
    session_id: str,
    data: Optional[ValidateRequest] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Normalize and check the mapped rows."""
    expected_version = data.version if data else None
    session, report = await run_validation(db, session_id, current_user, expected_version)

    return ValidationResponse(
        errors=[DiagnosticSchema(**d.to_dict()) for d in report.errors],
        warnings=[DiagnosticSchema(**d.to_dict()) for d in report.warnings],
        valid_rows_count=report.valid_rows_count,
        status=session.status,
        version=session.version,
    )


@router.post("/{session_id}/sheet")
async def switch_sheet(
    session_id: str,
    data: SheetSwitchRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Sheets cannot be switched once rows are extracted."""
    await get_session(db, session_id, current_user)
    raise SheetSwitchUnsupportedError(
        f"Re-upload the file with sheet_name={data.sheet_name!r} to import another sheet"
    )


@router.delete("/{session_id}")
async def delete_import_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel an import session."""
    await cancel_session(db, session_id, current_user)
    return {"status": "success"}
