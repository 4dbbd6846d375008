"""
Import Session Service
Loads, advances and deletes import sessions for their owning user.
"""
import logging
import uuid
from typing import Any, Mapping, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from roster_import.errors import (
    MappingIncompleteError,
    SessionConflictError,
    SessionNotFoundError,
    TenantNotFoundError,
)
from roster_import.helpers.registry_helpers import get_administered_tenant, get_existing_unit_numbers
from roster_import.models import ImportSession, Tenant, User
from roster_import.services.extraction import ExtractionResult
from roster_import.services.session_state import (
    Uploaded,
    load_state,
    record_validation,
    store_state,
    submit_mapping,
)
from roster_import.services.validation import ValidationReport, validate_rows

logger = logging.getLogger(__name__)


def parse_uuid(value: Any) -> Optional[uuid.UUID]:
    """UUID from a path or form value, None when malformed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


async def get_accessible_tenant(db: AsyncSession, tenant_id: Any, user: User) -> Tenant:
    """
    Tenant the user administers.

    Raises:
        TenantNotFoundError: unknown id, malformed id, or someone else's tenant
    """
    parsed = parse_uuid(tenant_id)
    tenant = await get_administered_tenant(db, parsed, user) if parsed else None
    if tenant is None:
        raise TenantNotFoundError()
    return tenant


async def create_session(
    db: AsyncSession,
    user: User,
    tenant: Tenant,
    file_name: str,
    extraction: ExtractionResult
) -> ImportSession:
    """Persist a freshly extracted file as a PENDING session."""
    session = ImportSession(
        tenant_id=tenant.id,
        user_id=user.id,
        source_format=extraction.source_format.value,
        source_file_name=file_name,
        selected_sheet=extraction.selected_sheet,
        headers=list(extraction.headers),
        raw_rows=[list(row) for row in extraction.rows],
        ocr_confidence=extraction.ocr_confidence,
    )
    store_state(session, Uploaded())
    db.add(session)
    await db.flush()

    logger.info(
        "Created import session %s for tenant %s: %s, %d rows",
        session.id, tenant.id, file_name, session.total_rows
    )
    return session


async def get_session(db: AsyncSession, session_id: Any, user: User) -> ImportSession:
    """
    Load a session owned by the user within a tenant they still administer.

    Raises:
        SessionNotFoundError: missing, malformed id, or not visible to the user
    """
    parsed = parse_uuid(session_id)
    if parsed is None:
        raise SessionNotFoundError()

    result = await db.execute(
        select(ImportSession)
        .join(Tenant, Tenant.id == ImportSession.tenant_id)
        .where(
            ImportSession.id == parsed,
            ImportSession.user_id == user.id,
            Tenant.admin_id == user.id,
        )
    )
    session = result.scalar_one_or_none()
    if session is None:
        raise SessionNotFoundError()
    return session


def check_version(session: ImportSession, expected_version: Optional[int]) -> None:
    """Reject a write based on a stale read of the session."""
    if expected_version is not None and expected_version != session.version:
        raise SessionConflictError(
            "Import session was modified by another request; reload and retry",
            details={"current_version": session.version},
        )


async def _flush(db: AsyncSession, session: ImportSession) -> None:
    try:
        await db.flush()
    except StaleDataError as e:
        raise SessionConflictError(
            "Import session was modified by another request; reload and retry"
        ) from e
    await db.refresh(session)


async def save_mapping(
    db: AsyncSession,
    session_id: Any,
    user: User,
    mapping: Mapping[str, Any],
    expected_version: Optional[int] = None
) -> ImportSession:
    """
    Store a column mapping and move the session to MAPPING.

    Raises:
        SessionNotFoundError, SessionConflictError, MappingIncompleteError
    """
    session = await get_session(db, session_id, user)
    check_version(session, expected_version)

    state = submit_mapping(load_state(session), mapping)
    store_state(session, state)
    await _flush(db, session)

    logger.info(
        "Session %s mapped %d columns, status=%s", session.id, len(state.column_mapping), session.status
    )
    return session


async def run_validation(
    db: AsyncSession,
    session_id: Any,
    user: User,
    expected_version: Optional[int] = None
) -> Tuple[ImportSession, ValidationReport]:
    """
    Validate a mapped session's rows and store the outcome.

    Returns:
        The updated session and the validation report

    Raises:
        SessionNotFoundError, SessionConflictError, MappingIncompleteError
    """
    session = await get_session(db, session_id, user)
    check_version(session, expected_version)

    state = load_state(session)
    if isinstance(state, Uploaded):
        raise MappingIncompleteError("Submit a column mapping before validating")

    existing_units = await get_existing_unit_numbers(db, session.tenant_id)
    report = validate_rows(
        session.headers or [],
        session.raw_rows or [],
        state.column_mapping,
        existing_units,
    )
    store_state(session, record_validation(state, report))
    await _flush(db, session)

    logger.info(
        "Session %s validated: %d rows, %d errors, %d warnings, status=%s",
        session.id, report.valid_rows_count, len(report.errors), len(report.warnings), session.status
    )
    return session, report


async def cancel_session(
    db: AsyncSession,
    session_id: Any,
    user: User,
    expected_version: Optional[int] = None
) -> None:
    """Delete a session the user owns."""
    session = await get_session(db, session_id, user)
    check_version(session, expected_version)

    await db.delete(session)
    try:
        await db.flush()
    except StaleDataError as e:
        raise SessionConflictError("Import session was modified by another request") from e

    logger.info("Cancelled import session %s", session.id)
