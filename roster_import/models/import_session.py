"""
Import Session Model
Tracks one roster import through upload, mapping and validation.
"""
from sqlalchemy import String, Integer, Float, DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from datetime import datetime
from typing import Any, Dict, List, Optional
import enum
import uuid

from roster_import.database import Base, JSONType
from roster_import.models.user import _utcnow


class SourceFormat(str, enum.Enum):
    """Kind of file a session was extracted from."""
    SPREADSHEET = "SPREADSHEET"
    SCANNED_DOCUMENT = "SCANNED_DOCUMENT"


class SessionStatus(str, enum.Enum):
    """Wizard status; advances PENDING -> MAPPING -> VALIDATING -> READY."""
    PENDING = "PENDING"
    MAPPING = "MAPPING"
    VALIDATING = "VALIDATING"
    READY = "READY"


class ImportSession(Base):
    """A resumable import attempt owned by one user within one tenant."""

    __tablename__ = "import_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    source_format: Mapped[str] = mapped_column(String(20), nullable=False)
    source_file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    selected_sheet: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    headers: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    # Extracted cells; never rewritten after upload
    raw_rows: Mapped[List[List[Any]]] = mapped_column(JSONType, nullable=False, default=list)
    ocr_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Derived state, written through services.session_state
    column_mapping: Mapped[Optional[Dict[str, str]]] = mapped_column(JSONType, nullable=True)
    normalized_rows: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSONType, nullable=True)
    diagnostics: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(JSONType, nullable=True)
    step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.PENDING.value
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def total_rows(self) -> int:
        return len(self.raw_rows or [])

    def __repr__(self) -> str:
        return f"<ImportSession(file={self.source_file_name}, status={self.status})>"
