"""
Unit Model
Units already committed to the registry for a tenant.
"""
import enum
import uuid

from sqlalchemy import String, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

from roster_import.database import Base


class UnitType(str, enum.Enum):
    """Unit kinds accepted by the registry."""
    APARTAMENT = "APARTAMENT"
    PARCARE = "PARCARE"
    BOXA = "BOXA"
    SPATIU_COMERCIAL = "SPATIU_COMERCIAL"
    ALTUL = "ALTUL"


# Registry fallback for rows without a recognizable type
DEFAULT_UNIT_TYPE = UnitType.APARTAMENT


class Unit(Base):
    """A registry unit; only read here to flag re-imported identifiers."""

    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("tenant_id", "number"),)

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
    number: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_type: Mapped[str] = mapped_column(
        String(30),
        default=DEFAULT_UNIT_TYPE.value,
        server_default=DEFAULT_UNIT_TYPE.value
    )

    def __repr__(self) -> str:
        return f"<Unit(number={self.number})>"
