"""
Session State
Immutable import session states and the transitions between them.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple, Union

from roster_import.errors import MappingIncompleteError
from roster_import.models.import_session import ImportSession, SessionStatus
from roster_import.services.column_mapping import field_value, missing_required_fields
from roster_import.services.validation import (
    Diagnostic,
    Severity,
    ValidationReport,
    diagnostic_from_dict,
)


@dataclass(frozen=True)
class Uploaded:
    """Rows extracted, nothing mapped yet."""
    step: int = field(default=1, init=False)

    @property
    def status(self) -> SessionStatus:
        return SessionStatus.PENDING


@dataclass(frozen=True)
class Mapped:
    """Mapping accepted; derived state discarded."""
    column_mapping: Dict[str, str]
    step: int = field(default=2, init=False)

    @property
    def status(self) -> SessionStatus:
        return SessionStatus.MAPPING


@dataclass(frozen=True)
class Validated:
    """Rows normalized and checked against the current mapping."""
    column_mapping: Dict[str, str]
    normalized_rows: Tuple[Dict[str, Any], ...]
    diagnostics: Tuple[Diagnostic, ...]
    step: int = field(default=3, init=False)

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def status(self) -> SessionStatus:
        return SessionStatus.VALIDATING if self.has_errors else SessionStatus.READY


SessionState = Union[Uploaded, Mapped, Validated]


def submit_mapping(state: SessionState, mapping: Mapping[str, Any]) -> Mapped:
    """
    Accept a column mapping.

    Allowed from any state; a resubmission discards earlier validation
    output. The unit identifier must be mapped.

    Raises:
        MappingIncompleteError: a required field is not mapped
    """
    missing = missing_required_fields(mapping)
    if missing:
        raise MappingIncompleteError(
            "Column mapping must include the unit number",
            details={"missing_fields": [f.value for f in missing]},
        )
    return Mapped(column_mapping={
        str(header).strip(): field_value(key) for header, key in mapping.items()
    })


def record_validation(state: SessionState, report: ValidationReport) -> Validated:
    """Attach a validation report to a mapped session."""
    if isinstance(state, Uploaded):
        raise MappingIncompleteError("Submit a column mapping before validating")
    return Validated(
        column_mapping=dict(state.column_mapping),
        normalized_rows=tuple(report.normalized_rows),
        diagnostics=tuple(report.diagnostics),
    )


def load_state(session: ImportSession) -> SessionState:
    """Read the derived columns of a session row into a state variant."""
    if not session.column_mapping:
        return Uploaded()
    if session.diagnostics is None or session.normalized_rows is None:
        return Mapped(column_mapping=dict(session.column_mapping))
    return Validated(
        column_mapping=dict(session.column_mapping),
        normalized_rows=tuple(session.normalized_rows),
        diagnostics=tuple(diagnostic_from_dict(d) for d in session.diagnostics),
    )


def store_state(session: ImportSession, state: SessionState) -> None:
    """Write every derived column from a state variant."""
    column_mapping = getattr(state, "column_mapping", None)
    normalized_rows: Any = None
    diagnostics: Any = None
    if isinstance(state, Validated):
        normalized_rows = list(state.normalized_rows)
        diagnostics = [d.to_dict() for d in state.diagnostics]

    session.column_mapping = dict(column_mapping) if column_mapping is not None else None
    session.normalized_rows = normalized_rows
    session.diagnostics = diagnostics
    session.step = state.step
    session.status = state.status.value
