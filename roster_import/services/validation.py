"""
Validation Service
Normalizes mapped roster rows and checks them row by row and as a batch.

Nothing here raises on bad data: every finding becomes a diagnostic, and the
batch is commit-ready only when no diagnostic has ERROR severity.
"""
import enum
from dataclasses import dataclass, field
from typing import (
    Any, ClassVar, Collection, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
)

from roster_import.models.unit import DEFAULT_UNIT_TYPE, UnitType
from roster_import.services.column_mapping import CanonicalField, apply_mapping
from roster_import.services.normalizer import (
    cell_to_text,
    is_blank,
    is_valid_number,
    normalize_decimal,
    parse_integer,
    validate_email_syntax,
    validate_phone_syntax,
)

UNIT = CanonicalField.UNIT_NUMBER.value
AREA = CanonicalField.AREA.value
QUOTA = CanonicalField.OWNERSHIP_QUOTA.value
OCCUPANTS = CanonicalField.OCCUPANT_COUNT.value
EMAIL = CanonicalField.EMAIL.value
PHONE = CanonicalField.PHONE.value
UNIT_TYPE = CanonicalField.UNIT_TYPE.value

DECIMAL_FIELDS = frozenset({
    AREA,
    QUOTA,
    CanonicalField.COLD_WATER_READING.value,
    CanonicalField.HOT_WATER_READING.value,
})
INTEGER_FIELDS = frozenset({CanonicalField.FLOOR.value, CanonicalField.ROOM_COUNT.value})
METER_READING_FIELDS = (
    CanonicalField.COLD_WATER_READING.value,
    CanonicalField.HOT_WATER_READING.value,
)

MAX_REALISTIC_AREA = 50000
QUOTA_TOTAL = 100.0
QUOTA_TOLERANCE = 0.1


class Severity(str, enum.Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


class DiagnosticCode(str, enum.Enum):
    ROW_VALIDATION_ERROR = "ROW_VALIDATION_ERROR"
    ROW_VALIDATION_WARNING = "ROW_VALIDATION_WARNING"
    DUPLICATE_UNIT = "DUPLICATE_UNIT"
    QUOTA_SUM_MISMATCH = "QUOTA_SUM_MISMATCH"
    MULTI_OWNER_DETECTED = "MULTI_OWNER_DETECTED"
    EXISTING_UNIT_CONFLICT = "EXISTING_UNIT_CONFLICT"


@dataclass(frozen=True)
class RowDiagnostic:
    """Finding about one row (1-based among surviving rows)."""
    severity: Severity
    code: DiagnosticCode
    row: int
    field: str
    message: str
    raw_value: Optional[str] = None

    scope: ClassVar[str] = "row"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "severity": self.severity.value,
            "code": self.code.value,
            "row": self.row,
            "rows": [self.row],
            "field": self.field,
            "message": self.message,
            "raw_value": self.raw_value,
        }


@dataclass(frozen=True)
class BatchDiagnostic:
    """Finding about the row set as a whole; `rows` lists rows involved."""
    severity: Severity
    code: DiagnosticCode
    field: str
    message: str
    raw_value: Optional[str] = None
    rows: Tuple[int, ...] = ()

    scope: ClassVar[str] = "batch"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "severity": self.severity.value,
            "code": self.code.value,
            "row": None,
            "rows": list(self.rows),
            "field": self.field,
            "message": self.message,
            "raw_value": self.raw_value,
        }


Diagnostic = Union[RowDiagnostic, BatchDiagnostic]


def diagnostic_from_dict(data: Mapping[str, Any]) -> Diagnostic:
    """Rebuild a diagnostic stored with `to_dict`."""
    severity = Severity(data["severity"])
    code = DiagnosticCode(data["code"])
    if data.get("scope") == RowDiagnostic.scope:
        return RowDiagnostic(
            severity=severity,
            code=code,
            row=int(data["row"]),
            field=data["field"],
            message=data["message"],
            raw_value=data.get("raw_value"),
        )
    return BatchDiagnostic(
        severity=severity,
        code=code,
        field=data["field"],
        message=data["message"],
        raw_value=data.get("raw_value"),
        rows=tuple(data.get("rows") or ()),
    )


@dataclass
class ValidationReport:
    """Outcome of one validation run."""
    normalized_rows: List[Dict[str, Any]] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    @property
    def is_ready(self) -> bool:
        return not self.errors

    @property
    def valid_rows_count(self) -> int:
        return len(self.normalized_rows)


@dataclass(frozen=True)
class QuotaSumResult:
    valid: bool
    total: float
    difference: float


# -------------------------- normalization --------------------------

def _normalize_value(key: str, raw: Any) -> Any:
    if key in DECIMAL_FIELDS:
        if is_blank(raw):
            return None
        value = normalize_decimal(raw.strip() if isinstance(raw, str) else raw)
        return value if is_valid_number(value) else None
    if key in INTEGER_FIELDS:
        return None if is_blank(raw) else parse_integer(raw)
    if key == UNIT:
        return cell_to_text(raw)
    if key == EMAIL:
        return cell_to_text(raw).lower() or None
    if key == UNIT_TYPE:
        return cell_to_text(raw).upper() or None
    return cell_to_text(raw) or None


def normalize_record(record: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Normalize a mapped record into canonical field order.

    Decimals accept comma separators (unparseable becomes None), floor and
    room count are integers, text is trimmed, email lower-cased, and the
    occupant count falls back to 1 when missing, zero or unparseable.
    """
    normalized: Dict[str, Any] = {}
    for canonical in CanonicalField:
        key = canonical.value
        if key == OCCUPANTS:
            occupants = parse_integer(record.get(key))
            normalized[key] = occupants if occupants else 1
        elif key in record:
            normalized[key] = _normalize_value(key, record[key])
    return normalized


# -------------------------- row checks --------------------------

def _decimal_or_none(raw: Any) -> Optional[float]:
    value = normalize_decimal(raw.strip() if isinstance(raw, str) else raw)
    return value if is_valid_number(value) else None


def _row_error(row: int, field_key: str, message: str, raw_value: Any = None) -> RowDiagnostic:
    return RowDiagnostic(
        severity=Severity.ERROR,
        code=DiagnosticCode.ROW_VALIDATION_ERROR,
        row=row,
        field=field_key,
        message=message,
        raw_value=None if raw_value is None else cell_to_text(raw_value),
    )


def _row_warning(row: int, field_key: str, message: str, raw_value: Any = None) -> RowDiagnostic:
    return RowDiagnostic(
        severity=Severity.WARNING,
        code=DiagnosticCode.ROW_VALIDATION_WARNING,
        row=row,
        field=field_key,
        message=message,
        raw_value=None if raw_value is None else cell_to_text(raw_value),
    )


def validate_row(
    record: Mapping[str, Any],
    normalized: Mapping[str, Any],
    row: int,
) -> List[RowDiagnostic]:
    """
    Check one row.

    Args:
        record: Mapped record with the raw cell values
        normalized: Output of normalize_record for the same record
        row: 1-based row number among surviving rows
    """
    diagnostics: List[RowDiagnostic] = []

    if not normalized.get(UNIT):
        diagnostics.append(_row_error(row, UNIT, "Unit number is missing"))

    raw_area = record.get(AREA)
    if not is_blank(raw_area):
        area = _decimal_or_none(raw_area)
        if area is None or area <= 0:
            diagnostics.append(_row_error(
                row, AREA, f"Invalid area: {cell_to_text(raw_area)}", raw_area
            ))
        elif area > MAX_REALISTIC_AREA:
            diagnostics.append(_row_warning(
                row, AREA, f"Area looks unrealistically large: {cell_to_text(raw_area)}", raw_area
            ))

    raw_quota = record.get(QUOTA)
    if not is_blank(raw_quota):
        quota = _decimal_or_none(raw_quota)
        if quota is None or quota < 0 or quota > QUOTA_TOTAL:
            diagnostics.append(_row_error(
                row, QUOTA, f"Invalid ownership quota: {cell_to_text(raw_quota)}", raw_quota
            ))

    email = normalized.get(EMAIL)
    if email and not validate_email_syntax(email):
        diagnostics.append(_row_warning(row, EMAIL, f"Invalid email format: {email}", email))

    phone = normalized.get(PHONE)
    if phone and not validate_phone_syntax(phone):
        diagnostics.append(_row_warning(row, PHONE, f"Invalid phone format: {phone}", phone))

    unit_type = normalized.get(UNIT_TYPE)
    if unit_type and unit_type not in UnitType.__members__:
        diagnostics.append(_row_warning(
            row, UNIT_TYPE,
            f"Unknown unit type {unit_type}, will be imported as {DEFAULT_UNIT_TYPE.value}",
            record.get(UNIT_TYPE),
        ))

    for key in METER_READING_FIELDS:
        raw_reading = record.get(key)
        if is_blank(raw_reading):
            continue
        reading = _decimal_or_none(raw_reading)
        if reading is None or reading < 0:
            diagnostics.append(_row_warning(
                row, key, f"Invalid meter reading: {cell_to_text(raw_reading)}", raw_reading
            ))

    return diagnostics


# -------------------------- batch checks --------------------------

def validate_quota_sum(rows: Iterable[Mapping[str, Any]]) -> QuotaSumResult:
    """Ownership quotas should add up to 100 within a 0.1 tolerance."""
    total = sum(
        row.get(QUOTA) for row in rows if is_valid_number(row.get(QUOTA))
    )
    difference = round(total - QUOTA_TOTAL, 2)
    return QuotaSumResult(
        valid=abs(difference) < QUOTA_TOLERANCE,
        total=round(total, 2),
        difference=difference,
    )


def detect_duplicates(rows: Sequence[Mapping[str, Any]], field_key: str) -> Dict[str, List[int]]:
    """Values of `field_key` shared by two or more rows -> 0-based indices."""
    seen: Dict[str, List[int]] = {}
    for index, row in enumerate(rows):
        value = cell_to_text(row.get(field_key))
        if not value:
            continue
        seen.setdefault(value, []).append(index)
    return {value: indices for value, indices in seen.items() if len(indices) > 1}


def detect_multi_property_owners(rows: Iterable[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """Emails (trimmed, lower-cased) attached to two or more units."""
    email_to_units: Dict[str, List[str]] = {}
    for row in rows:
        email = cell_to_text(row.get(EMAIL)).lower()
        if not email:
            continue
        email_to_units.setdefault(email, []).append(cell_to_text(row.get(UNIT)) or "?")
    return {email: units for email, units in email_to_units.items() if len(units) > 1}


def check_batch(
    rows: Sequence[Mapping[str, Any]],
    existing_units: Collection[str] = (),
) -> List[Diagnostic]:
    """Whole-batch checks over the surviving normalized rows."""
    diagnostics: List[Diagnostic] = []

    quota = validate_quota_sum(rows)
    if not quota.valid and quota.total > 0:
        diagnostics.append(BatchDiagnostic(
            severity=Severity.WARNING,
            code=DiagnosticCode.QUOTA_SUM_MISMATCH,
            field=QUOTA,
            message=(
                f"Ownership quotas sum to {quota.total}% "
                f"(expected about 100%, difference {quota.difference:+}%)"
            ),
            raw_value=str(quota.total),
        ))

    for unit_number, indices in detect_duplicates(rows, UNIT).items():
        row_numbers = tuple(index + 1 for index in indices)
        diagnostics.append(BatchDiagnostic(
            severity=Severity.ERROR,
            code=DiagnosticCode.DUPLICATE_UNIT,
            field=UNIT,
            message=(
                f'Duplicate unit number "{unit_number}" on rows: '
                f'{", ".join(str(n) for n in row_numbers)}'
            ),
            raw_value=unit_number,
            rows=row_numbers,
        ))

    for email, units in detect_multi_property_owners(rows).items():
        diagnostics.append(BatchDiagnostic(
            severity=Severity.WARNING,
            code=DiagnosticCode.MULTI_OWNER_DETECTED,
            field=EMAIL,
            message=f"Owner with several units: {email} -> {', '.join(units)}",
            raw_value=email,
        ))

    existing = {str(number).strip() for number in existing_units}
    for index, row in enumerate(rows, start=1):
        unit_number = cell_to_text(row.get(UNIT))
        if unit_number in existing:
            diagnostics.append(RowDiagnostic(
                severity=Severity.WARNING,
                code=DiagnosticCode.EXISTING_UNIT_CONFLICT,
                row=index,
                field=UNIT,
                message=f'Unit "{unit_number}" already exists and will be skipped on commit',
                raw_value=unit_number,
            ))

    return diagnostics


def validate_rows(
    headers: Sequence[str],
    raw_rows: Sequence[Sequence[Any]],
    mapping: Mapping[str, str],
    existing_units: Collection[str] = (),
) -> ValidationReport:
    """
    Run the full validation over a session's rows.

    Rows whose unit number is empty after normalization are dropped as
    filler before any check. Output ordering is deterministic: row checks in
    row order, then quota sum, duplicates, shared owners, existing units.
    """
    surviving = []
    for raw_row in raw_rows:
        record = apply_mapping(raw_row, mapping, headers)
        normalized = normalize_record(record)
        if normalized.get(UNIT):
            surviving.append((record, normalized))

    diagnostics: List[Diagnostic] = []
    for row_number, (record, normalized) in enumerate(surviving, start=1):
        diagnostics.extend(validate_row(record, normalized, row_number))

    normalized_rows = [normalized for _, normalized in surviving]
    diagnostics.extend(check_batch(normalized_rows, existing_units))

    return ValidationReport(normalized_rows=normalized_rows, diagnostics=diagnostics)
