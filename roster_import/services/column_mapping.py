"""
Column Mapping Service
Suggests and applies mappings from arbitrary roster headers to canonical fields.
"""
import enum
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple


class CanonicalField(str, enum.Enum):
    """Fixed target attributes every import maps into."""
    UNIT_NUMBER = "unit_number"
    UNIT_TYPE = "unit_type"
    SECTION = "section"
    FLOOR = "floor"
    AREA = "area"
    ROOM_COUNT = "room_count"
    OCCUPANT_COUNT = "occupant_count"
    OWNERSHIP_QUOTA = "ownership_quota"
    CADASTRAL_NUMBER = "cadastral_number"
    OWNER_NAME = "owner_name"
    EMAIL = "email"
    PHONE = "phone"
    COLD_WATER_METER_SERIAL = "cold_water_meter_serial"
    COLD_WATER_READING = "cold_water_reading"
    HOT_WATER_METER_SERIAL = "hot_water_meter_serial"
    HOT_WATER_READING = "hot_water_reading"


@dataclass(frozen=True)
class FieldDefinition:
    field: CanonicalField
    label: str
    required: bool = False


FIELD_DEFINITIONS: Tuple[FieldDefinition, ...] = (
    FieldDefinition(CanonicalField.UNIT_NUMBER, "Unit number", required=True),
    FieldDefinition(CanonicalField.UNIT_TYPE, "Unit type"),
    FieldDefinition(CanonicalField.SECTION, "Staircase / section"),
    FieldDefinition(CanonicalField.FLOOR, "Floor"),
    FieldDefinition(CanonicalField.AREA, "Area (sqm)"),
    FieldDefinition(CanonicalField.ROOM_COUNT, "Rooms"),
    FieldDefinition(CanonicalField.OCCUPANT_COUNT, "Occupants"),
    FieldDefinition(CanonicalField.OWNERSHIP_QUOTA, "Ownership quota (%)"),
    FieldDefinition(CanonicalField.CADASTRAL_NUMBER, "Cadastral number"),
    FieldDefinition(CanonicalField.OWNER_NAME, "Owner name"),
    FieldDefinition(CanonicalField.EMAIL, "Email"),
    FieldDefinition(CanonicalField.PHONE, "Phone"),
    FieldDefinition(CanonicalField.COLD_WATER_METER_SERIAL, "Cold water meter serial"),
    FieldDefinition(CanonicalField.COLD_WATER_READING, "Cold water reading"),
    FieldDefinition(CanonicalField.HOT_WATER_METER_SERIAL, "Hot water meter serial"),
    FieldDefinition(CanonicalField.HOT_WATER_READING, "Hot water reading"),
)

REQUIRED_FIELDS: Tuple[CanonicalField, ...] = tuple(
    definition.field for definition in FIELD_DEFINITIONS if definition.required
)


@dataclass(frozen=True)
class MappingRule:
    """Header synonyms (case-insensitive regexes) for one canonical field."""
    field: CanonicalField
    patterns: Tuple[re.Pattern, ...]

    @classmethod
    def of(cls, field: CanonicalField, *patterns: str) -> "MappingRule":
        return cls(field, tuple(re.compile(p, re.IGNORECASE) for p in patterns))

    def matches(self, header: str) -> bool:
        return any(pattern.search(header) for pattern in self.patterns)


# Evaluated in order; the first matching rule claims the header.
MAPPING_RULES: Tuple[MappingRule, ...] = (
    MappingRule.of(
        CanonicalField.UNIT_NUMBER,
        r"^nr\.?\s*ap", r"^num[aă]r\s*(casa|unitate|apart)", r"^num[aă]r$",
        r"^ap\.?$", r"^apart", r"^unit(\s*(no|nr|number|#))?\.?$",
    ),
    MappingRule.of(CanonicalField.UNIT_TYPE, r"^tip\s*(unitate|apart)", r"^tip$", r"^(unit\s*)?type$"),
    MappingRule.of(CanonicalField.SECTION, r"^scar[aă]$", r"^sc\.?$", r"^(staircase|section)$"),
    MappingRule.of(CanonicalField.FLOOR, r"^etaj", r"^floor"),
    MappingRule.of(
        CanonicalField.AREA,
        r"^supr", r"^suprafa[tț][aă]", r"^s\.?\s*util", r"^mp$", r"^teren.*mp", r"^area",
    ),
    MappingRule.of(CanonicalField.ROOM_COUNT, r"^nr\.?\s*cam", r"^camere", r"^rooms?$"),
    MappingRule.of(
        CanonicalField.OCCUPANT_COUNT,
        r"^nr\.?\s*pers", r"^num[aă]r\s*pers", r"^persoane", r"^occupants?$",
    ),
    MappingRule.of(
        CanonicalField.OWNERSHIP_QUOTA,
        r"^cot[aă]\s*(part|indivi)", r"^%\s*cot[aă]", r"^cot[aă]$", r"^procent.*cot", r"^quota",
    ),
    MappingRule.of(
        CanonicalField.CADASTRAL_NUMBER,
        r"^nr\.?\s*cadastr", r"^cadastr", r"^carte\s*funciar", r"^cf$",
    ),
    MappingRule.of(
        CanonicalField.COLD_WATER_METER_SERIAL,
        r"^serie.*ap[aă]\s*rece", r"^serie.*\bar\b", r"^cold.*serial",
    ),
    MappingRule.of(CanonicalField.COLD_WATER_READING, r"^index.*ap[aă]\s*rece", r"^cold.*reading"),
    MappingRule.of(
        CanonicalField.HOT_WATER_METER_SERIAL,
        r"^serie.*ap[aă]\s*cald", r"^serie.*\bac\b", r"^hot.*serial",
    ),
    MappingRule.of(CanonicalField.HOT_WATER_READING, r"^index.*ap[aă]\s*cald", r"^hot.*reading"),
    MappingRule.of(
        CanonicalField.OWNER_NAME,
        r"^proprietar", r"^numele", r"^nume\s*(si|și|şi)", r"^nume$", r"^owner",
    ),
    MappingRule.of(CanonicalField.EMAIL, r"^e-?mail", r"^mail$", r"^adres[aă]\s*e-?mail"),
    MappingRule.of(CanonicalField.PHONE, r"^tel", r"^phone", r"^mobil", r"^nr\.?\s*tel"),
)


def match_header(header: str, rules: Sequence[MappingRule] = MAPPING_RULES) -> Optional[CanonicalField]:
    """Canonical field of the first rule matching a header, if any."""
    normalized = header.strip()
    if not normalized:
        return None
    for rule in rules:
        if rule.matches(normalized):
            return rule.field
    return None


def suggest_mapping(
    headers: Sequence[str],
    rules: Sequence[MappingRule] = MAPPING_RULES,
) -> Dict[str, str]:
    """
    Suggest a one-to-one header -> canonical field mapping.

    Each header is claimed by the first matching rule. A field already taken
    by an earlier header is never reassigned; the later header stays unmapped.
    """
    mapping: Dict[str, str] = {}
    claimed = set()

    for header in headers:
        field = match_header(header or "", rules)
        if field is None or field in claimed:
            continue
        mapping[header.strip()] = field.value
        claimed.add(field)

    return mapping


def field_value(field: Any) -> str:
    """Plain string key for a CanonicalField member or its value."""
    return field.value if isinstance(field, CanonicalField) else str(field)


def missing_required_fields(mapping: Mapping[str, Any]) -> List[CanonicalField]:
    """Required canonical fields the mapping does not cover."""
    mapped = {field_value(value) for value in mapping.values()}
    return [field for field in REQUIRED_FIELDS if field.value not in mapped]


def apply_mapping(
    row: Sequence[Any],
    mapping: Mapping[str, str],
    headers: Sequence[str],
) -> Dict[str, Any]:
    """
    Turn a raw row into a record keyed by canonical field.

    Headers absent from the header list are skipped and unmapped fields are
    simply missing from the record. Missing or None cells become "".
    """
    record: Dict[str, Any] = {}
    header_index = {}
    for index, header in enumerate(headers):
        header_index.setdefault(str(header).strip(), index)

    for header_name, field_key in mapping.items():
        col_idx = header_index.get(str(header_name).strip())
        if col_idx is None:
            continue
        value = row[col_idx] if col_idx < len(row) else None
        record[field_value(field_key)] = value if value is not None else ""

    return record
