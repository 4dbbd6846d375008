"""
Template Generator Service
Builds blank roster workbooks that the column mapping recognizes out of the box.
"""
import enum
from dataclasses import dataclass
from io import BytesIO
from typing import List, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from roster_import.models.unit import DEFAULT_UNIT_TYPE, UnitType

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

STANDARD_SHEET = "Unitati"
INSTRUCTIONS_SHEET = "Instructiuni"
COMPAT_SHEET = "Lista"

STANDARD_HEADERS = [
    "Numar",
    "Tip Unitate",
    "Scara",
    "Etaj",
    "Suprafata (mp)",
    "Nr Camere",
    "Nr Persoane",
    "Cota Indiviza (%)",
    "Nr Cadastral",
    "Proprietar Nume",
    "Email",
    "Telefon",
    "Serie Contor Apa Rece",
    "Index Apa Rece",
    "Serie Contor Apa Calda",
    "Index Apa Calda",
]

STANDARD_EXAMPLE_ROW = [
    "1",
    UnitType.APARTAMENT.value,
    "A",
    "2",
    "52.5",
    "2",
    "3",
    "2.35",
    "12345",
    "Popescu Ion",
    "ion@email.com",
    "+40721000000",
    "AR-001",
    "125.5",
    "AC-001",
    "89.2",
]

# Column layout of the third-party association software export
COMPAT_HEADERS = ["Nr. ap.", "Numele şi prenumele", "Nr. pers.", "Cota parte", "Supr. utilă"]
COMPAT_EXAMPLE_ROW = ["1", "Popescu Ion", "3", "2.35", "52.5"]


class TemplateVariant(str, enum.Enum):
    STANDARD = "standard"
    COMPAT = "compat"


@dataclass(frozen=True)
class TemplateFile:
    filename: str
    content: bytes
    media_type: str = XLSX_MEDIA_TYPE


def _instruction_lines() -> List[str]:
    lines = [
        "Roster import instructions",
        "",
        "Required column: Numar (unit number)",
        "Recommended columns: Suprafata, Cota Indiviza, Nr Persoane, Proprietar Nume",
        "",
        "Tip Unitate, accepted values:",
    ]
    lines.extend(f"  - {unit_type.value}" for unit_type in UnitType)
    lines.extend([
        f"Unknown or empty types are imported as {DEFAULT_UNIT_TYPE.value}",
        "",
        "Numbers: use a dot (.) or a comma (,) as decimal separator",
        "Phone: +40721000000 (with country prefix)",
        "",
        "Nr Persoane: when missing it is filled in with 1",
        "Cota Indiviza: quotas of all units should add up to about 100%",
        "",
        "Meters: add the serial and current reading for cold and hot water",
    ])
    return lines


def _write_table(
    sheet: Worksheet,
    headers: Sequence[str],
    example_row: Sequence[str],
    padding: int,
    min_width: int
) -> None:
    sheet.append(list(headers))
    sheet.append(list(example_row))

    bold = Font(bold=True)
    for col_idx, header in enumerate(headers, start=1):
        sheet.cell(row=1, column=col_idx).font = bold
        sheet.column_dimensions[get_column_letter(col_idx)].width = max(len(header) + padding, min_width)


def _to_bytes(workbook: Workbook) -> bytes:
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def generate_standard_template() -> bytes:
    """Workbook with every canonical column, an example unit and an instructions sheet."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = STANDARD_SHEET
    _write_table(sheet, STANDARD_HEADERS, STANDARD_EXAMPLE_ROW, padding=2, min_width=14)

    instructions = workbook.create_sheet(INSTRUCTIONS_SHEET)
    for line in _instruction_lines():
        instructions.append([line])
    instructions["A1"].font = Font(bold=True)
    instructions.column_dimensions["A"].width = 70

    return _to_bytes(workbook)


def generate_compatibility_template() -> bytes:
    """Single-sheet workbook in the five-column third-party layout."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = COMPAT_SHEET
    _write_table(sheet, COMPAT_HEADERS, COMPAT_EXAMPLE_ROW, padding=4, min_width=16)
    return _to_bytes(workbook)


def build_template(variant: str = TemplateVariant.STANDARD.value) -> TemplateFile:
    """Template for a variant name; anything unrecognized gets the standard one."""
    if variant == TemplateVariant.COMPAT.value:
        return TemplateFile(
            filename="template_compat.xlsx",
            content=generate_compatibility_template(),
        )
    return TemplateFile(
        filename="template_standard.xlsx",
        content=generate_standard_template(),
    )
