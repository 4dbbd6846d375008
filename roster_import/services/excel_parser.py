"""
Excel Parser Service
Reads roster workbooks of unknown layout into a header row and data rows.
"""
import struct
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime, time
from io import BytesIO
from typing import Any, List, Optional, Sequence, Union

import xlrd
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet
from xlrd.compdoc import CompDocError

from roster_import.config import settings
from roster_import.errors import ParseError
from roster_import.services.normalizer import cell_to_text, is_blank

OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"


@dataclass
class SheetInfo:
    """Sheet catalog entry."""
    name: str
    row_count: int


@dataclass
class ParsedTable:
    """Header row plus rectangular data rows found in a sheet or document."""
    headers: List[str]
    rows: List[List[Any]]
    sheets: List[SheetInfo] = field(default_factory=list)
    selected_sheet: Optional[str] = None

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def fit_row(row: Sequence[Any], width: int) -> List[Any]:
    """Pad with "" or truncate a row to the header width."""
    cells = list(row[:width])
    cells.extend([""] * (width - len(cells)))
    return cells


def locate_header_row(
    matrix: Sequence[Sequence[Any]],
    scan_rows: Optional[int] = None,
    min_cells: Optional[int] = None,
) -> int:
    """
    Index of the first row, among the first `scan_rows`, with at least
    `min_cells` non-empty cells. Falls back to the first row.
    """
    scan_rows = settings.header_scan_rows if scan_rows is None else scan_rows
    min_cells = settings.header_min_cells if min_cells is None else min_cells

    for index, row in enumerate(matrix[:scan_rows]):
        if sum(1 for cell in row if not is_blank(cell)) >= min_cells:
            return index
    return 0


def split_table(matrix: Sequence[Sequence[Any]]) -> ParsedTable:
    """Pick the header row and keep the non-empty rows that follow it."""
    if not matrix:
        return ParsedTable(headers=[], rows=[])

    header_idx = locate_header_row(matrix)
    headers = [cell_to_text(cell) for cell in matrix[header_idx]]
    width = len(headers)
    rows = [
        fit_row(row, width)
        for row in matrix[header_idx + 1:]
        if any(not is_blank(cell) for cell in row)
    ]
    return ParsedTable(headers=headers, rows=rows)


class ExcelParserService:
    """
    Service for parsing roster workbooks held in memory.

    OOXML workbooks (.xlsx/.xlsm) are read with openpyxl; legacy BIFF
    workbooks (.xls), recognized by their OLE2 signature, with xlrd.
    """

    def __init__(self, content: bytes):
        """Initialize with the raw workbook bytes."""
        self.content = content
        self.legacy = content.startswith(OLE2_SIGNATURE)
        self.workbook = None

    def __enter__(self):
        """Context manager entry - load workbook."""
        if self.legacy:
            try:
                self.workbook = xlrd.open_workbook(file_contents=self.content)
            except (xlrd.XLRDError, CompDocError, struct.error, IndexError, ValueError) as e:
                raise ParseError(f"Unreadable spreadsheet: {e}") from e
            return self
        try:
            self.workbook = load_workbook(BytesIO(self.content), data_only=True)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
            raise ParseError(f"Unreadable spreadsheet: {e}") from e
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close workbook."""
        if not self.workbook:
            return
        if self.legacy:
            self.workbook.release_resources()
        else:
            self.workbook.close()

    def get_sheet_names(self) -> List[str]:
        """Get list of sheet names in the workbook."""
        if not self.workbook:
            raise ValueError("Workbook not loaded. Use context manager.")
        if self.legacy:
            return self.workbook.sheet_names()
        return self.workbook.sheetnames

    def get_sheet(self, sheet_name: str) -> Union[Worksheet, xlrd.sheet.Sheet]:
        """Get a specific worksheet."""
        if sheet_name not in self.get_sheet_names():
            raise ParseError(f"Sheet '{sheet_name}' not found in workbook.")
        if self.legacy:
            return self.workbook.sheet_by_name(sheet_name)
        return self.workbook[sheet_name]

    def get_sheet_catalog(self) -> List[SheetInfo]:
        """Name and approximate row count of every sheet."""
        catalog = []
        for name in self.get_sheet_names():
            sheet = self.get_sheet(name)
            if self.legacy:
                row_count = max(sheet.nrows - 1, 0)
            else:
                row_count = max((sheet.max_row or 0) - (sheet.min_row or 0), 0)
            catalog.append(SheetInfo(name=name, row_count=row_count))
        return catalog

    def read_matrix(self, sheet_name: str) -> List[List[Any]]:
        """Sheet cells as rows of JSON-safe scalars, blank rows suppressed."""
        sheet = self.get_sheet(sheet_name)
        if self.legacy:
            values = (
                [self._legacy_cell_value(cell) for cell in sheet.row(index)]
                for index in range(sheet.nrows)
            )
        else:
            values = (
                [self._cell_value(value) for value in row]
                for row in sheet.iter_rows(values_only=True)
            )
        return [cells for cells in values if any(not is_blank(cell) for cell in cells)]

    def parse(self, sheet_name: Optional[str] = None) -> ParsedTable:
        """
        Parse the chosen sheet (or the first one) into a table.

        Args:
            sheet_name: Sheet to read; defaults to the first sheet

        Returns:
            ParsedTable with the sheet catalog and selected sheet filled in
        """
        sheets = self.get_sheet_catalog()
        if not sheet_name:
            sheet_name = sheets[0].name if sheets else None
        if sheet_name is None:
            raise ParseError("Workbook contains no sheets.")

        table = split_table(self.read_matrix(sheet_name))
        table.sheets = sheets
        table.selected_sheet = sheet_name
        return table

    def _cell_value(self, value: Any) -> Any:
        """Cell value as a JSON-storable scalar."""
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, (datetime, date, time)):
            return value.isoformat()
        return str(value)

    def _legacy_cell_value(self, cell: xlrd.sheet.Cell) -> Any:
        """BIFF cell as the same scalars openpyxl would give."""
        if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
            return ""
        if cell.ctype == xlrd.XL_CELL_BOOLEAN:
            return bool(cell.value)
        if cell.ctype == xlrd.XL_CELL_NUMBER:
            return int(cell.value) if float(cell.value).is_integer() else cell.value
        if cell.ctype == xlrd.XL_CELL_DATE:
            try:
                moment = xlrd.xldate.xldate_as_datetime(cell.value, self.workbook.datemode)
            except xlrd.xldate.XLDateError:
                return cell.value
            return moment.isoformat()
        return self._cell_value(cell.value)


def parse_spreadsheet(content: bytes, sheet_name: Optional[str] = None) -> ParsedTable:
    """Parse workbook bytes; blocking, run it in an executor from async code."""
    with ExcelParserService(content) as parser:
        return parser.parse(sheet_name)
