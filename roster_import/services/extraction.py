"""
Extraction Service
Dispatches an uploaded roster file to the spreadsheet or OCR path.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from fastapi import UploadFile

from roster_import.config import settings
from roster_import.errors import FileTooLargeError, ParseError, UnsupportedFormatError
from roster_import.models.import_session import SourceFormat
from roster_import.services.excel_parser import ParsedTable, SheetInfo, parse_spreadsheet
from roster_import.services.ocr_service import OcrService, ocr_service, reconstruct_table

logger = logging.getLogger(__name__)

SPREADSHEET_PATTERN = re.compile(r"\.(xlsx|xlsm|xls)$", re.IGNORECASE)
SCANNED_DOCUMENT_PATTERN = re.compile(r"\.pdf$", re.IGNORECASE)
SCANNED_SHEET_NAME = "PDF"


@dataclass
class ExtractionResult:
    """Everything the upload step learns about a file."""
    source_format: SourceFormat
    headers: List[str]
    rows: List[List[Any]]
    sheets: List[SheetInfo] = field(default_factory=list)
    selected_sheet: Optional[str] = None
    ocr_confidence: Optional[float] = None

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def detect_source_format(filename: Optional[str]) -> SourceFormat:
    """Classify a file by extension; anything unknown is rejected."""
    name = (filename or "").strip()
    if SPREADSHEET_PATTERN.search(name):
        return SourceFormat.SPREADSHEET
    if SCANNED_DOCUMENT_PATTERN.search(name):
        return SourceFormat.SCANNED_DOCUMENT
    raise UnsupportedFormatError(
        "Unsupported file format. Accepted: .xlsx, .xlsm, .xls, .pdf"
    )


def ensure_within_size_limit(size: int, limit: Optional[int] = None) -> None:
    limit = settings.max_upload_bytes if limit is None else limit
    if size > limit:
        raise FileTooLargeError(
            f"File exceeds the {limit // (1024 * 1024)} MB limit",
            details={"limit_bytes": limit},
        )


async def read_upload(file: UploadFile, limit: Optional[int] = None) -> bytes:
    """Read an upload, refusing to buffer more than limit + 1 bytes."""
    limit = settings.max_upload_bytes if limit is None else limit
    if file.size is not None:
        ensure_within_size_limit(file.size, limit)
    content = await file.read(limit + 1)
    ensure_within_size_limit(len(content), limit)
    return content


def _require_table(table: ParsedTable, filename: str) -> None:
    if not any(table.headers):
        raise ParseError(f"No table header found in '{filename}'")
    if not table.rows:
        raise ParseError(f"No data rows found in '{filename}'")


async def extract_spreadsheet(
    content: bytes,
    filename: str,
    sheet_name: Optional[str] = None,
) -> ExtractionResult:
    # openpyxl is CPU-bound
    loop = asyncio.get_running_loop()
    table = await loop.run_in_executor(None, parse_spreadsheet, content, sheet_name)
    _require_table(table, filename)

    return ExtractionResult(
        source_format=SourceFormat.SPREADSHEET,
        headers=table.headers,
        rows=table.rows,
        sheets=table.sheets,
        selected_sheet=table.selected_sheet,
    )


async def extract_scanned_document(
    content: bytes,
    filename: str,
    ocr: Optional[OcrService] = None,
) -> ExtractionResult:
    result = await (ocr or ocr_service).recognize(content, filename)
    table = reconstruct_table(result.text)
    _require_table(table, filename)

    return ExtractionResult(
        source_format=SourceFormat.SCANNED_DOCUMENT,
        headers=table.headers,
        rows=table.rows,
        sheets=[SheetInfo(name=SCANNED_SHEET_NAME, row_count=table.total_rows)],
        selected_sheet=SCANNED_SHEET_NAME,
        ocr_confidence=result.confidence,
    )


async def extract_file(
    content: bytes,
    filename: str,
    sheet_name: Optional[str] = None,
    ocr: Optional[OcrService] = None,
) -> ExtractionResult:
    """
    Turn one uploaded file into headers and data rows.

    Args:
        content: Raw file bytes
        filename: Original file name, used for format dispatch
        sheet_name: Spreadsheet sheet to read (first sheet when omitted)
        ocr: OCR client override for scanned documents

    Raises:
        UnsupportedFormatError, FileTooLargeError, ParseError
    """
    source_format = detect_source_format(filename)
    ensure_within_size_limit(len(content))

    if source_format == SourceFormat.SPREADSHEET:
        result = await extract_spreadsheet(content, filename, sheet_name)
    else:
        result = await extract_scanned_document(content, filename, ocr)

    logger.info(
        "Extracted %d rows x %d columns from %s (%s)",
        result.total_rows, len(result.headers), filename, source_format.value
    )
    return result
