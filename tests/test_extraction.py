import asyncio

import httpx
import pytest

from roster_import.config import settings
from roster_import.errors import FileTooLargeError, ParseError, UnsupportedFormatError
from roster_import.models.import_session import SourceFormat
from roster_import.services.extraction import (
    detect_source_format,
    ensure_within_size_limit,
    extract_file,
)
from roster_import.services.ocr_service import OcrService


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("roster.xlsx", SourceFormat.SPREADSHEET),
        ("Roster.XLSM", SourceFormat.SPREADSHEET),
        ("legacy.xls", SourceFormat.SPREADSHEET),
        ("scan.pdf", SourceFormat.SCANNED_DOCUMENT),
    ],
)
def test_detect_source_format(filename, expected) -> None:
    assert detect_source_format(filename) == expected


@pytest.mark.parametrize("filename", ["roster.csv", "photo.png", "", None])
def test_unknown_extensions_are_rejected(filename) -> None:
    with pytest.raises(UnsupportedFormatError) as excinfo:
        detect_source_format(filename)

    assert excinfo.value.status_code == 415


def test_size_limit() -> None:
    ensure_within_size_limit(100, limit=100)
    with pytest.raises(FileTooLargeError) as excinfo:
        ensure_within_size_limit(101, limit=100)

    assert excinfo.value.code == "FILE_TOO_LARGE"


def test_oversize_content_is_rejected_before_parsing() -> None:
    content = b"0" * (settings.max_upload_bytes + 1)

    with pytest.raises(FileTooLargeError):
        asyncio.run(extract_file(content, "roster.xlsx"))


def test_extracts_spreadsheet(scenario_xlsx) -> None:
    result = asyncio.run(extract_file(scenario_xlsx, "roster.xlsx"))

    assert result.source_format == SourceFormat.SPREADSHEET
    assert result.headers == ["Nr.ap.", "Suprafata", "Cota", "Email"]
    assert result.total_rows == 3
    assert result.selected_sheet == "Proprietari"
    assert result.ocr_confidence is None


def test_header_without_rows_is_a_parse_error(make_xlsx) -> None:
    content = make_xlsx({"Lista": [["Nr", "Supr", "Cota"]]})

    with pytest.raises(ParseError):
        asyncio.run(extract_file(content, "roster.xlsx"))


def test_extracts_scanned_document() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/session/create":
            return httpx.Response(200, json={"session_id": "s-9"})
        if request.url.path == "/api/results/s-9":
            return httpx.Response(200, json={"results": {"easyocr": {
                "texts": ["Nr ap   Nume   Supr", "1   Popescu Ion   52,5", "2   Ionescu Ana   60"],
                "confidences": [0.8],
            }}})
        return httpx.Response(200, json={})

    ocr = OcrService(base_url="http://ocr.test", retry_delay=0, transport=httpx.MockTransport(handler))

    result = asyncio.run(extract_file(b"%PDF-1.4", "scan.pdf", ocr=ocr))

    assert result.source_format == SourceFormat.SCANNED_DOCUMENT
    assert result.headers == ["Nr ap", "Nume", "Supr"]
    assert result.rows == [["1", "Popescu Ion", "52,5"], ["2", "Ionescu Ana", "60"]]
    assert result.selected_sheet == "PDF"
    assert [sheet.name for sheet in result.sheets] == ["PDF"]
    assert result.ocr_confidence == pytest.approx(0.8)


def test_scanned_document_without_table_is_a_parse_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/session/create":
            return httpx.Response(200, json={"session_id": "s-1"})
        if request.url.path == "/api/results/s-1":
            return httpx.Response(200, json={"results": {}})
        return httpx.Response(200, json={})

    ocr = OcrService(base_url="http://ocr.test", retry_delay=0, transport=httpx.MockTransport(handler))

    with pytest.raises(ParseError):
        asyncio.run(extract_file(b"%PDF-1.4", "scan.pdf", ocr=ocr))
