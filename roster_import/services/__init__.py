# Services package
from roster_import.services.excel_parser import ExcelParserService
from roster_import.services.ocr_service import OcrService, CircuitBreaker
from roster_import.services.validation import ValidationReport, validate_rows
from roster_import.services.template_generator import build_template

__all__ = [
    "ExcelParserService",
    "OcrService",
    "CircuitBreaker",
    "ValidationReport",
    "validate_rows",
    "build_template"
]
