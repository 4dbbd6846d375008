"""
Import Pipeline Errors
Client-facing failures raised by the upload, mapping and session operations.
Validation findings are never raised; they travel as diagnostics.
"""
from typing import Any, Dict, Optional


class ImportPipelineError(Exception):
    """Base class for errors rendered as structured API responses."""

    code = "IMPORT_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class UnsupportedFormatError(ImportPipelineError):
    """File extension is neither a spreadsheet nor a scanned document."""
    code = "UNSUPPORTED_FORMAT"
    status_code = 415


class FileTooLargeError(ImportPipelineError):
    """Upload exceeds the configured size cap."""
    code = "FILE_TOO_LARGE"
    status_code = 413


class ParseError(ImportPipelineError):
    """File could not be read or holds no recognizable table."""
    code = "PARSE_ERROR"
    status_code = 422


class OcrServiceError(ParseError):
    """OCR collaborator unreachable, failing, or short-circuited."""
    status_code = 502


class MappingIncompleteError(ImportPipelineError):
    """Column mapping lacks a required canonical field."""
    code = "MAPPING_INCOMPLETE"
    status_code = 400


class SessionNotFoundError(ImportPipelineError):
    """Session is missing or belongs to someone else."""
    code = "SESSION_NOT_FOUND"
    status_code = 404

    def __init__(self, message: str = "Import session not found"):
        super().__init__(message)


class TenantNotFoundError(ImportPipelineError):
    """Tenant is missing or not administered by the caller."""
    code = "TENANT_NOT_FOUND"
    status_code = 404

    def __init__(self, message: str = "Tenant not found"):
        super().__init__(message)


class SessionConflictError(ImportPipelineError):
    """Session was modified by another request since the caller read it."""
    code = "SESSION_CONFLICT"
    status_code = 409


class SheetSwitchUnsupportedError(ImportPipelineError):
    """Changing the active sheet requires a new upload."""
    code = "SHEET_SWITCH_UNSUPPORTED"
    status_code = 400
