# Schemas package
from roster_import.schemas.import_session import (
    SheetInfoSchema,
    UploadPreview,
    UploadResponse,
    MappingRequest,
    MappingResponse,
    ValidateRequest,
    SheetSwitchRequest,
    DiagnosticSchema,
    ValidationResponse,
    ImportSessionResponse,
    FieldDefinitionSchema
)

__all__ = [
    "SheetInfoSchema",
    "UploadPreview",
    "UploadResponse",
    "MappingRequest",
    "MappingResponse",
    "ValidateRequest",
    "SheetSwitchRequest",
    "DiagnosticSchema",
    "ValidationResponse",
    "ImportSessionResponse",
    "FieldDefinitionSchema",
]
