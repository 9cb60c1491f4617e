"""Pydantic schemas for API request/response validation."""

from bazaar.schemas.import_schemas import (
    CommitRequest,
    CommitResponse,
    FailuresRequest,
    ParseResponse,
)
from bazaar.schemas.product_import import (
    CommitResult,
    ErrorCode,
    FailedRow,
    GlobalError,
    GlobalErrorCode,
    ImportMode,
    ImportSession,
    ParseResult,
    RawRow,
    ReportFormat,
    RowError,
    SessionStatus,
    ValidatedRow,
    VariantImport,
)

__all__ = [
    # Import API
    "CommitRequest",
    "CommitResponse",
    "FailuresRequest",
    "ParseResponse",
    # Import pipeline
    "CommitResult",
    "ErrorCode",
    "FailedRow",
    "GlobalError",
    "GlobalErrorCode",
    "ImportMode",
    "ImportSession",
    "ParseResult",
    "RawRow",
    "ReportFormat",
    "RowError",
    "SessionStatus",
    "ValidatedRow",
    "VariantImport",
]
