"""Request and response bodies for the product import endpoints."""

from pydantic import Field

from bazaar.schemas.product_import import (
    CamelModel,
    CommitResult,
    FailedRow,
    GlobalError,
    ImportMode,
    ReportFormat,
    ValidatedRow,
)


class ParseResponse(CamelModel):
    """Preview of a parsed batch plus the session to commit it with."""

    success: bool
    session_id: str
    preview: list[ValidatedRow]
    total_rows: int
    valid_rows: int
    invalid_rows: int
    mode: ImportMode
    errors: list[GlobalError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    duplicate_skus: list[str] = Field(default_factory=list)


class CommitRequest(CamelModel):
    session_id: str = Field(..., min_length=1)


class CommitResponse(CamelModel):
    success: bool
    result: CommitResult


class FailuresRequest(CamelModel):
    """Failed rows to render as a downloadable report."""

    failures: list[FailedRow]
    format: ReportFormat = ReportFormat.CSV
