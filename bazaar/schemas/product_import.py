"""Pydantic models for the bulk product import pipeline.

API-facing models serialize with camelCase keys (``rowIndex``, ``isValid``,
``duplicateSkus``) while Python code uses snake_case attributes.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel

# Numbered single-URL columns accepted next to the pipe-separated image_urls
IMAGE_URL_COLUMNS = tuple(f"image_{n}" for n in range(1, 11))


class CamelModel(BaseModel):
    """Base model emitting camelCase keys and accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportMode(str, Enum):
    """How product images are supplied for a batch."""

    URL = "url"
    ZIP = "zip"


class ErrorCode(str, Enum):
    """Closed set of per-row error codes."""

    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"
    INVALID_NUMBER = "INVALID_NUMBER"
    DUPLICATE_SKU = "DUPLICATE_SKU"
    INVALID_URL = "INVALID_URL"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    INVALID_JSON = "INVALID_JSON"
    SKU_TOO_LONG = "SKU_TOO_LONG"
    SKU_INVALID_CHARS = "SKU_INVALID_CHARS"


class GlobalErrorCode(str, Enum):
    """Batch-level error codes. Any of these blocks the commit."""

    ZIP_REQUIRED = "ZIP_REQUIRED"
    IMAGES_REQUIRED = "IMAGES_REQUIRED"


class RawRow(BaseModel):
    """One spreadsheet row after header validation.

    Only known columns survive; every value is a trimmed string.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    sku: str = ""
    name: str = ""
    description: str = ""
    price: str = ""
    currency: str = ""
    category: str = ""
    stock: str = ""
    image_urls: str = ""
    image_files: str = ""
    variants_json: str = ""
    image_1: str = ""
    image_2: str = ""
    image_3: str = ""
    image_4: str = ""
    image_5: str = ""
    image_6: str = ""
    image_7: str = ""
    image_8: str = ""
    image_9: str = ""
    image_10: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "RawRow":
        """Build a row from a header -> value mapping (keys matched case-insensitively)."""
        values: dict[str, str] = {}
        for key, value in record.items():
            if key is None:
                continue
            field = str(key).strip().lower()
            if field in cls.model_fields and value is not None:
                values[field] = str(value)
        return cls(**values)

    def to_record(self) -> dict[str, str]:
        return self.model_dump()

    def url_values(self) -> list[str]:
        """All URL-mode image references, pipe list first, then numbered columns."""
        urls = [u.strip() for u in self.image_urls.split("|") if u.strip()]
        for column in IMAGE_URL_COLUMNS:
            value = getattr(self, column)
            if value:
                urls.append(value)
        return urls

    def file_values(self) -> list[str]:
        return [f.strip() for f in self.image_files.split("|") if f.strip()]

    @property
    def has_image_urls(self) -> bool:
        return bool(self.image_urls) or any(getattr(self, c) for c in IMAGE_URL_COLUMNS)

    @property
    def has_image_files(self) -> bool:
        return bool(self.image_files)


class RowError(CamelModel):
    """A field-level problem attached to one row."""

    field: str
    message: str
    code: ErrorCode


class GlobalError(CamelModel):
    """A batch-level problem."""

    message: str
    code: str


class VariantImport(CamelModel):
    """A variant parsed from a row's variants_json column."""

    sku: str
    attributes: dict[str, str] = Field(default_factory=dict)
    merchant_price: float
    stock: int = 0
    images: list[str] = Field(default_factory=list)
    is_active: bool = True


class ValidatedRow(CamelModel):
    """Canonical per-row validation result."""

    row_index: int
    sku: str
    name: str
    description: str = ""
    price: float = 0
    currency: str = "USD"
    category: str = ""
    stock: int = 0
    images: list[str] = Field(default_factory=list)
    image_files: Optional[list[str]] = None
    variants: Optional[list[VariantImport]] = None
    errors: list[RowError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @computed_field(alias="isValid")
    @property
    def is_valid(self) -> bool:
        return not self.errors


class ParseResult(CamelModel):
    """Batch-level validation aggregate."""

    rows: list[ValidatedRow] = Field(default_factory=list)
    mode: ImportMode = ImportMode.URL
    errors: list[GlobalError] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    duplicate_skus: list[str] = Field(default_factory=list)

    @computed_field(alias="totalRows")
    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @computed_field(alias="validRows")
    @property
    def valid_rows(self) -> int:
        return sum(1 for row in self.rows if row.is_valid)

    @computed_field(alias="invalidRows")
    @property
    def invalid_rows(self) -> int:
        return self.total_rows - self.valid_rows


class FailedRow(CamelModel):
    """A row that did not reach the store, with the reason."""

    row_index: int
    sku: str = ""
    name: str = ""
    reason: str
    errors: list[RowError] = Field(default_factory=list)


class CommitResult(CamelModel):
    """Outcome of committing one import session."""

    success: bool
    total_rows: int
    inserted_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    failed_count: int = 0
    failures: list[FailedRow] = Field(default_factory=list)
    uploaded_images: int = 0


class SessionStatus(str, Enum):
    """Lifecycle of an import session."""

    PENDING = "pending"
    COMMITTING = "committing"
    COMMITTED = "committed"
    EXPIRED = "expired"


class ImportSession(BaseModel):
    """A parsed batch waiting for commit."""

    id: str
    merchant_id: str
    user_id: str
    created_at: datetime
    expires_at: datetime
    parse_result: ParseResult
    zip_bytes: Optional[bytes] = Field(default=None, repr=False)
    status: SessionStatus = SessionStatus.PENDING


class ReportFormat(str, Enum):
    """Download formats for the failure report."""

    CSV = "csv"
    JSON = "json"
    XLSX = "xlsx"
