"""Import service package for bulk product imports (parse, preview, commit)."""

from .archive import (
    ArchiveEntry,
    ArchiveExtraction,
    ArchiveListing,
    ArchiveListingEntry,
    content_fingerprint,
    extract_files,
    extract_zip,
    get_zip_file_list,
)
from .commit import commit_import, ensure_indexes, get_category_map, get_default_category_id
from .constants import MAX_ROWS, PREVIEW_ROWS_COUNT, REQUIRED_HEADERS, TEMPLATE_HEADERS
from .documents import UpsertSpec, build_upsert_spec
from .image_upload import (
    BatchUploadResult,
    ImageKitClient,
    ImageKitConfigError,
    ImageUploadError,
    UploadCache,
    UploadedImage,
    sanitize_filename,
    upload_batch,
    upload_row_images,
    upload_to_imagekit,
)
from .parsers import SheetParseResult, detect_delimiter, generate_csv, generate_xlsx, parse_csv, parse_xlsx
from .pricing import PricingPolicy, calculate_final_price
from .sessions import (
    ImportSessionManager,
    InMemorySessionStore,
    SessionStore,
    get_session_manager,
    reset_session_manager,
    validate_session_access,
)
from .templates import ReportFormat, failures_report, template_csv, template_xlsx
from .validation import AccessDecision, validate_merchant_access, validate_rows

__all__ = [
    # Constants
    "MAX_ROWS",
    "PREVIEW_ROWS_COUNT",
    "REQUIRED_HEADERS",
    "TEMPLATE_HEADERS",
    # Parsers
    "SheetParseResult",
    "detect_delimiter",
    "generate_csv",
    "generate_xlsx",
    "parse_csv",
    "parse_xlsx",
    # Archive
    "ArchiveEntry",
    "ArchiveExtraction",
    "ArchiveListing",
    "ArchiveListingEntry",
    "content_fingerprint",
    "extract_files",
    "extract_zip",
    "get_zip_file_list",
    # Validation
    "AccessDecision",
    "validate_merchant_access",
    "validate_rows",
    # Sessions
    "ImportSessionManager",
    "InMemorySessionStore",
    "SessionStore",
    "get_session_manager",
    "reset_session_manager",
    "validate_session_access",
    # Images
    "BatchUploadResult",
    "ImageKitClient",
    "ImageKitConfigError",
    "ImageUploadError",
    "UploadCache",
    "UploadedImage",
    "sanitize_filename",
    "upload_batch",
    "upload_row_images",
    "upload_to_imagekit",
    # Commit
    "PricingPolicy",
    "UpsertSpec",
    "build_upsert_spec",
    "calculate_final_price",
    "commit_import",
    "ensure_indexes",
    "get_category_map",
    "get_default_category_id",
    # Reports
    "ReportFormat",
    "failures_report",
    "template_csv",
    "template_xlsx",
]
