"""Constants for the bulk product import service."""

# Columns every data file must carry (lower-cased)
REQUIRED_HEADERS = ("sku", "name", "price")

# Column order used for templates
TEMPLATE_HEADERS = [
    "sku",
    "name",
    "description",
    "price",
    "currency",
    "category",
    "stock",
    "image_urls",
    "image_files",
    "variants_json",
]

# Maximum data rows per import (safety limit)
MAX_ROWS = 5000

MAX_SKU_LENGTH = 64

DEFAULT_CURRENCY = "USD"

# Rows returned to the client in the parse response
PREVIEW_ROWS_COUNT = 20

# Size limits
MAX_ZIP_SIZE = 50 * 1024 * 1024  # 50MB
MAX_IMAGE_SIZE = 5 * 1024 * 1024  # 5MB

# Session lifecycle
SESSION_EXPIRY_MINUTES = 15
CLEANUP_INTERVAL_MINUTES = 5

# Image uploads
UPLOAD_CONCURRENCY = 5
FINGERPRINT_PREFIX_BYTES = 100
MAX_FILENAME_STEM = 100

# Image extensions a row may reference
ALLOWED_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

# File extension to MIME type mapping for archive entries
EXTENSION_MIME_MAP = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}

PENDING_IMAGE_PREFIX = "pending:"

# Pricing defaults (percent)
DEFAULT_MARKUP_PERCENT = 10.0
DEFAULT_DYNAMIC_MARKUP_PERCENT = 0.0

PLACEHOLDER_DESCRIPTION = "No description provided"

# Failure reasons reported per row at commit time
REASON_VALIDATION_FAILED = "Validation failed"
REASON_IMAGE_UPLOAD_FAILED = "Image upload failed"
REASON_IMAGE_REQUIRED = "At least one image is required"
REASON_CATEGORY_UNRESOLVED = "Category is required and could not be resolved"
REASON_DATABASE_WRITE = "Database write error"
