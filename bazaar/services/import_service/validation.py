"""Row validation for bulk product imports.

Turns parsed sheet rows into ``ValidatedRow`` records, decides the batch image
mode and flags duplicate SKUs. Validation never raises: every problem ends up
as a row error, a global error or a warning on the returned ``ParseResult``.
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Iterable, Mapping, Protocol
from urllib.parse import urlparse

from bazaar.schemas.product_import import (
    ErrorCode,
    GlobalError,
    GlobalErrorCode,
    ImportMode,
    ParseResult,
    RawRow,
    RowError,
    ValidatedRow,
    VariantImport,
)

from .constants import (
    ALLOWED_IMAGE_EXTENSIONS,
    DEFAULT_CURRENCY,
    MAX_IMAGE_SIZE,
    MAX_SKU_LENGTH,
    PENDING_IMAGE_PREFIX,
)

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")

MIXED_MODE_WARNING = (
    "Both URL mode and ZIP mode images detected. "
    "ZIP mode will be used, URL columns will be ignored."
)
IMAGES_REQUIRED_MESSAGE = "At least one image is required (provide image_urls or image_files)"
NO_IMAGES_WARNING = "No images provided - the batch cannot be committed until images are added"


class ArchiveIndexEntry(Protocol):
    filename: str
    size: int


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    error: str | None = None


def parse_number(value: Any) -> float | None:
    """Parse a finite number from a cell or JSON value; None when absent or unparsable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def detect_mode(rows: Iterable[RawRow]) -> tuple[ImportMode, list[str]]:
    """Decide the batch image mode in one pass. ZIP wins over URL, with a warning."""
    has_urls = False
    has_files = False
    for row in rows:
        has_urls = has_urls or row.has_image_urls
        has_files = has_files or row.has_image_files

    if has_files and has_urls:
        return ImportMode.ZIP, [MIXED_MODE_WARNING]
    if has_files:
        return ImportMode.ZIP, []
    return ImportMode.URL, []


def _validate_sku(sku: str) -> list[RowError]:
    if not sku:
        return [RowError(field="sku", message="SKU is required", code=ErrorCode.REQUIRED_FIELD)]

    errors: list[RowError] = []
    if len(sku) > MAX_SKU_LENGTH:
        errors.append(
            RowError(
                field="sku",
                message=f"SKU must be {MAX_SKU_LENGTH} characters or less",
                code=ErrorCode.SKU_TOO_LONG,
            )
        )
    if _WHITESPACE.search(sku):
        errors.append(
            RowError(field="sku", message="SKU cannot contain spaces", code=ErrorCode.SKU_INVALID_CHARS)
        )
    return errors


def _validate_variant(
    value: Any,
    position: int,
    row_sku: str,
    row_price: float,
) -> tuple[VariantImport | None, list[RowError]]:
    """Validate one element of variants_json. Error fields are relative to the element."""
    if not isinstance(value, dict):
        return None, [
            RowError(
                field="",
                message=f"Variant {position} must be an object",
                code=ErrorCode.INVALID_JSON,
            )
        ]

    errors: list[RowError] = []

    sku = str(value.get("sku") or "").strip()
    if len(sku) > MAX_SKU_LENGTH:
        errors.append(
            RowError(
                field="sku",
                message=f"Variant SKU must be {MAX_SKU_LENGTH} characters or less",
                code=ErrorCode.SKU_TOO_LONG,
            )
        )

    merchant_price = row_price
    for key in ("merchantPrice", "price"):
        if key in value and value[key] is not None:
            number = parse_number(value[key])
            if number is None or number < 0:
                errors.append(
                    RowError(
                        field=key,
                        message=f"Variant {key} must be a non-negative number",
                        code=ErrorCode.INVALID_NUMBER,
                    )
                )
            else:
                merchant_price = number
            break

    stock = 0
    if value.get("stock") is not None:
        number = parse_number(value["stock"])
        if number is None or number < 0:
            errors.append(
                RowError(
                    field="stock",
                    message="Variant stock must be a non-negative number",
                    code=ErrorCode.INVALID_NUMBER,
                )
            )
        else:
            stock = math.floor(number)

    attributes = value.get("attributes") or {}
    if not isinstance(attributes, dict):
        errors.append(
            RowError(
                field="attributes",
                message="Variant attributes must be an object",
                code=ErrorCode.INVALID_FORMAT,
            )
        )
        attributes = {}

    images = value.get("images") or []
    if not isinstance(images, list):
        errors.append(
            RowError(
                field="images",
                message="Variant images must be an array",
                code=ErrorCode.INVALID_FORMAT,
            )
        )
        images = []

    if errors:
        return None, errors

    return (
        VariantImport(
            sku=sku or f"{row_sku}-{position + 1}",
            attributes={str(k): str(v) for k, v in attributes.items()},
            merchant_price=merchant_price,
            stock=stock,
            images=[str(i) for i in images],
            is_active=value.get("isActive") is not False,
        ),
        [],
    )


def _validate_variants(
    raw: str,
    row_sku: str,
    row_price: float,
) -> tuple[list[VariantImport] | None, list[RowError]]:
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None, [
            RowError(
                field="variants_json",
                message="variants_json must be valid JSON",
                code=ErrorCode.INVALID_JSON,
            )
        ]

    if not isinstance(parsed, list):
        return None, [
            RowError(
                field="variants_json",
                message="variants_json must be a JSON array",
                code=ErrorCode.INVALID_JSON,
            )
        ]

    variants: list[VariantImport] = []
    errors: list[RowError] = []
    for i, item in enumerate(parsed):
        variant, variant_errors = _validate_variant(item, i, row_sku, row_price)
        for error in variant_errors:
            path = f"variants_json[{i}]" + (f".{error.field}" if error.field else "")
            errors.append(error.model_copy(update={"field": path}))
        if variant is not None:
            variants.append(variant)
    return variants, errors


def _validate_zip_images(
    filenames: list[str],
    archive_index: Mapping[str, ArchiveIndexEntry] | None,
    max_image_bytes: int,
) -> list[RowError]:
    errors: list[RowError] = []
    allowed = ", ".join(ALLOWED_IMAGE_EXTENSIONS)
    for filename in filenames:
        if PurePosixPath(filename).suffix.lower() not in ALLOWED_IMAGE_EXTENSIONS:
            errors.append(
                RowError(
                    field="image_files",
                    message=f"Invalid image type for {filename}. Allowed: {allowed}",
                    code=ErrorCode.INVALID_FILE_TYPE,
                )
            )

        if archive_index is None:
            continue
        entry = archive_index.get(filename.lower())
        if entry is None:
            errors.append(
                RowError(
                    field="image_files",
                    message=f"File not found in ZIP: {filename}",
                    code=ErrorCode.FILE_NOT_FOUND,
                )
            )
        elif entry.size > max_image_bytes:
            errors.append(
                RowError(
                    field="image_files",
                    message=f"File {filename} exceeds maximum image size of "
                    f"{max_image_bytes / 1024 / 1024:g}MB",
                    code=ErrorCode.FILE_TOO_LARGE,
                )
            )
    return errors


def validate_row(
    raw: RawRow,
    row_index: int,
    mode: ImportMode,
    archive_index: Mapping[str, ArchiveIndexEntry] | None = None,
    max_image_bytes: int = MAX_IMAGE_SIZE,
    require_images: bool = True,
) -> ValidatedRow:
    """Validate a single row against the batch mode."""
    errors: list[RowError] = []
    warnings: list[str] = []

    sku = raw.sku
    errors.extend(_validate_sku(sku))

    name = raw.name
    if not name:
        errors.append(RowError(field="name", message="Name is required", code=ErrorCode.REQUIRED_FIELD))

    price_value = parse_number(raw.price)
    if price_value is None or price_value < 0:
        errors.append(
            RowError(
                field="price",
                message="Price must be a non-negative number",
                code=ErrorCode.INVALID_NUMBER,
            )
        )
        price = 0.0
    else:
        price = price_value

    stock = 0
    stock_value = parse_number(raw.stock)
    if stock_value is not None:
        if stock_value < 0 or not stock_value.is_integer():
            errors.append(
                RowError(
                    field="stock",
                    message="Stock must be a non-negative integer",
                    code=ErrorCode.INVALID_NUMBER,
                )
            )
        stock = max(0, math.floor(stock_value))
    elif raw.stock:
        errors.append(
            RowError(
                field="stock",
                message="Stock must be a non-negative integer",
                code=ErrorCode.INVALID_NUMBER,
            )
        )

    currency = (raw.currency or DEFAULT_CURRENCY).upper()

    category = raw.category
    if not category:
        warnings.append("Category is required - will use default category if available")

    description = raw.description
    if not description:
        warnings.append("Description is empty - will use placeholder text")

    images: list[str] = []
    image_files: list[str] | None = None

    if mode == ImportMode.ZIP:
        image_files = raw.file_values()
        errors.extend(_validate_zip_images(image_files, archive_index, max_image_bytes))
        images = [f"{PENDING_IMAGE_PREFIX}{f}" for f in image_files]
    else:
        for url in raw.url_values():
            if is_valid_url(url):
                images.append(url)
            else:
                errors.append(
                    RowError(field="image_urls", message=f"Invalid URL: {url}", code=ErrorCode.INVALID_URL)
                )

    if not images:
        if require_images:
            errors.append(
                RowError(field="images", message=IMAGES_REQUIRED_MESSAGE, code=ErrorCode.REQUIRED_FIELD)
            )
        else:
            warnings.append(NO_IMAGES_WARNING)

    variants: list[VariantImport] | None = None
    if raw.variants_json:
        variants, variant_errors = _validate_variants(raw.variants_json, sku, price)
        errors.extend(variant_errors)

    return ValidatedRow(
        row_index=row_index,
        sku=sku,
        name=name,
        description=description,
        price=price,
        currency=currency,
        category=category,
        stock=stock,
        images=images,
        image_files=image_files,
        variants=variants,
        errors=errors,
        warnings=warnings,
    )


def validate_rows(
    raw_rows: Iterable[RawRow | Mapping[str, Any]],
    archive_index: Mapping[str, ArchiveIndexEntry] | None = None,
    max_image_bytes: int = MAX_IMAGE_SIZE,
) -> ParseResult:
    """Validate every row of a batch.

    Args:
        raw_rows: Parsed rows (``RawRow`` or header -> value mappings).
        archive_index: Lower-cased archive filename -> entry with ``size``,
            or None when no archive was uploaded.
        max_image_bytes: Per-image size cap checked against the index.

    Returns:
        ParseResult with one ValidatedRow per input row, in input order.
    """
    rows_in = [r if isinstance(r, RawRow) else RawRow.from_record(r) for r in raw_rows]

    mode, warnings = detect_mode(rows_in)
    errors: list[GlobalError] = []

    if mode == ImportMode.ZIP and not archive_index:
        errors.append(
            GlobalError(
                message="ZIP file is required when using image_files column",
                code=GlobalErrorCode.ZIP_REQUIRED.value,
            )
        )

    # A sheet without any image column content gets one batch error instead
    # of the same error on every row.
    any_images = any(r.has_image_urls or r.has_image_files for r in rows_in)
    if rows_in and not any_images:
        errors.append(
            GlobalError(message=IMAGES_REQUIRED_MESSAGE, code=GlobalErrorCode.IMAGES_REQUIRED.value)
        )

    rows: list[ValidatedRow] = []
    duplicate_skus: list[str] = []
    seen: set[str] = set()
    reported: set[str] = set()

    for index, raw in enumerate(rows_in):
        row = validate_row(
            raw,
            index,
            mode,
            archive_index=archive_index,
            max_image_bytes=max_image_bytes,
            require_images=any_images,
        )

        key = row.sku.lower()
        if key and key in seen:
            row.errors.append(
                RowError(
                    field="sku",
                    message=f"Duplicate SKU in file: {row.sku}",
                    code=ErrorCode.DUPLICATE_SKU,
                )
            )
            if key not in reported:
                reported.add(key)
                duplicate_skus.append(row.sku)
        elif key:
            seen.add(key)

        rows.append(row)

    result = ParseResult(
        rows=rows,
        mode=mode,
        errors=errors,
        warnings=warnings,
        duplicate_skus=duplicate_skus,
    )
    logger.info(
        "Validated %d rows (%d valid, mode=%s, %d global errors)",
        result.total_rows,
        result.valid_rows,
        mode.value,
        len(errors),
    )
    return result


def validate_merchant_access(
    role: str | None,
    user_merchant_id: str | None,
    target_merchant_id: str,
    admin_roles: Iterable[str] = ("admin",),
) -> AccessDecision:
    """Check whether a caller may import products for a merchant."""
    if role in set(admin_roles):
        return AccessDecision(allowed=True)

    if role == "merchant":
        if not user_merchant_id:
            return AccessDecision(allowed=False, error="Merchant ID not found for user")
        if user_merchant_id != target_merchant_id:
            return AccessDecision(allowed=False, error="Cannot import products for another merchant")
        return AccessDecision(allowed=True)

    return AccessDecision(allowed=False, error="Unauthorized role")
