"""Committing validated import rows to the product collection.

Each valid row becomes one unordered ``UpdateOne(..., upsert=True)`` matched on
``(merchant, import_sku)``, so re-running an import updates products instead
of duplicating them. Rows that cannot be staged, and operations the store
rejects, are reported as ``FailedRow`` entries.
"""

import logging
from typing import Any, Mapping, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import UpdateOne
from pymongo.errors import BulkWriteError, PyMongoError

from bazaar.models import Category, Product
from bazaar.schemas.product_import import (
    CommitResult,
    ErrorCode,
    FailedRow,
    ImportMode,
    RowError,
    ValidatedRow,
)

from .archive import ArchiveEntry, FingerprintStrategy, extract_files
from .constants import (
    PENDING_IMAGE_PREFIX,
    REASON_CATEGORY_UNRESOLVED,
    REASON_DATABASE_WRITE,
    REASON_IMAGE_REQUIRED,
    REASON_IMAGE_UPLOAD_FAILED,
    REASON_VALIDATION_FAILED,
    UPLOAD_CONCURRENCY,
)
from .documents import build_upsert_spec
from .image_upload import (
    ImageKitClient,
    ProgressCallback,
    UploadCache,
    upload_batch,
    upload_row_images,
)
from .pricing import PricingPolicy

logger = logging.getLogger(__name__)


def _failure(row: ValidatedRow, reason: str, errors: list[RowError]) -> FailedRow:
    return FailedRow(row_index=row.row_index, sku=row.sku, name=row.name, reason=reason, errors=errors)


def _resolve_category(
    row: ValidatedRow,
    category_map: Mapping[str, str] | None,
    default_category_id: str | None,
) -> str | None:
    if row.category and category_map:
        category_id = category_map.get(row.category.lower())
        if category_id:
            return category_id
    return default_category_id


async def commit_import(
    merchant_id: str,
    rows: Sequence[ValidatedRow],
    mode: ImportMode,
    zip_bytes: bytes | None = None,
    category_map: Mapping[str, str] | None = None,
    default_category_id: str | None = None,
    image_client: ImageKitClient | None = None,
    pricing: PricingPolicy | None = None,
    collection: Any = None,
    upload_concurrency: int = UPLOAD_CONCURRENCY,
    dedup_strategy: FingerprintStrategy = "fast",
    progress_callback: ProgressCallback | None = None,
) -> CommitResult:
    """Upsert the valid rows of a batch and report every row that did not make it.

    Args:
        merchant_id: Owning merchant (ObjectId string).
        rows: Validated rows from the import session.
        mode: Batch image mode.
        zip_bytes: Archive uploaded with the data file (ZIP mode).
        category_map: Lower-cased category name -> category id.
        default_category_id: Category for rows whose label does not resolve.
        image_client: ImageKit client; built from settings when ZIP mode needs one.
        pricing: Markup policy; defaults come from settings.
        collection: Motor collection to write to (defaults to the products collection).

    Returns:
        CommitResult with store-reported insert/update counts.

    Raises:
        ImageKitConfigError: If images must be uploaded and ImageKit is not configured.
        PyMongoError: If the store cannot be reached or fails outside per-row errors.
    """
    merchant_oid = ObjectId(merchant_id)
    pricing = pricing or PricingPolicy.from_settings()

    failures: list[FailedRow] = []
    operations: list[UpdateOne] = []
    staged: list[ValidatedRow] = []
    skipped_count = 0

    owns_client = False
    cache = UploadCache(strategy=dedup_strategy)
    archive_files: dict[str, ArchiveEntry] | None = None

    try:
        if mode == ImportMode.ZIP and zip_bytes:
            needed = {f.lower() for row in rows if row.is_valid for f in row.image_files or []}
            if needed:
                archive_files = extract_files(zip_bytes, needed)
                logger.info(
                    "Extracted %d of %d referenced files from ZIP", len(archive_files), len(needed)
                )
                if image_client is None:
                    image_client = ImageKitClient.from_settings()
                    owns_client = True
                await upload_batch(
                    archive_files,
                    merchant_id,
                    image_client,
                    cache=cache,
                    concurrency=upload_concurrency,
                    progress_callback=progress_callback,
                )

        for row in rows:
            if not row.is_valid:
                failures.append(_failure(row, REASON_VALIDATION_FAILED, list(row.errors)))
                skipped_count += 1
                continue

            images: list[str] = []
            if mode == ImportMode.ZIP:
                if row.image_files and archive_files is not None and image_client is not None:
                    urls, upload_errors = await upload_row_images(
                        row.image_files, archive_files, merchant_id, image_client, cache
                    )
                    if upload_errors:
                        failures.append(
                            _failure(
                                row,
                                REASON_IMAGE_UPLOAD_FAILED,
                                [
                                    RowError(field="images", message=e, code=ErrorCode.FILE_NOT_FOUND)
                                    for e in upload_errors
                                ],
                            )
                        )
                        skipped_count += 1
                        continue
                    images = urls
            else:
                images = [url for url in row.images if not url.startswith(PENDING_IMAGE_PREFIX)]

            if not images:
                failures.append(
                    _failure(
                        row,
                        REASON_IMAGE_REQUIRED,
                        [
                            RowError(
                                field="images",
                                message="At least one image is required",
                                code=ErrorCode.REQUIRED_FIELD,
                            )
                        ],
                    )
                )
                skipped_count += 1
                continue

            category_id = _resolve_category(row, category_map, default_category_id)
            if not category_id:
                failures.append(
                    _failure(
                        row,
                        REASON_CATEGORY_UNRESOLVED,
                        [RowError(field="category", message="Category is required", code=ErrorCode.REQUIRED_FIELD)],
                    )
                )
                skipped_count += 1
                continue

            try:
                category_oid = ObjectId(category_id)
            except (InvalidId, TypeError):
                failures.append(
                    _failure(
                        row,
                        f"Invalid category id: {category_id}",
                        [
                            RowError(
                                field="category",
                                message=f"Invalid category id: {category_id}",
                                code=ErrorCode.INVALID_FORMAT,
                            )
                        ],
                    )
                )
                skipped_count += 1
                continue

            spec = build_upsert_spec(row, merchant_oid, category_oid, images, pricing)
            operations.append(UpdateOne(spec.filter, spec.update_document(), upsert=True))
            staged.append(row)

        inserted_count = 0
        updated_count = 0

        if operations:
            if collection is None:
                collection = Product.get_motor_collection()
            try:
                result = await collection.bulk_write(operations, ordered=False)
                inserted_count = result.upserted_count
                updated_count = result.modified_count
                logger.info(
                    "Bulk write for merchant %s: %d inserted, %d updated, %d operations",
                    merchant_id,
                    inserted_count,
                    updated_count,
                    len(operations),
                )
            except BulkWriteError as e:
                details = e.details or {}
                write_errors = details.get("writeErrors", [])
                for write_error in write_errors:
                    # Operation index points into the staged rows, not the input rows
                    row = staged[write_error["index"]]
                    message = write_error.get("errmsg") or REASON_DATABASE_WRITE
                    failures.append(
                        _failure(
                            row,
                            message,
                            [RowError(field="database", message=message, code=ErrorCode.INVALID_FORMAT)],
                        )
                    )
                inserted_count = details.get("nUpserted", 0)
                updated_count = details.get("nModified", 0)
                logger.warning(
                    "Bulk write for merchant %s completed with %d errors (%d inserted, %d updated)",
                    merchant_id,
                    len(write_errors),
                    inserted_count,
                    updated_count,
                )
    except PyMongoError:
        if image_client is not None and cache.uploaded:
            await image_client.delete_files([image.file_id for image in cache.uploaded])
        raise
    finally:
        if owns_client and image_client is not None:
            await image_client.aclose()

    failures.sort(key=lambda f: f.row_index)

    return CommitResult(
        success=not failures,
        total_rows=len(rows),
        inserted_count=inserted_count,
        updated_count=updated_count,
        skipped_count=skipped_count,
        failed_count=len(failures),
        failures=failures,
        uploaded_images=cache.uploaded_count,
    )


async def get_category_map() -> dict[str, str]:
    """Lower-cased category name -> category id for every category."""
    categories = await Category.find_all().to_list()
    return {c.name.lower(): str(c.id) for c in categories if c.name}


async def get_default_category_id(configured: str | None = None) -> str | None:
    """The configured fallback category, else the first category in the store."""
    if configured:
        return configured
    category = await Category.find_one({})
    return str(category.id) if category else None


async def ensure_indexes() -> None:
    """Create the unique (merchant, import_sku) index if it does not exist."""
    collection = Product.get_motor_collection()
    await collection.create_index(
        [("merchant", 1), ("import_sku", 1)],
        name="merchant_import_sku",
        unique=True,
        partialFilterExpression={"import_sku": {"$type": "string"}},
    )
    logger.info("Ensured unique index on (merchant, import_sku)")
