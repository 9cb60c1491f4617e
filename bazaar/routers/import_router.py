"""Bulk product import endpoints: parse, commit, failure reports and templates."""

import logging
from typing import Annotated

from bson import ObjectId
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from pymongo.errors import PyMongoError

from bazaar.config import settings
from bazaar.schemas.import_schemas import (
    CommitRequest,
    CommitResponse,
    FailuresRequest,
    ParseResponse,
)
from bazaar.schemas.product_import import ImportMode
from bazaar.services.auth import RequireAuth
from bazaar.services.import_service import (
    ImageKitConfigError,
    ImportSessionManager,
    PricingPolicy,
    commit_import,
    failures_report,
    get_category_map,
    get_default_category_id,
    get_session_manager,
    get_zip_file_list,
    parse_csv,
    parse_xlsx,
    template_csv,
    template_xlsx,
    validate_merchant_access,
    validate_rows,
    validate_session_access,
)
from bazaar.services.import_service.templates import CONTENT_TYPES, report_filename

logger = logging.getLogger(__name__)

router = APIRouter()

SessionManager = Annotated[ImportSessionManager, Depends(get_session_manager)]

DATA_FILE_EXTENSIONS = {"csv", "xlsx", "xls"}
CHUNK_SIZE = 64 * 1024  # 64 KB
TEMPLATE_CACHE_CONTROL = "public, max-age=86400"


def _get_file_extension(filename: str | None) -> str:
    """Extract file extension from filename."""
    if not filename:
        return ""
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def _format_mb(size: int) -> str:
    return f"{size // (1024 * 1024)} MB"


async def _read_limited(upload: UploadFile, max_bytes: int, label: str) -> bytes:
    """Read an upload in chunks, failing with 413 once it passes ``max_bytes``."""
    chunks: list[bytes] = []
    total_size = 0
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"{label} exceeds maximum size of {_format_mb(max_bytes)}",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/parse", response_model=ParseResponse)
async def parse_import(
    principal: RequireAuth,
    sessions: SessionManager,
    merchant_id: str = Form(..., alias="merchantId"),
    data_file: UploadFile = File(..., alias="dataFile", description="CSV or XLSX product sheet"),
    zip_file: UploadFile | None = File(None, alias="zipFile", description="ZIP of product images"),
) -> ParseResponse:
    """Parse and validate a product sheet and open an import session.

    Returns a preview of the first rows with per-row errors. Nothing is
    written to the catalog until the session is committed.
    """
    if not ObjectId.is_valid(merchant_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid merchant ID format",
        )

    access = validate_merchant_access(
        principal.role, principal.merchant_id, merchant_id, settings.admin_roles
    )
    if not access.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=access.error or "Forbidden")

    ext = _get_file_extension(data_file.filename)
    if ext not in DATA_FILE_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File must be CSV or XLSX format",
        )

    content = await _read_limited(data_file, settings.max_data_file_bytes, "Data file")

    if ext == "csv":
        sheet = parse_csv(content, max_rows=settings.max_import_rows)
    else:
        sheet = parse_xlsx(content, max_rows=settings.max_import_rows)

    if sheet.errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{'CSV' if ext == 'csv' else 'XLSX'} parsing failed: {'; '.join(sheet.errors)}",
        )

    zip_bytes: bytes | None = None
    archive_index = None
    if zip_file is not None and zip_file.filename:
        if _get_file_extension(zip_file.filename) != "zip":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Image archive must be a ZIP file",
            )
        zip_bytes = await _read_limited(zip_file, settings.max_archive_bytes, "ZIP file")
        listing = get_zip_file_list(zip_bytes, settings.max_archive_bytes)
        if listing.errors:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"ZIP processing failed: {'; '.join(listing.errors)}",
            )
        archive_index = listing.files
        logger.info(
            "ZIP file %s listed: %d images, %d bytes",
            zip_file.filename,
            len(listing.files),
            len(zip_bytes),
        )

    result = validate_rows(sheet.rows, archive_index=archive_index, max_image_bytes=settings.max_image_bytes)

    session = await sessions.create_session(
        merchant_id,
        principal.user_id,
        result,
        zip_bytes if result.mode == ImportMode.ZIP else None,
    )

    logger.info(
        "Parse completed: session %s, merchant %s, %d rows (%d valid), mode=%s",
        session.id,
        merchant_id,
        result.total_rows,
        result.valid_rows,
        result.mode.value,
    )

    return ParseResponse(
        success=True,
        session_id=session.id,
        preview=result.rows[: settings.preview_rows],
        total_rows=result.total_rows,
        valid_rows=result.valid_rows,
        invalid_rows=result.invalid_rows,
        mode=result.mode,
        errors=result.errors,
        warnings=result.warnings,
        duplicate_skus=result.duplicate_skus,
    )


@router.post("/commit", response_model=CommitResponse)
async def commit_session(
    request: CommitRequest,
    principal: RequireAuth,
    sessions: SessionManager,
) -> CommitResponse:
    """Write the valid rows of a parsed session to the catalog."""
    session = await sessions.get_session(request.session_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found or expired",
        )

    access = validate_session_access(session, principal.user_id, principal.role, settings.admin_roles)
    if not access.allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=access.error or "Forbidden")

    parse_result = session.parse_result
    if parse_result.errors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="; ".join(e.message for e in parse_result.errors),
        )

    if not await sessions.begin_commit(session.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Session has already been committed or a commit is in progress",
        )

    logger.info(
        "Starting commit of session %s for merchant %s (%d rows, %d valid, mode=%s)",
        session.id,
        session.merchant_id,
        parse_result.total_rows,
        parse_result.valid_rows,
        parse_result.mode.value,
    )

    try:
        try:
            category_map = await get_category_map()
        except PyMongoError as e:
            logger.warning("Failed to load category map, categories will fall back to default: %s", e)
            category_map = None

        default_category_id = await get_default_category_id(settings.default_category_id)
        if not default_category_id:
            logger.warning("No default category found - rows without a known category will fail")

        result = await commit_import(
            merchant_id=session.merchant_id,
            rows=parse_result.rows,
            mode=parse_result.mode,
            zip_bytes=session.zip_bytes,
            category_map=category_map,
            default_category_id=default_category_id,
            pricing=PricingPolicy.from_settings(),
            upload_concurrency=settings.upload_concurrency,
            dedup_strategy=settings.image_dedup,
        )
    except ImageKitConfigError as e:
        await sessions.abort_commit(session.id)
        logger.error("Commit of session %s aborted: %s", session.id, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Image storage is not configured",
        )
    except PyMongoError as e:
        await sessions.abort_commit(session.id)
        logger.error("Commit of session %s failed, database unavailable: %s", session.id, e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable, please retry",
        )
    except Exception:
        await sessions.abort_commit(session.id)
        logger.exception("Commit of session %s failed unexpectedly, session released for retry", session.id)
        raise

    await sessions.finish_commit(session.id)

    logger.info(
        "Commit completed: session %s, merchant %s, %d inserted, %d updated, %d failed, %d images",
        session.id,
        session.merchant_id,
        result.inserted_count,
        result.updated_count,
        result.failed_count,
        result.uploaded_images,
    )

    return CommitResponse(success=result.failed_count == 0, result=result)


@router.post("/failures")
async def download_failures(
    request: FailuresRequest,
    principal: RequireAuth,
) -> Response:
    """Render failed rows as a CSV, JSON or XLSX attachment."""
    content = failures_report(request.failures, request.format)
    return Response(
        content=content,
        media_type=CONTENT_TYPES[request.format],
        headers={
            "Content-Disposition": f'attachment; filename="{report_filename(request.format)}"'
        },
    )


@router.get("/template.csv")
async def download_template_csv() -> Response:
    """Example sheet covering URL images, ZIP images and variants."""
    return Response(
        content=template_csv(),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": 'attachment; filename="product-import-template.csv"',
            "Cache-Control": TEMPLATE_CACHE_CONTROL,
        },
    )


@router.get("/template.xlsx")
async def download_template_xlsx() -> Response:
    return Response(
        content=template_xlsx(),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": 'attachment; filename="product-import-template.xlsx"',
            "Cache-Control": TEMPLATE_CACHE_CONTROL,
        },
    )
