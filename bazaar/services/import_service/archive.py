"""In-memory ZIP archive handling for product images.

Entries are flattened to their basename and indexed by the lower-cased name,
so spreadsheet references match regardless of case or folder layout.
"""

import hashlib
import io
import logging
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Iterable, Literal

from .constants import (
    ALLOWED_IMAGE_EXTENSIONS,
    EXTENSION_MIME_MAP,
    FINGERPRINT_PREFIX_BYTES,
    MAX_IMAGE_SIZE,
    MAX_ZIP_SIZE,
)

logger = logging.getLogger(__name__)

FingerprintStrategy = Literal["fast", "sha256"]


@dataclass(frozen=True)
class ArchiveEntry:
    """One image extracted from an archive."""

    filename: str
    data: bytes = field(repr=False)
    size: int
    mime_type: str


@dataclass
class ArchiveExtraction:
    """Result of extracting every usable image from an archive."""

    is_valid: bool
    files: dict[str, ArchiveEntry] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)
    total_size: int = 0


@dataclass(frozen=True)
class ArchiveListingEntry:
    filename: str
    size: int


@dataclass
class ArchiveListing:
    """Image names and uncompressed sizes read from the central directory."""

    files: dict[str, ArchiveListingEntry] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)


def get_mime_type(filename: str) -> str:
    return EXTENSION_MIME_MAP.get(PurePosixPath(filename).suffix.lower(), "application/octet-stream")


def _format_mb(size: int) -> str:
    return f"{size / 1024 / 1024:g}MB"


def _image_members(archive: zipfile.ZipFile) -> Iterable[tuple[str, zipfile.ZipInfo]]:
    """Yield (basename, info) for image entries, skipping packaging noise."""
    for info in archive.infolist():
        if info.is_dir():
            continue
        path = info.filename.replace("\\", "/")
        if "__MACOSX" in path.split("/"):
            continue
        basename = path.rsplit("/", 1)[-1]
        if not basename or basename.startswith("."):
            continue
        if PurePosixPath(basename).suffix.lower() not in ALLOWED_IMAGE_EXTENSIONS:
            continue
        yield basename, info


def extract_zip(
    data: bytes,
    max_archive_bytes: int = MAX_ZIP_SIZE,
    max_image_bytes: int = MAX_IMAGE_SIZE,
) -> ArchiveExtraction:
    """Extract and validate every image in an archive.

    An oversized archive yields a single error and no files. An oversized
    image is reported and left out; the rest still extract. When two entries
    share a basename the first one wins.
    """
    if len(data) > max_archive_bytes:
        return ArchiveExtraction(
            is_valid=False,
            errors=[f"ZIP file exceeds maximum size of {_format_mb(max_archive_bytes)}"],
            total_size=len(data),
        )

    files: dict[str, ArchiveEntry] = {}
    errors: list[str] = []
    total_size = 0

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for basename, info in _image_members(archive):
                key = basename.lower()
                if key in files:
                    logger.debug("Duplicate archive entry ignored: %s", info.filename)
                    continue

                total_size += info.file_size
                if info.file_size > max_image_bytes:
                    errors.append(
                        f"File {basename} exceeds maximum image size of {_format_mb(max_image_bytes)}"
                    )
                    continue

                try:
                    content = archive.read(info)
                except (zipfile.BadZipFile, zlib.error) as e:
                    logger.warning("Unreadable ZIP entry %s: %s", info.filename, e)
                    errors.append(f"File {basename} could not be read: {e}")
                    continue
                files[key] = ArchiveEntry(
                    filename=basename,
                    data=content,
                    size=len(content),
                    mime_type=get_mime_type(basename),
                )
    except (zipfile.BadZipFile, zipfile.LargeZipFile, NotImplementedError, RuntimeError) as e:
        logger.warning("Failed to extract ZIP file: %s", e)
        return ArchiveExtraction(is_valid=False, errors=[f"Failed to extract ZIP file: {e}"])

    if not files:
        errors.append("No valid image files found in ZIP")

    logger.info("Extracted %d images (%d bytes) from ZIP", len(files), total_size)
    return ArchiveExtraction(
        is_valid=not errors,
        files=files,
        errors=errors,
        total_size=total_size,
    )


def get_zip_file_list(data: bytes, max_archive_bytes: int = MAX_ZIP_SIZE) -> ArchiveListing:
    """List image entries without decompressing them."""
    if len(data) > max_archive_bytes:
        return ArchiveListing(
            errors=[f"ZIP file exceeds maximum size of {_format_mb(max_archive_bytes)}"]
        )

    listing: dict[str, ArchiveListingEntry] = {}
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for basename, info in _image_members(archive):
                listing.setdefault(
                    basename.lower(), ArchiveListingEntry(filename=basename, size=info.file_size)
                )
    except zipfile.BadZipFile as e:
        return ArchiveListing(errors=[f"Failed to read ZIP file: {e}"])

    return ArchiveListing(files=listing)


def extract_files(data: bytes, filenames: Iterable[str]) -> dict[str, ArchiveEntry]:
    """Extract only the requested entries, matched case-insensitively by basename.

    Entries whose data is damaged are logged and left out, so callers see
    them as missing files.

    Raises:
        zipfile.BadZipFile: If the archive itself cannot be opened.
    """
    wanted = {name.lower() for name in filenames}
    result: dict[str, ArchiveEntry] = {}
    if not wanted:
        return result

    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for info in archive.infolist():
            if info.is_dir():
                continue
            basename = info.filename.replace("\\", "/").rsplit("/", 1)[-1]
            key = basename.lower()
            if key not in wanted or key in result:
                continue
            try:
                content = archive.read(info)
            except (zipfile.BadZipFile, zlib.error) as e:
                logger.warning("Skipping unreadable ZIP entry %s: %s", info.filename, e)
                continue
            result[key] = ArchiveEntry(
                filename=basename,
                data=content,
                size=len(content),
                mime_type=get_mime_type(basename),
            )

    return result


def content_fingerprint(data: bytes, strategy: FingerprintStrategy = "fast") -> str:
    """Fingerprint image bytes for upload deduplication.

    ``fast`` combines the size with the first bytes of the file; two different
    files can collide. ``sha256`` digests the whole content.
    """
    if strategy == "sha256":
        return "sha256_" + hashlib.sha256(data).hexdigest()
    return f"{len(data)}_{data[:FINGERPRINT_PREFIX_BYTES].hex()}"
