"""Uploading archive images to ImageKit.

Uploads go through the ImageKit REST API with httpx. Within one commit an
``UploadCache`` makes sure each archive file, and each distinct image content,
is uploaded at most once, even when several rows reference it concurrently.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

import httpx

from .archive import ArchiveEntry, FingerprintStrategy, content_fingerprint
from .constants import MAX_FILENAME_STEM, UPLOAD_CONCURRENCY

logger = logging.getLogger(__name__)

DEFAULT_UPLOAD_URL = "https://upload.imagekit.io/api/v1/files/upload"
DEFAULT_API_URL = "https://api.imagekit.io/v1"

ProgressCallback = Callable[[int, int], None]


class ImageKitConfigError(Exception):
    """Raised when ImageKit credentials are not configured."""

    pass


class ImageUploadError(Exception):
    """Raised when an image could not be uploaded."""

    def __init__(self, filename: str, message: str) -> None:
        self.filename = filename
        self.message = message
        super().__init__(f"Failed to upload {filename}: {message}")


@dataclass(frozen=True)
class UploadedImage:
    url: str
    file_id: str
    name: str
    thumbnail_url: str | None = None


@dataclass
class BatchUploadResult:
    """Per archive key: the uploaded image, or the error message."""

    uploaded: dict[str, UploadedImage] = field(default_factory=dict)
    failed: dict[str, str] = field(default_factory=dict)


class ImageKitClient:
    """Minimal async client for the ImageKit upload and file management APIs."""

    def __init__(
        self,
        private_key: str | None,
        upload_url: str = DEFAULT_UPLOAD_URL,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not private_key:
            raise ImageKitConfigError(
                "ImageKit configuration missing. Set BAZAAR_IMAGEKIT_PRIVATE_KEY "
                "in the environment or secrets.env."
            )
        self.upload_url = upload_url
        self.api_url = api_url.rstrip("/")
        self._client = httpx.AsyncClient(
            auth=(private_key, ""),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, transport: httpx.AsyncBaseTransport | None = None) -> "ImageKitClient":
        from bazaar.config import settings

        return cls(
            private_key=settings.imagekit_private_key,
            upload_url=settings.imagekit_upload_url,
            api_url=settings.imagekit_api_url,
            timeout=settings.imagekit_timeout_seconds,
            transport=transport,
        )

    async def upload(
        self,
        data: bytes,
        filename: str,
        folder: str,
        tags: Iterable[str] = (),
        use_unique_file_name: bool = True,
    ) -> dict[str, Any]:
        """Upload one file and return ImageKit's JSON response.

        Raises:
            httpx.HTTPError: On transport failures or non-2xx responses.
        """
        response = await self._client.post(
            self.upload_url,
            files={"file": (filename, data)},
            data={
                "fileName": filename,
                "folder": folder,
                "useUniqueFileName": "true" if use_unique_file_name else "false",
                "tags": ",".join(tags),
            },
        )
        response.raise_for_status()
        return response.json()

    async def delete_files(self, file_ids: list[str]) -> None:
        """Delete uploaded files. Best effort: failures are logged, not raised."""
        if not file_ids:
            return
        try:
            response = await self._client.post(
                f"{self.api_url}/files/batch/deleteByFileIds",
                json={"fileIds": file_ids},
            )
            response.raise_for_status()
            logger.info("Deleted %d images from ImageKit", len(file_ids))
        except httpx.HTTPError as e:
            logger.error("Failed to delete %d images from ImageKit: %s", len(file_ids), e)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ImageKitClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def sanitize_filename(filename: str) -> str:
    """Reduce a filename to ``[A-Za-z0-9_-]`` plus its lower-cased extension."""
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        stem, ext = filename, ""
    clean = re.sub(r"[^a-zA-Z0-9_-]", "_", stem)
    clean = re.sub(r"_+", "_", clean)[:MAX_FILENAME_STEM]
    return f"{clean}.{ext.lower()}" if dot else clean


def upload_folder(merchant_id: str, when: datetime | None = None) -> str:
    when = when or datetime.now(timezone.utc)
    return f"products/{merchant_id}/{when.year:04d}/{when.month:02d}"


async def upload_to_imagekit(
    data: bytes,
    filename: str,
    merchant_id: str,
    client: ImageKitClient,
    when: datetime | None = None,
) -> UploadedImage:
    """Upload one image into the merchant's dated folder.

    Raises:
        ImageUploadError: If the upload fails for any reason.
    """
    folder = upload_folder(merchant_id, when)
    clean_name = sanitize_filename(filename)

    try:
        payload = await client.upload(
            data,
            clean_name,
            folder,
            tags=[f"merchant:{merchant_id}", "import"],
        )
        result = UploadedImage(
            url=payload["url"],
            file_id=payload["fileId"],
            name=payload.get("name", clean_name),
            thumbnail_url=payload.get("thumbnailUrl"),
        )
    except httpx.HTTPStatusError as e:
        logger.error(
            "ImageKit upload failed for %s (merchant %s): %d %s",
            filename,
            merchant_id,
            e.response.status_code,
            e.response.text,
        )
        raise ImageUploadError(filename, f"ImageKit returned {e.response.status_code}") from e
    except httpx.HTTPError as e:
        logger.error("ImageKit upload failed for %s (merchant %s): %s", filename, merchant_id, e)
        raise ImageUploadError(filename, str(e) or type(e).__name__) from e
    except (KeyError, TypeError, ValueError) as e:
        logger.error("Unexpected ImageKit response for %s: %s", filename, e)
        raise ImageUploadError(filename, "Unexpected response from ImageKit") from e

    logger.info("Uploaded %s to %s (fileId=%s)", clean_name, folder, result.file_id)
    return result


class UploadCache:
    """Upload results for one commit, keyed by archive key and by content.

    Concurrent requests for the same key or the same content await a single
    upload task. Failures are cached too: a file that failed once is not
    retried within the commit.
    """

    def __init__(self, strategy: FingerprintStrategy = "fast") -> None:
        self.strategy = strategy
        self._by_key: dict[str, asyncio.Task[UploadedImage]] = {}
        self._by_content: dict[str, asyncio.Task[UploadedImage]] = {}
        self.uploaded: list[UploadedImage] = []

    @property
    def uploaded_count(self) -> int:
        return len(self.uploaded)

    async def _upload(
        self,
        entry: ArchiveEntry,
        merchant_id: str,
        client: ImageKitClient,
    ) -> UploadedImage:
        result = await upload_to_imagekit(entry.data, entry.filename, merchant_id, client)
        self.uploaded.append(result)
        return result

    async def get_or_upload(
        self,
        key: str,
        entry: ArchiveEntry,
        merchant_id: str,
        client: ImageKitClient,
    ) -> UploadedImage:
        task = self._by_key.get(key)
        if task is None:
            fingerprint = content_fingerprint(entry.data, self.strategy)
            task = self._by_content.get(fingerprint)
            if task is None:
                task = asyncio.ensure_future(self._upload(entry, merchant_id, client))
                self._by_content[fingerprint] = task
            else:
                logger.debug("Reusing upload of identical content for %s", entry.filename)
            self._by_key[key] = task
        return await task


async def upload_batch(
    files: Mapping[str, ArchiveEntry],
    merchant_id: str,
    client: ImageKitClient,
    cache: UploadCache | None = None,
    concurrency: int = UPLOAD_CONCURRENCY,
    progress_callback: ProgressCallback | None = None,
) -> BatchUploadResult:
    """Upload many archive files with at most ``concurrency`` in flight.

    Results are keyed by archive key, so completion order does not matter.
    """
    cache = cache or UploadCache()
    semaphore = asyncio.Semaphore(max(1, concurrency))
    result = BatchUploadResult()
    total = len(files)
    done = 0

    async def _one(key: str, entry: ArchiveEntry) -> None:
        nonlocal done
        async with semaphore:
            try:
                result.uploaded[key] = await cache.get_or_upload(key, entry, merchant_id, client)
            except ImageUploadError as e:
                result.failed[key] = e.message
        done += 1
        if progress_callback is not None:
            progress_callback(done, total)

    await asyncio.gather(*(_one(key, entry) for key, entry in files.items()))

    logger.info(
        "Batch upload for merchant %s: %d files, %d uploads, %d failed",
        merchant_id,
        total,
        cache.uploaded_count,
        len(result.failed),
    )
    return result


async def upload_row_images(
    image_files: Iterable[str],
    archive_files: Mapping[str, ArchiveEntry],
    merchant_id: str,
    client: ImageKitClient,
    cache: UploadCache,
) -> tuple[list[str], list[str]]:
    """Resolve a row's archive filenames to URLs.

    Returns:
        (urls, errors). Any error means the row cannot be committed.
    """
    urls: list[str] = []
    errors: list[str] = []

    for filename in image_files:
        key = filename.lower()
        entry = archive_files.get(key)
        if entry is None:
            errors.append(f"File not found in ZIP: {filename}")
            continue
        try:
            uploaded = await cache.get_or_upload(key, entry, merchant_id, client)
        except ImageUploadError as e:
            errors.append(f"Upload failed for {filename}: {e.message}")
            continue
        urls.append(uploaded.url)

    return urls, errors
