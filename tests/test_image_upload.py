"""Tests for ImageKit uploads using an httpx mock transport."""

import asyncio
import base64
import json
from datetime import datetime, timezone

import httpx
import pytest

from bazaar.services.import_service import (
    ImageKitClient,
    ImageKitConfigError,
    ImageUploadError,
    UploadCache,
    sanitize_filename,
    upload_batch,
    upload_row_images,
    upload_to_imagekit,
)
from bazaar.services.import_service.archive import ArchiveEntry
from bazaar.services.import_service.image_upload import upload_folder


class FakeImageKit:
    """Records requests and answers like the ImageKit upload API."""

    def __init__(self, fail_names: tuple[str, ...] = (), delay: float = 0.0) -> None:
        self.fail_names = fail_names
        self.delay = delay
        self.uploads: list[httpx.Request] = []
        self.deleted: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/files/batch/deleteByFileIds"):
            self.deleted.extend(json.loads(request.content)["fileIds"])
            return httpx.Response(200, json={"successfullyDeletedFileIds": self.deleted})

        self.uploads.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

        body = request.content.decode("latin-1")
        if any(f'filename="{name}"' in body for name in self.fail_names):
            return httpx.Response(500, json={"message": "boom"})

        n = len(self.uploads)
        return httpx.Response(
            200,
            json={"url": f"https://ik.test/img-{n}.jpg", "fileId": f"file-{n}", "name": f"img-{n}.jpg"},
        )

    def client(self) -> ImageKitClient:
        return ImageKitClient(private_key="private_test", transport=httpx.MockTransport(self.handler))


def _entry(name: str, data: bytes) -> ArchiveEntry:
    return ArchiveEntry(filename=name, data=data, size=len(data), mime_type="image/png")


# =============================================================================
# Helpers
# =============================================================================


def test_client_requires_private_key() -> None:
    with pytest.raises(ImageKitConfigError):
        ImageKitClient(private_key=None)


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("front.JPG", "front.jpg"),
        ("my photo (1).png", "my_photo_1_.png"),
        ("no_extension", "no_extension"),
        ("a..b.webp", "a_b.webp"),
    ],
)
def test_sanitize_filename(filename, expected) -> None:
    assert sanitize_filename(filename) == expected


def test_sanitize_filename_truncates_stem() -> None:
    assert sanitize_filename("x" * 300 + ".png") == "x" * 100 + ".png"


def test_upload_folder() -> None:
    when = datetime(2024, 3, 9, tzinfo=timezone.utc)
    assert upload_folder("m1", when) == "products/m1/2024/03"


# =============================================================================
# Single upload
# =============================================================================


@pytest.mark.asyncio
async def test_upload_to_imagekit_sends_form_and_auth() -> None:
    fake = FakeImageKit()
    async with fake.client() as client:
        result = await upload_to_imagekit(
            b"png", "Front Image.PNG", "m1", client, when=datetime(2024, 1, 2, tzinfo=timezone.utc)
        )

    assert result.url == "https://ik.test/img-1.jpg"
    assert result.file_id == "file-1"

    request = fake.uploads[0]
    expected_auth = "Basic " + base64.b64encode(b"private_test:").decode()
    assert request.headers["Authorization"] == expected_auth
    body = request.content.decode("latin-1")
    assert "Front_Image.png" in body
    assert "products/m1/2024/01" in body
    assert "merchant:m1,import" in body


@pytest.mark.asyncio
async def test_upload_to_imagekit_http_error() -> None:
    fake = FakeImageKit(fail_names=("bad.png",))
    async with fake.client() as client:
        with pytest.raises(ImageUploadError) as exc_info:
            await upload_to_imagekit(b"png", "bad.png", "m1", client)
    assert exc_info.value.filename == "bad.png"
    assert "500" in exc_info.value.message


@pytest.mark.asyncio
async def test_delete_files() -> None:
    fake = FakeImageKit()
    async with fake.client() as client:
        await client.delete_files(["a", "b"])
        await client.delete_files([])
    assert fake.deleted == ["a", "b"]


# =============================================================================
# Batch upload and deduplication
# =============================================================================


@pytest.mark.asyncio
async def test_upload_batch_respects_concurrency() -> None:
    fake = FakeImageKit(delay=0.01)
    files = {f"img{i}.png": _entry(f"img{i}.png", f"content-{i}".encode()) for i in range(8)}
    progress: list[tuple[int, int]] = []

    async with fake.client() as client:
        result = await upload_batch(
            files, "m1", client, concurrency=2, progress_callback=lambda d, t: progress.append((d, t))
        )

    assert set(result.uploaded) == set(files)
    assert result.failed == {}
    assert fake.max_in_flight <= 2
    assert progress[-1] == (8, 8)


@pytest.mark.asyncio
async def test_upload_batch_records_failures() -> None:
    fake = FakeImageKit(fail_names=("bad.png",))
    files = {"good.png": _entry("good.png", b"good"), "bad.png": _entry("bad.png", b"bad")}
    async with fake.client() as client:
        result = await upload_batch(files, "m1", client)
    assert set(result.uploaded) == {"good.png"}
    assert "bad.png" in result.failed


@pytest.mark.asyncio
async def test_cache_uploads_identical_content_once() -> None:
    fake = FakeImageKit(delay=0.01)
    cache = UploadCache()
    files = {
        "a.png": _entry("a.png", b"same-bytes"),
        "copy-of-a.png": _entry("copy-of-a.png", b"same-bytes"),
        "b.png": _entry("b.png", b"other-bytes"),
    }
    async with fake.client() as client:
        result = await upload_batch(files, "m1", client, cache=cache)

    assert len(fake.uploads) == 2
    assert cache.uploaded_count == 2
    assert result.uploaded["a.png"].url == result.uploaded["copy-of-a.png"].url


@pytest.mark.asyncio
async def test_upload_row_images_reuses_cache() -> None:
    fake = FakeImageKit()
    cache = UploadCache()
    archive = {"front.jpg": _entry("Front.jpg", b"front"), "back.jpg": _entry("back.jpg", b"back")}

    async with fake.client() as client:
        first, errors = await upload_row_images(["Front.JPG", "back.jpg"], archive, "m1", client, cache)
        second, _ = await upload_row_images(["front.jpg"], archive, "m1", client, cache)

    assert errors == []
    assert len(first) == 2
    assert second == first[:1]
    assert len(fake.uploads) == 2


@pytest.mark.asyncio
async def test_upload_row_images_errors() -> None:
    fake = FakeImageKit(fail_names=("bad.png",))
    cache = UploadCache()
    archive = {"bad.png": _entry("bad.png", b"bad")}

    async with fake.client() as client:
        urls, errors = await upload_row_images(["missing.png", "bad.png"], archive, "m1", client, cache)
        _, retry_errors = await upload_row_images(["bad.png"], archive, "m1", client, cache)

    assert urls == []
    assert errors[0] == "File not found in ZIP: missing.png"
    assert errors[1].startswith("Upload failed for bad.png")
    # A failed file is not retried within the same commit
    assert len(fake.uploads) == 1
    assert retry_errors
