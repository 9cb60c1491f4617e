"""Tests for in-memory ZIP image archives."""

import zipfile

import pytest

from bazaar.services.import_service import (
    content_fingerprint,
    extract_files,
    extract_zip,
    get_zip_file_list,
)


def test_extract_zip_flattens_and_indexes_by_lowercase(make_zip, sample_image_bytes) -> None:
    data = make_zip({
        "images/Front.JPG": sample_image_bytes,
        "back.png": sample_image_bytes + b"x",
    })
    result = extract_zip(data)
    assert result.is_valid is True
    assert set(result.files) == {"front.jpg", "back.png"}
    front = result.files["front.jpg"]
    assert front.filename == "Front.JPG"
    assert front.mime_type == "image/jpeg"
    assert front.size == len(sample_image_bytes)
    assert result.total_size == 2 * len(sample_image_bytes) + 1


def test_extract_zip_skips_noise(make_zip, sample_image_bytes) -> None:
    data = make_zip({
        "__MACOSX/._front.jpg": b"meta",
        ".DS_Store": b"junk",
        "notes.txt": b"hello",
        "front.jpg": sample_image_bytes,
    })
    result = extract_zip(data)
    assert list(result.files) == ["front.jpg"]
    assert result.errors == []


def test_extract_zip_first_duplicate_basename_wins(make_zip) -> None:
    data = make_zip({"a/photo.png": b"first", "b/photo.png": b"second"})
    result = extract_zip(data)
    assert result.files["photo.png"].data == b"first"


def test_extract_zip_oversized_image_is_reported(make_zip, sample_image_bytes) -> None:
    data = make_zip({"big.png": b"x" * 2048, "small.png": sample_image_bytes})
    result = extract_zip(data, max_image_bytes=1024)
    assert "small.png" in result.files
    assert "big.png" not in result.files
    assert result.is_valid is False
    assert any("big.png" in e for e in result.errors)


def test_extract_zip_oversized_archive(make_zip, sample_image_bytes) -> None:
    data = make_zip({"a.png": sample_image_bytes})
    result = extract_zip(data, max_archive_bytes=10)
    assert result.is_valid is False
    assert result.files == {}
    assert len(result.errors) == 1
    assert "exceeds maximum size" in result.errors[0]


def test_extract_zip_corrupt_archive() -> None:
    result = extract_zip(b"definitely not a zip")
    assert result.is_valid is False
    assert result.errors[0].startswith("Failed to extract ZIP file")


def test_extract_zip_without_images(make_zip) -> None:
    result = extract_zip(make_zip({"readme.txt": b"hi"}))
    assert result.is_valid is False
    assert result.errors == ["No valid image files found in ZIP"]


def test_get_zip_file_list_reports_sizes(make_zip, sample_image_bytes) -> None:
    data = make_zip({"imgs/One.png": sample_image_bytes, "two.webp": b"abc"})
    listing = get_zip_file_list(data)
    assert listing.errors == []
    assert listing.files["one.png"].filename == "One.png"
    assert listing.files["one.png"].size == len(sample_image_bytes)
    assert listing.files["two.webp"].size == 3


def test_get_zip_file_list_corrupt() -> None:
    listing = get_zip_file_list(b"garbage")
    assert listing.files == {}
    assert len(listing.errors) == 1


def test_extract_files_only_requested(make_zip) -> None:
    data = make_zip({"a.png": b"aaa", "dir/B.jpg": b"bbb", "c.png": b"ccc"})
    files = extract_files(data, ["A.PNG", "b.jpg"])
    assert set(files) == {"a.png", "b.jpg"}
    assert files["b.jpg"].data == b"bbb"


def test_damaged_member_passes_listing_but_is_skipped(make_damaged_zip) -> None:
    data = make_damaged_zip({"good.png": b"good-image-bytes", "bad.png": b"bad-image-bytes"}, "bad.png")

    # The central directory is intact, so the listing sees both files
    listing = get_zip_file_list(data)
    assert listing.errors == []
    assert set(listing.files) == {"good.png", "bad.png"}

    files = extract_files(data, ["good.png", "bad.png"])
    assert set(files) == {"good.png"}
    assert files["good.png"].data == b"good-image-bytes"


def test_extract_zip_reports_damaged_member(make_damaged_zip) -> None:
    data = make_damaged_zip({"good.png": b"good-image-bytes", "bad.png": b"bad-image-bytes"}, "bad.png")
    result = extract_zip(data)
    assert set(result.files) == {"good.png"}
    assert result.is_valid is False
    assert result.errors[0].startswith("File bad.png could not be read")


def test_extract_files_corrupt_raises() -> None:
    with pytest.raises(zipfile.BadZipFile):
        extract_files(b"garbage", ["a.png"])


def test_content_fingerprint_strategies() -> None:
    data = b"\x01\x02" * 100
    fast = content_fingerprint(data)
    assert fast.startswith("200_")
    assert fast == content_fingerprint(bytes(data))
    # Same size and prefix collide under the fast strategy only
    other = data[:-1] + b"\x09"
    assert content_fingerprint(other) == fast
    assert content_fingerprint(other, "sha256") != content_fingerprint(data, "sha256")
    assert content_fingerprint(data, "sha256").startswith("sha256_")
