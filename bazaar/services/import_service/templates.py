"""Downloadable import templates and failure reports."""

import json

from bazaar.schemas.product_import import FailedRow, ReportFormat

from .constants import TEMPLATE_HEADERS
from .parsers import generate_csv, generate_xlsx

FAILURE_HEADERS = ["row", "sku", "name", "reason", "errors"]

CONTENT_TYPES = {
    ReportFormat.CSV: "text/csv; charset=utf-8",
    ReportFormat.JSON: "application/json",
    ReportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}

_VARIANTS_EXAMPLE = [
    {"sku": "PROD-003-S-RED", "attributes": {"size": "S", "color": "Red"}, "merchantPrice": 199.99, "stock": 10},
    {"sku": "PROD-003-M-RED", "attributes": {"size": "M", "color": "Red"}, "merchantPrice": 199.99, "stock": 15},
    {"sku": "PROD-003-L-BLUE", "attributes": {"size": "L", "color": "Blue"}, "merchantPrice": 209.99, "stock": 8},
]

TEMPLATE_ROWS: list[dict[str, str]] = [
    {
        "sku": "PROD-001",
        "name": "Example Product (URL Mode)",
        "description": "A sample product with image URLs",
        "price": "99.99",
        "currency": "USD",
        "category": "Electronics",
        "stock": "100",
        "image_urls": "https://example.com/img1.jpg|https://example.com/img2.jpg",
        "image_files": "",
        "variants_json": "",
    },
    {
        "sku": "PROD-002",
        "name": "Example Product (ZIP Mode)",
        "description": "A sample product with images from ZIP file",
        "price": "149.99",
        "currency": "USD",
        "category": "Clothing",
        "stock": "50",
        "image_urls": "",
        "image_files": "product2-front.jpg|product2-back.jpg",
        "variants_json": "",
    },
    {
        "sku": "PROD-003",
        "name": "Product with Variants",
        "description": "A product demonstrating variant structure",
        "price": "199.99",
        "currency": "USD",
        "category": "Clothing",
        "stock": "0",
        "image_urls": "https://example.com/prod3.jpg",
        "image_files": "",
        "variants_json": json.dumps(_VARIANTS_EXAMPLE, separators=(",", ":")),
    },
]


def template_csv() -> str:
    return generate_csv(TEMPLATE_HEADERS, TEMPLATE_ROWS)


def template_xlsx() -> bytes:
    return generate_xlsx(TEMPLATE_HEADERS, TEMPLATE_ROWS)


def _failure_to_row(failure: FailedRow) -> dict[str, str]:
    return {
        "row": str(failure.row_index + 1),
        "sku": failure.sku,
        "name": failure.name,
        "reason": failure.reason,
        "errors": "; ".join(f"{e.field}: {e.message}" for e in failure.errors),
    }


def failures_report(failures: list[FailedRow], report_format: ReportFormat) -> bytes:
    """Render failed rows for download. Row numbers are 1-based."""
    if report_format == ReportFormat.JSON:
        payload = [f.model_dump(mode="json", by_alias=True) for f in failures]
        return json.dumps(payload, indent=2).encode("utf-8")

    rows = [_failure_to_row(f) for f in failures]
    if report_format == ReportFormat.XLSX:
        return generate_xlsx(FAILURE_HEADERS, rows, sheet_title="Failures")
    return generate_csv(FAILURE_HEADERS, rows).encode("utf-8")


def report_filename(report_format: ReportFormat) -> str:
    return f"import-failures.{report_format.value}"
