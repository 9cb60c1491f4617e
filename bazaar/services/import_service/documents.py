"""Mapping of validated import rows onto product documents.

The mapping is expressed as an ``UpsertSpec`` (match filter, fields set on
every write, fields set only on insert) so any store offering a conditional
bulk upsert can execute it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from bazaar.schemas.product_import import ValidatedRow, VariantImport

from .constants import PLACEHOLDER_DESCRIPTION
from .pricing import PricingPolicy, product_final_price


@dataclass(frozen=True)
class UpsertSpec:
    filter: dict[str, Any]
    set_fields: dict[str, Any]
    set_on_insert: dict[str, Any] = field(default_factory=dict)

    def update_document(self) -> dict[str, Any]:
        update: dict[str, Any] = {"$set": self.set_fields}
        if self.set_on_insert:
            update["$setOnInsert"] = self.set_on_insert
        return update


def variant_document(variant: VariantImport, pricing: PricingPolicy) -> dict[str, Any]:
    return {
        "sku": variant.sku,
        "attributes": dict(variant.attributes),
        "merchant_price": variant.merchant_price,
        "price": variant.merchant_price,
        "nubian_markup": pricing.markup_percent,
        "dynamic_markup": pricing.dynamic_markup_percent,
        "final_price": pricing.final_price(variant.merchant_price),
        "discount_price": 0,
        "stock": variant.stock,
        "images": list(variant.images),
        "is_active": variant.is_active,
    }


def attribute_definitions(variants: list[VariantImport]) -> list[dict[str, Any]]:
    """Selectable attribute definitions derived from the variants' attribute maps."""
    options: dict[str, list[str]] = {}
    labels: dict[str, str] = {}
    for variant in variants:
        for key, value in variant.attributes.items():
            name = key.strip().lower()
            if not name:
                continue
            labels.setdefault(name, key.strip())
            seen = options.setdefault(name, [])
            if value not in seen:
                seen.append(value)

    return [
        {
            "name": name,
            "display_name": labels[name][:1].upper() + labels[name][1:],
            "type": "select",
            "required": True,
            "options": values,
        }
        for name, values in options.items()
    ]


def insert_only_fields(merchant_id: Any, sku: str, now: datetime) -> dict[str, Any]:
    """Fields written only when the product is first created.

    Re-importing a SKU must not reset engagement and ranking history.
    """
    return {
        "import_sku": sku,
        "merchant": merchant_id,
        "created_at": now,
        "priority_score": 0,
        "featured": False,
        "sizes": [],
        "colors": [],
        "reviews": [],
        "average_rating": 0,
        "visibility_score": 0,
        "score_calculated_at": None,
        "tracking_fields": {
            "views24h": 0,
            "cart_count24h": 0,
            "sales24h": 0,
            "favorites_count": 0,
        },
        "ranking_fields": {
            "visibility_score": 0,
            "conversion_rate": 0,
            "store_rating": 0,
            "priority_score": 0,
            "featured": False,
        },
    }


def build_upsert_spec(
    row: ValidatedRow,
    merchant_id: Any,
    category_id: Any,
    images: list[str],
    pricing: PricingPolicy | None = None,
    now: datetime | None = None,
) -> UpsertSpec:
    """Build the upsert for one committable row, matched on (merchant, import_sku)."""
    pricing = pricing or PricingPolicy()
    now = now or datetime.now(timezone.utc)

    variants = [variant_document(v, pricing) for v in row.variants or []]
    final_price = product_final_price(
        pricing.final_price(row.price),
        (v["final_price"] for v in variants),
    )

    set_fields = {
        "name": row.name,
        "description": row.description or PLACEHOLDER_DESCRIPTION,
        "merchant_price": row.price,
        "price": row.price,
        "stock": row.stock,
        "images": list(images),
        "category": category_id,
        "is_active": True,
        "nubian_markup": pricing.markup_percent,
        "dynamic_markup": pricing.dynamic_markup_percent,
        "final_price": final_price,
        "discount_price": 0,
        "deleted_at": None,
        "variants": variants,
        "attributes": attribute_definitions(row.variants or []),
        "updated_at": now,
    }

    return UpsertSpec(
        filter={"merchant": merchant_id, "import_sku": row.sku},
        set_fields=set_fields,
        set_on_insert=insert_only_fields(merchant_id, row.sku, now),
    )
