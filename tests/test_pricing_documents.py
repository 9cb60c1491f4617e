"""Tests for price derivation and product document mapping."""

from datetime import datetime, timezone

import pytest
from bson import ObjectId

from bazaar.schemas.product_import import ValidatedRow, VariantImport
from bazaar.services.import_service import PricingPolicy, build_upsert_spec, calculate_final_price
from bazaar.services.import_service.documents import attribute_definitions
from bazaar.services.import_service.pricing import product_final_price


# =============================================================================
# Pricing
# =============================================================================


@pytest.mark.parametrize(
    "merchant,markup,dynamic,discount,expected",
    [
        (100, 10, 0, 0, 110),
        (100, 10, 5, 0, 115),
        (100, 10, 0, 80, 80),
        (0, 10, 0, 0, 0),
        (-5, 10, 0, 0, 0),
        (100, 10, -200, 0, 0),
    ],
)
def test_calculate_final_price(merchant, markup, dynamic, discount, expected) -> None:
    assert calculate_final_price(merchant, markup, dynamic, discount) == pytest.approx(expected)


def test_pricing_policy_defaults() -> None:
    policy = PricingPolicy()
    assert policy.final_price(200) == pytest.approx(220)
    assert policy.final_price(200, discount_price=150) == 150


def test_product_final_price_uses_cheapest_variant() -> None:
    assert product_final_price(110, []) == 110
    assert product_final_price(110, [132, 121]) == 121
    assert product_final_price(110, [0, 50]) == 110


# =============================================================================
# Document mapping
# =============================================================================


NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _row(**overrides) -> ValidatedRow:
    values = dict(row_index=0, sku="SKU-1", name="Lamp", price=100.0, stock=5, category="Home")
    values.update(overrides)
    return ValidatedRow(**values)


def test_build_upsert_spec_filter_and_fields() -> None:
    merchant = ObjectId()
    category = ObjectId()
    spec = build_upsert_spec(_row(), merchant, category, ["https://cdn.test/a.jpg"], PricingPolicy(), NOW)

    assert spec.filter == {"merchant": merchant, "import_sku": "SKU-1"}
    fields = spec.set_fields
    assert fields["name"] == "Lamp"
    assert fields["description"] == "No description provided"
    assert fields["merchant_price"] == 100.0
    assert fields["final_price"] == pytest.approx(110)
    assert fields["images"] == ["https://cdn.test/a.jpg"]
    assert fields["category"] == category
    assert fields["is_active"] is True
    assert fields["deleted_at"] is None
    assert fields["variants"] == []
    assert fields["updated_at"] == NOW


def test_insert_only_fields_are_separate() -> None:
    spec = build_upsert_spec(_row(), ObjectId(), ObjectId(), ["u"], now=NOW)
    on_insert = spec.set_on_insert
    assert on_insert["created_at"] == NOW
    assert on_insert["tracking_fields"]["views24h"] == 0
    assert on_insert["ranking_fields"]["featured"] is False
    assert on_insert["reviews"] == []
    # Engagement history is never part of the update set
    assert not set(on_insert) & {"name", "price", "images", "updated_at"}

    update = spec.update_document()
    assert set(update) == {"$set", "$setOnInsert"}


def test_variants_priced_individually() -> None:
    variants = [
        VariantImport(sku="V-S", attributes={"Size": "S"}, merchant_price=90),
        VariantImport(sku="V-L", attributes={"Size": "L"}, merchant_price=120, stock=3),
    ]
    spec = build_upsert_spec(_row(variants=variants), ObjectId(), ObjectId(), ["u"], PricingPolicy(), NOW)
    docs = spec.set_fields["variants"]
    assert [v["final_price"] for v in docs] == pytest.approx([99, 132])
    assert docs[1]["stock"] == 3
    assert spec.set_fields["final_price"] == pytest.approx(99)


def test_attribute_definitions_from_variants() -> None:
    variants = [
        VariantImport(sku="a", attributes={"Size": "S", "color": "Red"}, merchant_price=1),
        VariantImport(sku="b", attributes={"size": "M", "color": "Red"}, merchant_price=1),
    ]
    definitions = attribute_definitions(variants)
    assert definitions == [
        {"name": "size", "display_name": "Size", "type": "select", "required": True, "options": ["S", "M"]},
        {"name": "color", "display_name": "Color", "type": "select", "required": True, "options": ["Red"]},
    ]
