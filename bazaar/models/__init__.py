"""MongoDB document models for Bazaar."""

from bazaar.models.category import Category
from bazaar.models.product import (
    AttributeDefinition,
    Product,
    ProductVariant,
    RankingFields,
    TrackingFields,
)

__all__ = [
    # Main documents
    "Product",
    "Category",
    # Embedded subdocuments
    "AttributeDefinition",
    "ProductVariant",
    "TrackingFields",
    "RankingFields",
]
