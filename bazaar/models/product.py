"""Product document model for MongoDB with embedded subdocuments."""

from datetime import datetime, timezone
from typing import Optional

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field, field_validator
from pymongo import ASCENDING, IndexModel


class AttributeDefinition(BaseModel):
    """Embedded definition of a selectable product attribute (size, color, ...)."""

    name: str
    display_name: str
    type: str = "select"  # 'select', 'text', 'number'
    required: bool = False
    options: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        return v.strip().lower()


class ProductVariant(BaseModel):
    """Embedded subdocument for one purchasable variant of a product."""

    sku: str
    attributes: dict[str, str]
    merchant_price: float = Field(ge=0)
    price: float = Field(ge=0)  # Mirror of merchant_price for older readers
    nubian_markup: float = Field(default=10, ge=0)
    dynamic_markup: float = Field(default=0, ge=-50)
    final_price: float = Field(default=0, ge=0)
    discount_price: float = Field(default=0, ge=0)
    stock: int = Field(ge=0)
    images: list[str] = Field(default_factory=list)
    is_active: bool = True


class TrackingFields(BaseModel):
    """Rolling engagement counters."""

    views24h: int = 0
    cart_count24h: int = 0
    sales24h: int = 0
    favorites_count: int = 0


class RankingFields(BaseModel):
    """Inputs of the catalog visibility ranking."""

    visibility_score: float = 0
    conversion_rate: float = Field(default=0, ge=0, le=100)
    store_rating: float = Field(default=0, ge=0, le=5)
    priority_score: float = 0
    featured: bool = False


class Product(Document):
    """Product document model representing a merchant's catalog item."""

    name: str
    description: str

    # Product-level pricing for simple products
    merchant_price: Optional[float] = Field(default=None, ge=0)
    price: Optional[float] = Field(default=None, ge=0)

    # Smart pricing
    nubian_markup: float = Field(default=10, ge=0)
    dynamic_markup: float = Field(default=0, ge=-50)
    final_price: float = Field(default=0, ge=0)
    discount_price: float = Field(default=0, ge=0)

    stock: Optional[int] = Field(default=None, ge=0)

    # Legacy fields
    sizes: list[str] = Field(default_factory=list)
    colors: list[str] = Field(default_factory=list)

    attributes: list[AttributeDefinition] = Field(default_factory=list)
    variants: list[ProductVariant] = Field(default_factory=list)

    is_active: bool = True

    # Admin ranking controls
    priority_score: float = Field(default=0, ge=0, le=100)
    featured: bool = False

    tracking_fields: TrackingFields = Field(default_factory=TrackingFields)
    ranking_fields: RankingFields = Field(default_factory=RankingFields)
    visibility_score: float = Field(default=0, ge=0)
    score_calculated_at: Optional[datetime] = None

    category: PydanticObjectId
    images: list[str] = Field(min_length=1)

    reviews: list[PydanticObjectId] = Field(default_factory=list)
    average_rating: float = Field(default=0, ge=0, le=5)

    merchant: Optional[PydanticObjectId] = None
    deleted_at: Optional[datetime] = None

    # Upsert key for bulk imports, unique per merchant
    import_sku: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Settings:
        name = "products"
        indexes = [
            "deleted_at",
            "import_sku",
            # Upsert key; documents created outside the importer carry no SKU
            IndexModel(
                [("merchant", ASCENDING), ("import_sku", ASCENDING)],
                name="merchant_import_sku",
                unique=True,
                partialFilterExpression={"import_sku": {"$type": "string"}},
            ),
            [("visibility_score", -1)],
            [("category", 1), ("is_active", 1), ("deleted_at", 1)],
            [("merchant", 1), ("deleted_at", 1), ("created_at", -1)],
            [
                ("is_active", 1),
                ("deleted_at", 1),
                ("featured", -1),
                ("priority_score", -1),
                ("created_at", -1),
            ],
        ]

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, sku={self.import_sku}, name={self.name})>"
