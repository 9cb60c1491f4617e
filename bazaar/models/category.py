"""Category document model."""

from typing import Optional

from beanie import Document, Indexed, PydanticObjectId


class Category(Document):
    """Catalog category that products are filed under."""

    name: Indexed(str)
    parent: Optional[PydanticObjectId] = None

    class Settings:
        name = "categories"

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name})>"
