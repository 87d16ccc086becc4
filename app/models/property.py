from datetime import datetime

from beanie import Document, Link
from pydantic import BaseModel, Field

from app.models.enums import PropertyStatus, PropertyType
from app.models.user import User


class PropertyImage(BaseModel):
    id: str
    url: str
    alt: str = ""
    is_primary: bool = False
    order: int = 0


class Property(Document):
    user: Link[User]
    title: str
    description: str = ""
    price: float
    property_type: PropertyType
    status: PropertyStatus = PropertyStatus.DRAFT
    address: str
    city: str
    province: str
    postal_code: str | None = None
    bedrooms: int | None = None
    bathrooms: float | None = None
    garages: int | None = None
    floor_size: float | None = None
    land_size: float | None = None
    year_built: int | None = None
    features: list[str] = Field(default_factory=list)
    featured: bool = False
    images: list[PropertyImage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "properties"
        indexes = [
            [("status", 1), ("created_at", -1)],
            [("user.$id", 1)],
            [("city", 1)],
        ]

    @property
    def primary_image(self) -> PropertyImage | None:
        for img in self.images:
            if img.is_primary:
                return img
        return None
