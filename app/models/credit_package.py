from datetime import datetime

from beanie import Document
from pydantic import Field


class CreditPackage(Document):
    name: str
    description: str | None = None
    credits: int
    price: float
    currency: str = "ZAR"
    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_packages"
        indexes = [[("is_active", 1), ("sort_order", 1)]]
