from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field

from app.models.enums import DiscountType


class PromoCode(Document):
    code: Indexed(str, unique=True)  # stored upper-case
    description: str | None = None
    discount_type: DiscountType
    discount_value: float
    max_uses: int | None = None
    used_count: int = 0
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "promo_codes"
