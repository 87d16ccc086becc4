from datetime import datetime
from typing import Any, Optional

from beanie import Document, Link
from pydantic import Field

from app.models.credit_package import CreditPackage
from app.models.enums import PaymentMethod, TransactionStatus
from app.models.promo_code import PromoCode
from app.models.user import User


class Transaction(Document):
    """One payment attempt; created PENDING before the gateway is contacted."""
    user: Link[User]
    package: Link[CreditPackage]
    promo_code: Optional[Link[PromoCode]] = None
    amount: float  # charged amount after discount
    original_amount: float
    discount_amount: float = 0
    currency: str = "ZAR"
    status: TransactionStatus = TransactionStatus.PENDING
    payment_method: PaymentMethod
    gateway_id: str | None = None
    gateway_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "transactions"
        indexes = [
            [("user.$id", 1), ("created_at", -1)],
            [("gateway_id", 1)],
            [("status", 1)],
        ]
