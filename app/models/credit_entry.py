from datetime import datetime

from beanie import Document, Link
from pydantic import Field

from app.models.enums import CreditType
from app.models.user import User


class CreditEntry(Document):
    """Append-only ledger row. Never updated or deleted once inserted."""
    user: Link[User]
    amount: int  # always positive
    delta: int  # signed effect on balance: -amount for USAGE
    type: CreditType
    description: str = ""
    transaction_id: str | None = None
    balance_after: int
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "credit_entries"
        indexes = [
            [("user.$id", 1), ("created_at", -1)],
            [("transaction_id", 1)],
        ]
