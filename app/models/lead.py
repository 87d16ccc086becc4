from datetime import datetime
from typing import Optional

from beanie import Document, Link
from pydantic import Field

from app.models.enums import LeadSource, LeadStatus
from app.models.property import Property
from app.models.user import User


class Lead(Document):
    user: Optional[Link[User]] = None  # owning agent
    property: Optional[Link[Property]] = None
    first_name: str
    last_name: str = ""
    email: str | None = None
    phone: str | None = None
    source: LeadSource = LeadSource.WEBSITE
    status: LeadStatus = LeadStatus.NEW
    notes: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "leads"
        indexes = [
            [("user.$id", 1), ("created_at", -1)],
            [("property.$id", 1), ("email", 1)],
        ]
