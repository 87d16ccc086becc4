from datetime import datetime
from typing import Any

from beanie import Document, Link
from pydantic import Field

from app.models.user import User


class Template(Document):
    user: Link[User]
    name: str
    description: str = ""
    category: str
    data: dict[str, Any] = Field(default_factory=dict)  # editor canvas JSON
    is_public: bool = False
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "templates"
        indexes = [
            [("user.$id", 1), ("created_at", -1)],
            [("is_public", 1), ("category", 1)],
        ]
