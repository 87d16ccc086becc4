from datetime import datetime

from beanie import Document, Indexed
from pydantic import Field

from app.models.enums import ADMIN_ROLES, UserRole


class User(Document):
    email: Indexed(str, unique=True)
    password_hash: str
    first_name: str
    last_name: str
    phone: str | None = None
    avatar: str | None = None
    role: UserRole = UserRole.USER
    is_active: bool = True
    is_verified: bool = False
    last_login: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "users"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
