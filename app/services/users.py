"""User profiles and admin account management."""

import re
from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import Or, RegEx

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.core.logging import get_logger
from app.core.pagination import paginate
from app.models.enums import UserRole
from app.models.lead import Lead
from app.models.property import Property
from app.models.user import User
from app.services import credits as credits_service

log = get_logger(__name__)

PROFILE_FIELDS = ("email", "first_name", "last_name", "phone", "avatar")
SORTABLE_FIELDS = ("created_at", "email", "first_name", "last_name", "last_login", "role")


def user_to_dict(u: User) -> dict[str, Any]:
    return {
        "id": str(u.id),
        "email": u.email,
        "first_name": u.first_name,
        "last_name": u.last_name,
        "phone": u.phone,
        "avatar": u.avatar,
        "role": u.role.value,
        "is_active": u.is_active,
        "is_verified": u.is_verified,
        "last_login": u.last_login.isoformat() if u.last_login else None,
        "created_at": u.created_at.isoformat(),
    }


def ensure_self_or_admin(actor: User, user_id: PydanticObjectId) -> None:
    if actor.id != user_id and not actor.is_admin:
        raise ForbiddenError("Access denied")


async def get_user(user_id: PydanticObjectId) -> User:
    user = await User.get(user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


async def list_users(
    search: str | None = None,
    role: UserRole | None = None,
    is_active: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> tuple[list[User], int]:
    limit, offset = paginate(page, limit)
    query = User.find_all()
    if search:
        pattern = re.escape(search.strip())
        query = query.find(
            Or(
                RegEx(User.first_name, pattern, "i"),
                RegEx(User.last_name, pattern, "i"),
                RegEx(User.email, pattern, "i"),
            )
        )
    if role is not None:
        query = query.find(User.role == role)
    if is_active is not None:
        query = query.find(User.is_active == is_active)
    total = await query.count()
    field = sort_by if sort_by in SORTABLE_FIELDS else "created_at"
    direction = "+" if sort_order == "asc" else "-"
    users = await query.sort(f"{direction}{field}").skip(offset).limit(limit).to_list()
    return users, total


async def update_profile(actor: User, user_id: PydanticObjectId, changes: dict[str, Any]) -> User:
    ensure_self_or_admin(actor, user_id)
    user = await get_user(user_id)
    before = user_to_dict(user)
    if changes.get("email"):
        email = changes["email"].strip().lower()
        other = await User.find_one(User.email == email)
        if other and other.id != user.id:
            raise ConflictError("Email already in use")
        changes = {**changes, "email": email}
    for field in PROFILE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(user, field, changes[field])
    user.updated_at = datetime.utcnow()
    await user.save()
    await log_event(str(actor.id), "UPDATE", "USER", str(user.id), new_values=user_to_dict(user), old_values=before)
    return user


async def set_active(admin: User, user_id: PydanticObjectId, is_active: bool) -> User:
    if admin.id == user_id and not is_active:
        raise BadRequestError("Cannot deactivate your own account")
    user = await get_user(user_id)
    user.is_active = is_active
    user.updated_at = datetime.utcnow()
    await user.save()
    log.info("user_status_changed", target_user_id=str(user.id), is_active=is_active)
    await log_event(str(admin.id), "STATUS_CHANGE", "USER", str(user.id), new_values={"is_active": is_active})
    return user


async def set_role(admin: User, user_id: PydanticObjectId, role: UserRole) -> User:
    if admin.id == user_id and admin.role != UserRole.SUPER_ADMIN:
        raise ForbiddenError("Insufficient permissions to change your own role")
    if role == UserRole.SUPER_ADMIN and admin.role != UserRole.SUPER_ADMIN:
        raise ForbiddenError("Only a super admin can grant SUPER_ADMIN")
    user = await get_user(user_id)
    before = user.role.value
    user.role = role
    user.updated_at = datetime.utcnow()
    await user.save()
    await log_event(
        str(admin.id), "ROLE_CHANGE", "USER", str(user.id),
        new_values={"role": role.value}, old_values={"role": before},
    )
    return user


async def stats(actor: User, user_id: PydanticObjectId) -> dict[str, int]:
    ensure_self_or_admin(actor, user_id)
    await get_user(user_id)
    return {
        "properties_count": await Property.find(Property.user.id == user_id).count(),
        "leads_count": await Lead.find(Lead.user.id == user_id).count(),
        "credits_balance": await credits_service.get_balance(user_id),
    }
