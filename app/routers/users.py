from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr

from app.core.pagination import pagination_meta
from app.deps import get_current_user, parse_object_id, require_admin
from app.models.enums import UserRole
from app.models.user import User
from app.services import admin as admin_service
from app.services import users as users_service

router = APIRouter()


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    avatar: str | None = None


class StatusUpdate(BaseModel):
    is_active: bool


class RoleUpdate(BaseModel):
    role: UserRole


class BulkStatusUpdate(BaseModel):
    user_ids: list[str]
    is_active: bool


@router.get("")
async def users_list(
    admin: User = Depends(require_admin),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    role: UserRole | None = None,
    is_active: bool | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
):
    """Admin: list users with search and filters."""
    users, total = await users_service.list_users(search, role, is_active, sort_by, sort_order, page, limit)
    return {"users": [users_service.user_to_dict(u) for u in users], "pagination": pagination_meta(page, limit, total)}


@router.post("/bulk-status")
async def users_bulk_status(body: BulkStatusUpdate, admin: User = Depends(require_admin)):
    """Admin: activate or deactivate several accounts."""
    ids = [parse_object_id(i, "User") for i in body.user_ids]
    modified = await admin_service.bulk_set_active(admin, ids, body.is_active)
    return {"modified": modified}


@router.get("/{user_id}")
async def user_get(user_id: str, user: User = Depends(get_current_user)):
    uid = parse_object_id(user_id, "User")
    users_service.ensure_self_or_admin(user, uid)
    target = await users_service.get_user(uid)
    return {"user": users_service.user_to_dict(target)}


@router.put("/{user_id}")
async def user_update(user_id: str, body: UserUpdate, user: User = Depends(get_current_user)):
    target = await users_service.update_profile(
        user, parse_object_id(user_id, "User"), body.model_dump(exclude_unset=True)
    )
    return {"user": users_service.user_to_dict(target)}


@router.patch("/{user_id}/status")
async def user_set_status(user_id: str, body: StatusUpdate, admin: User = Depends(require_admin)):
    target = await users_service.set_active(admin, parse_object_id(user_id, "User"), body.is_active)
    return {"user": users_service.user_to_dict(target)}


@router.patch("/{user_id}/role")
async def user_set_role(user_id: str, body: RoleUpdate, admin: User = Depends(require_admin)):
    target = await users_service.set_role(admin, parse_object_id(user_id, "User"), body.role)
    return {"user": users_service.user_to_dict(target)}


@router.get("/{user_id}/stats")
async def user_stats(user_id: str, user: User = Depends(get_current_user)):
    stats = await users_service.stats(user, parse_object_id(user_id, "User"))
    return {"stats": stats}
