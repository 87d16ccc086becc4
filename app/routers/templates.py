from typing import Any

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.core.pagination import pagination_meta
from app.deps import get_current_user, get_optional_user, parse_object_id
from app.models.user import User
from app.services import templates as templates_service

router = APIRouter()


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    is_public: bool = False
    tags: list[str] = Field(default_factory=list)


class TemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    category: str | None = Field(default=None, min_length=1)
    data: dict[str, Any] | None = None
    is_public: bool | None = None
    tags: list[str] | None = None


class VisibilityUpdate(BaseModel):
    is_public: bool


@router.get("")
async def templates_list(
    viewer: User | None = Depends(get_optional_user),
    search: str | None = None,
    category: str | None = None,
    is_public: bool | None = None,
    user_id: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    """Public templates plus the caller's own."""
    items, total = await templates_service.list_templates(
        viewer,
        search=search,
        category=category,
        is_public=is_public,
        owner_id=parse_object_id(user_id, "User") if user_id else None,
        page=page,
        limit=limit,
    )
    return {
        "templates": [templates_service.template_to_dict(t, include_data=False) for t in items],
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/categories/list")
async def templates_categories(viewer: User | None = Depends(get_optional_user)):
    return {"categories": await templates_service.categories(viewer)}


@router.get("/{template_id}")
async def template_get(template_id: str, viewer: User | None = Depends(get_optional_user)):
    t = await templates_service.get_visible(viewer, parse_object_id(template_id, "Template"))
    return {"template": templates_service.template_to_dict(t)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def template_create(body: TemplateCreate, user: User = Depends(get_current_user)):
    t = await templates_service.create_template(user, body.model_dump())
    return {"template": templates_service.template_to_dict(t)}


@router.put("/{template_id}")
async def template_update(template_id: str, body: TemplateUpdate, user: User = Depends(get_current_user)):
    t = await templates_service.update_template(
        user, parse_object_id(template_id, "Template"), body.model_dump(exclude_unset=True)
    )
    return {"template": templates_service.template_to_dict(t)}


@router.delete("/{template_id}")
async def template_delete(template_id: str, user: User = Depends(get_current_user)):
    await templates_service.delete_template(user, parse_object_id(template_id, "Template"))
    return {"message": "Template deleted successfully"}


@router.post("/{template_id}/duplicate", status_code=status.HTTP_201_CREATED)
async def template_duplicate(template_id: str, user: User = Depends(get_current_user)):
    t = await templates_service.duplicate_template(user, parse_object_id(template_id, "Template"))
    return {"template": templates_service.template_to_dict(t)}


@router.patch("/{template_id}/visibility")
async def template_visibility(template_id: str, body: VisibilityUpdate, user: User = Depends(get_current_user)):
    t = await templates_service.set_visibility(user, parse_object_id(template_id, "Template"), body.is_public)
    return {"template": templates_service.template_to_dict(t, include_data=False)}
