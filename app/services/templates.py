"""Marketing templates: editor JSON with public/private visibility."""

import re
from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import Or, RegEx

from app.core.audit import log_event
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.pagination import paginate
from app.models.links import link_id
from app.models.template import Template
from app.models.user import User

UPDATABLE_FIELDS = ("name", "description", "category", "data", "is_public", "tags")


def template_to_dict(t: Template, include_data: bool = True) -> dict[str, Any]:
    out = {
        "id": str(t.id),
        "user_id": link_id(t.user),
        "name": t.name,
        "description": t.description,
        "category": t.category,
        "is_public": t.is_public,
        "tags": t.tags,
        "created_at": t.created_at.isoformat(),
        "updated_at": t.updated_at.isoformat(),
    }
    if include_data:
        out["data"] = t.data
    return out


def visible_to(user: User | None) -> Any:
    if user is None:
        return Template.is_public == True  # noqa: E712
    return Or(Template.is_public == True, Template.user.id == user.id)  # noqa: E712


def is_owner(t: Template, user: User | None) -> bool:
    return user is not None and link_id(t.user) == str(user.id)


async def list_templates(
    viewer: User | None,
    search: str | None = None,
    category: str | None = None,
    is_public: bool | None = None,
    owner_id: PydanticObjectId | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Template], int]:
    """Public templates plus the viewer's own, narrowed by the given filters."""
    limit, offset = paginate(page, limit)
    query = Template.find(visible_to(viewer))
    if search:
        pattern = re.escape(search.strip())
        query = query.find(
            Or(
                RegEx(Template.name, pattern, "i"),
                RegEx(Template.description, pattern, "i"),
                RegEx(Template.category, pattern, "i"),
            )
        )
    if category:
        query = query.find(Template.category == category)
    if is_public is not None:
        query = query.find(Template.is_public == is_public)
    if owner_id is not None:
        query = query.find(Template.user.id == owner_id)
    total = await query.count()
    items = await query.sort(-Template.updated_at).skip(offset).limit(limit).to_list()
    return items, total


async def get_template(template_id: PydanticObjectId) -> Template:
    t = await Template.get(template_id)
    if not t:
        raise NotFoundError("Template not found")
    return t


async def get_visible(viewer: User | None, template_id: PydanticObjectId) -> Template:
    t = await get_template(template_id)
    if not t.is_public and not is_owner(t, viewer):
        raise ForbiddenError("Access denied")
    return t


async def get_owned(user: User, template_id: PydanticObjectId) -> Template:
    t = await get_template(template_id)
    if not is_owner(t, user):
        raise ForbiddenError("Access denied")
    return t


async def create_template(user: User, data: dict[str, Any]) -> Template:
    t = Template(user=user, **{k: v for k, v in data.items() if v is not None})
    await t.insert()
    await log_event(str(user.id), "CREATE", "TEMPLATE", str(t.id), new_values=template_to_dict(t, include_data=False))
    return t


async def update_template(user: User, template_id: PydanticObjectId, changes: dict[str, Any]) -> Template:
    t = await get_owned(user, template_id)
    before = template_to_dict(t, include_data=False)
    for field in UPDATABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(t, field, changes[field])
    t.updated_at = datetime.utcnow()
    await t.save()
    await log_event(
        str(user.id), "UPDATE", "TEMPLATE", str(t.id),
        new_values=template_to_dict(t, include_data=False), old_values=before,
    )
    return t


async def delete_template(user: User, template_id: PydanticObjectId) -> None:
    t = await get_owned(user, template_id)
    before = template_to_dict(t, include_data=False)
    await t.delete()
    await log_event(str(user.id), "DELETE", "TEMPLATE", str(template_id), old_values=before)


async def duplicate_template(user: User, template_id: PydanticObjectId) -> Template:
    """Copy a visible template into the user's library; copies start private."""
    source = await get_visible(user, template_id)
    copy = Template(
        user=user,
        name=f"{source.name} (Copy)",
        description=source.description,
        category=source.category,
        data=dict(source.data),
        is_public=False,
        tags=list(source.tags),
    )
    await copy.insert()
    await log_event(
        str(user.id), "DUPLICATE", "TEMPLATE", str(copy.id),
        new_values={"source_id": str(source.id), "name": copy.name},
    )
    return copy


async def categories(viewer: User | None) -> list[str]:
    rows = await Template.find(visible_to(viewer)).aggregate(
        [{"$group": {"_id": "$category"}}, {"$sort": {"_id": 1}}]
    ).to_list()
    return [r["_id"] for r in rows if r.get("_id")]


async def set_visibility(user: User, template_id: PydanticObjectId, is_public: bool) -> Template:
    t = await get_owned(user, template_id)
    t.is_public = is_public
    t.updated_at = datetime.utcnow()
    await t.save()
    await log_event(str(user.id), "VISIBILITY_CHANGE", "TEMPLATE", str(t.id), new_values={"is_public": is_public})
    return t
