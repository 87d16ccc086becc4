"""Property listings owned by agents: CRUD, filtering, images."""

import re
import uuid
from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In, Or, RegEx

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, ForbiddenError, NotFoundError
from app.core.pagination import paginate
from app.models.enums import PropertyStatus, PropertyType
from app.models.lead import Lead
from app.models.links import link_id
from app.models.property import Property, PropertyImage
from app.models.user import User

STATUS_ALL = "ALL"
SORTABLE_FIELDS = ("created_at", "updated_at", "price", "title", "bedrooms", "floor_size", "city")
UPDATABLE_FIELDS = (
    "title", "description", "price", "property_type", "status", "address", "city", "province",
    "postal_code", "bedrooms", "bathrooms", "garages", "floor_size", "land_size", "year_built",
    "features", "featured",
)


def owner_summary(u: User | None) -> dict[str, Any] | None:
    if u is None:
        return None
    return {
        "id": str(u.id),
        "first_name": u.first_name,
        "last_name": u.last_name,
        "email": u.email,
        "phone": u.phone,
    }


def property_to_dict(p: Property, owner: User | None = None, primary_only: bool = False) -> dict[str, Any]:
    if primary_only:
        primary = p.primary_image
        images = [primary.model_dump()] if primary else []
    else:
        images = [img.model_dump() for img in sorted(p.images, key=lambda i: i.order)]
    out = {
        "id": str(p.id),
        "user_id": link_id(p.user),
        "title": p.title,
        "description": p.description,
        "price": p.price,
        "property_type": p.property_type.value,
        "status": p.status.value,
        "address": p.address,
        "city": p.city,
        "province": p.province,
        "postal_code": p.postal_code,
        "bedrooms": p.bedrooms,
        "bathrooms": p.bathrooms,
        "garages": p.garages,
        "floor_size": p.floor_size,
        "land_size": p.land_size,
        "year_built": p.year_built,
        "features": p.features,
        "featured": p.featured,
        "images": images,
        "created_at": p.created_at.isoformat(),
        "updated_at": p.updated_at.isoformat(),
    }
    if owner is not None:
        out["user"] = owner_summary(owner)
    return out


def contains_filter(field: Any, value: str) -> RegEx:
    return RegEx(field, re.escape(value.strip()), "i")


def text_search(q: str, include_features: bool = False) -> Or:
    clauses = [
        contains_filter(Property.title, q),
        contains_filter(Property.description, q),
        contains_filter(Property.address, q),
        contains_filter(Property.city, q),
    ]
    if include_features:
        clauses.append(In(Property.features, [q.strip()]))
    return Or(*clauses)


def build_filters(
    status: str | None = PropertyStatus.ACTIVE.value,
    search: str | None = None,
    property_type: PropertyType | None = None,
    city: str | None = None,
    province: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    bedrooms: int | None = None,
    bathrooms: float | None = None,
    user_id: PydanticObjectId | None = None,
    garages: int | None = None,
    min_floor_size: float | None = None,
    max_floor_size: float | None = None,
    year_built: int | None = None,
    features: list[str] | None = None,
    featured: bool | None = None,
    search_features: bool = False,
) -> list[Any]:
    """
    Beanie expressions for a property query. status=None means ACTIVE,
    "ALL" disables the status filter.
    """
    filters: list[Any] = []
    status = status or PropertyStatus.ACTIVE.value
    if status != STATUS_ALL:
        try:
            filters.append(Property.status == PropertyStatus(status))
        except ValueError as e:
            raise BadRequestError("Invalid status filter") from e
    if search:
        filters.append(text_search(search, include_features=search_features))
    if property_type is not None:
        filters.append(Property.property_type == property_type)
    if city:
        filters.append(contains_filter(Property.city, city))
    if province:
        filters.append(contains_filter(Property.province, province))
    if min_price is not None:
        filters.append(Property.price >= min_price)
    if max_price is not None:
        filters.append(Property.price <= max_price)
    if bedrooms is not None:
        filters.append(Property.bedrooms == bedrooms)
    if bathrooms is not None:
        filters.append(Property.bathrooms == bathrooms)
    if user_id is not None:
        filters.append(Property.user.id == user_id)
    if garages is not None:
        filters.append(Property.garages == garages)
    if min_floor_size is not None:
        filters.append(Property.floor_size >= min_floor_size)
    if max_floor_size is not None:
        filters.append(Property.floor_size <= max_floor_size)
    if year_built is not None:
        filters.append(Property.year_built == year_built)
    if features:
        filters.append(In(Property.features, features))
    if featured:
        filters.append(Property.featured == True)  # noqa: E712
    return filters


def sort_key(sort_by: str = "created_at", sort_order: str = "desc") -> str:
    field = sort_by if sort_by in SORTABLE_FIELDS else "created_at"
    return f"{'+' if sort_order == 'asc' else '-'}{field}"


async def owners_for(properties: list[Property]) -> dict[str, User]:
    ids = {PydanticObjectId(i) for i in (link_id(p.user) for p in properties) if i}
    if not ids:
        return {}
    return {str(u.id): u for u in await User.find(In(User.id, list(ids))).to_list()}


async def search(
    filters: list[Any],
    sort: str = "-created_at",
    page: int = 1,
    limit: int = 10,
) -> tuple[list[dict[str, Any]], int]:
    """Run a filtered, paginated query and serialize with owner and primary image."""
    limit, offset = paginate(page, limit)
    query = Property.find(*filters)
    total = await query.count()
    items = await query.sort(sort).skip(offset).limit(limit).to_list()
    owners = await owners_for(items)
    return [property_to_dict(p, owners.get(link_id(p.user) or ""), primary_only=True) for p in items], total


async def get_property(property_id: PydanticObjectId) -> Property:
    p = await Property.get(property_id)
    if not p:
        raise NotFoundError("Property not found")
    return p


async def get_owned(user: User, property_id: PydanticObjectId) -> Property:
    p = await get_property(property_id)
    if link_id(p.user) != str(user.id):
        raise ForbiddenError("Access denied")
    return p


async def get_detail(property_id: PydanticObjectId, viewer: User | None = None) -> dict[str, Any]:
    """Full property with owner; recent leads only for the owner or an admin."""
    p = await get_property(property_id)
    owner = await User.get(PydanticObjectId(link_id(p.user)))
    out = property_to_dict(p, owner)
    if viewer is None or (link_id(p.user) != str(viewer.id) and not viewer.is_admin):
        return out
    recent_leads = await Lead.find(Lead.property.id == p.id).sort(-Lead.created_at).limit(5).to_list()
    out["leads"] = [
        {
            "id": str(lead.id),
            "first_name": lead.first_name,
            "last_name": lead.last_name,
            "status": lead.status.value,
            "created_at": lead.created_at.isoformat(),
        }
        for lead in recent_leads
    ]
    return out


async def create_property(user: User, data: dict[str, Any]) -> Property:
    images = [PropertyImage(id=uuid.uuid4().hex, **img) for img in data.pop("images", None) or []]
    p = Property(user=user, images=images, **{k: v for k, v in data.items() if v is not None})
    await p.insert()
    await log_event(str(user.id), "CREATE", "PROPERTY", str(p.id), new_values=property_to_dict(p))
    return p


async def update_property(user: User, property_id: PydanticObjectId, changes: dict[str, Any]) -> Property:
    p = await get_owned(user, property_id)
    before = property_to_dict(p)
    for field in UPDATABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(p, field, changes[field])
    p.updated_at = datetime.utcnow()
    await p.save()
    await log_event(str(user.id), "UPDATE", "PROPERTY", str(p.id), new_values=property_to_dict(p), old_values=before)
    return p


async def delete_property(user: User, property_id: PydanticObjectId) -> Property:
    """Soft delete: the listing goes INACTIVE and stays referenced by its leads."""
    p = await get_owned(user, property_id)
    before = {"title": p.title, "status": p.status.value}
    p.status = PropertyStatus.INACTIVE
    p.updated_at = datetime.utcnow()
    await p.save()
    await log_event(str(user.id), "DELETE", "PROPERTY", str(p.id), new_values={"status": "INACTIVE"}, old_values=before)
    return p


async def property_stats(property_id: PydanticObjectId) -> dict[str, int]:
    await get_property(property_id)
    return {"leads_count": await Lead.find(Lead.property.id == property_id).count()}


async def add_image(
    user: User,
    property_id: PydanticObjectId,
    url: str,
    alt: str = "",
    is_primary: bool = False,
    order: int = 0,
) -> PropertyImage:
    p = await get_owned(user, property_id)
    if is_primary:
        for img in p.images:
            img.is_primary = False
    image = PropertyImage(id=uuid.uuid4().hex, url=url, alt=alt, is_primary=is_primary, order=order)
    p.images.append(image)
    p.updated_at = datetime.utcnow()
    await p.save()
    return image


async def remove_image(user: User, property_id: PydanticObjectId, image_id: str) -> None:
    p = await get_owned(user, property_id)
    remaining = [img for img in p.images if img.id != image_id]
    if len(remaining) == len(p.images):
        raise NotFoundError("Image not found")
    p.images = remaining
    p.updated_at = datetime.utcnow()
    await p.save()
