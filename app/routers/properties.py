from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.core.pagination import pagination_meta
from app.deps import get_current_user, get_optional_user, parse_object_id
from app.models.enums import PropertyStatus, PropertyType
from app.models.user import User
from app.services import properties as properties_service

router = APIRouter()


class ImageIn(BaseModel):
    url: str = Field(min_length=1)
    alt: str = ""
    is_primary: bool = False
    order: int = 0


class PropertyCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    price: float = Field(ge=0)
    property_type: PropertyType
    status: PropertyStatus = PropertyStatus.DRAFT
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    province: str = Field(min_length=1)
    postal_code: str | None = None
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: float | None = Field(default=None, ge=0)
    garages: int | None = Field(default=None, ge=0)
    floor_size: float | None = Field(default=None, ge=0)
    land_size: float | None = Field(default=None, ge=0)
    year_built: int | None = Field(default=None, ge=1800, le=2100)
    features: list[str] = Field(default_factory=list)
    featured: bool = False
    images: list[ImageIn] = Field(default_factory=list)


class PropertyUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    price: float | None = Field(default=None, ge=0)
    property_type: PropertyType | None = None
    status: PropertyStatus | None = None
    address: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    bedrooms: int | None = Field(default=None, ge=0)
    bathrooms: float | None = Field(default=None, ge=0)
    garages: int | None = Field(default=None, ge=0)
    floor_size: float | None = Field(default=None, ge=0)
    land_size: float | None = Field(default=None, ge=0)
    year_built: int | None = Field(default=None, ge=1800, le=2100)
    features: list[str] | None = None
    featured: bool | None = None


@router.get("")
async def properties_list(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    property_type: PropertyType | None = None,
    status: str = "ACTIVE",
    city: str | None = None,
    province: str | None = None,
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    bedrooms: int | None = Query(None, ge=0),
    bathrooms: float | None = Query(None, ge=0),
    user_id: str | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
):
    """List properties; status defaults to ACTIVE, ALL disables the filter."""
    filters = properties_service.build_filters(
        status=status,
        search=search,
        property_type=property_type,
        city=city,
        province=province,
        min_price=min_price,
        max_price=max_price,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        user_id=parse_object_id(user_id, "User") if user_id else None,
    )
    items, total = await properties_service.search(
        filters, properties_service.sort_key(sort_by, sort_order), page, limit
    )
    return {"properties": items, "pagination": pagination_meta(page, limit, total)}


@router.get("/{property_id}")
async def property_get(property_id: str, viewer: User | None = Depends(get_optional_user)):
    detail = await properties_service.get_detail(parse_object_id(property_id, "Property"), viewer)
    return {"property": detail}


@router.post("", status_code=status.HTTP_201_CREATED)
async def property_create(body: PropertyCreate, user: User = Depends(get_current_user)):
    p = await properties_service.create_property(user, body.model_dump())
    return {"property": properties_service.property_to_dict(p)}


@router.put("/{property_id}")
async def property_update(property_id: str, body: PropertyUpdate, user: User = Depends(get_current_user)):
    p = await properties_service.update_property(
        user, parse_object_id(property_id, "Property"), body.model_dump(exclude_unset=True)
    )
    return {"property": properties_service.property_to_dict(p)}


@router.delete("/{property_id}")
async def property_delete(property_id: str, user: User = Depends(get_current_user)):
    """Soft delete: status becomes INACTIVE."""
    await properties_service.delete_property(user, parse_object_id(property_id, "Property"))
    return {"message": "Property deleted successfully"}


@router.get("/{property_id}/stats")
async def property_stats(property_id: str):
    stats = await properties_service.property_stats(parse_object_id(property_id, "Property"))
    return {"stats": stats}


@router.post("/{property_id}/images", status_code=status.HTTP_201_CREATED)
async def property_add_image(property_id: str, body: ImageIn, user: User = Depends(get_current_user)):
    image = await properties_service.add_image(
        user,
        parse_object_id(property_id, "Property"),
        body.url,
        alt=body.alt,
        is_primary=body.is_primary,
        order=body.order,
    )
    return {"image": image.model_dump()}


@router.delete("/{property_id}/images/{image_id}")
async def property_remove_image(property_id: str, image_id: str, user: User = Depends(get_current_user)):
    await properties_service.remove_image(user, parse_object_id(property_id, "Property"), image_id)
    return {"message": "Image removed successfully"}
