from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field

from app.core.exceptions import NotFoundError
from app.core.pagination import pagination_meta
from app.deps import parse_object_id
from app.models.enums import PropertyStatus, PropertyType
from app.services import listings as listings_service
from app.services import properties as properties_service
from app.services.leads import lead_to_dict
from app.services.rate_limit import search_rate_limit

router = APIRouter()


class InterestRequest(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = ""
    email: EmailStr
    phone: str | None = None
    message: str | None = Field(default=None, max_length=2000)


@router.get("", dependencies=[Depends(search_rate_limit)])
async def listings_list(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str | None = None,
    property_type: PropertyType | None = None,
    city: str | None = None,
    province: str | None = None,
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    bedrooms: int | None = Query(None, ge=0),
    bathrooms: float | None = Query(None, ge=0),
    featured: bool = False,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
):
    """Public listings: ACTIVE properties only."""
    filters = properties_service.build_filters(
        search=search,
        property_type=property_type,
        city=city,
        province=province,
        min_price=min_price,
        max_price=max_price,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        featured=featured,
    )
    sort = "-created_at" if featured else properties_service.sort_key(sort_by, sort_order)
    items, total = await properties_service.search(filters, sort, page, limit)
    return {"listings": items, "pagination": pagination_meta(page, limit, total)}


@router.get("/featured")
async def listings_featured(limit: int = Query(6, ge=1, le=50)):
    return {"listings": await listings_service.featured(limit)}


@router.get("/location/{location}")
async def listings_by_location(
    location: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    property_type: PropertyType | None = None,
):
    """ACTIVE listings whose city or province contains the location."""
    filters = properties_service.build_filters(property_type=property_type)
    filters.append(listings_service.location_filter(location))
    items, total = await properties_service.search(filters, "-created_at", page, limit)
    return {"listings": items, "location": location, "pagination": pagination_meta(page, limit, total)}


@router.get("/search/advanced", dependencies=[Depends(search_rate_limit)])
async def listings_advanced_search(
    q: str | None = None,
    property_type: PropertyType | None = None,
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    bedrooms: int | None = Query(None, ge=0),
    bathrooms: float | None = Query(None, ge=0),
    garages: int | None = Query(None, ge=0),
    min_floor_size: float | None = Query(None, ge=0),
    max_floor_size: float | None = Query(None, ge=0),
    year_built: int | None = None,
    city: str | None = None,
    province: str | None = None,
    features: str | None = Query(None, description="Comma-separated; matches any"),
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    feature_list = [f.strip() for f in features.split(",") if f.strip()] if features else None
    filters = properties_service.build_filters(
        search=q,
        property_type=property_type,
        city=city,
        province=province,
        min_price=min_price,
        max_price=max_price,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        garages=garages,
        min_floor_size=min_floor_size,
        max_floor_size=max_floor_size,
        year_built=year_built,
        features=feature_list,
        search_features=True,
    )
    items, total = await properties_service.search(
        filters, properties_service.sort_key(sort_by, sort_order), page, limit
    )
    return {
        "listings": items,
        "search_criteria": {
            "query": q,
            "filters": {
                "property_type": property_type.value if property_type else None,
                "price_range": {"min": min_price, "max": max_price},
                "bedrooms": bedrooms,
                "bathrooms": bathrooms,
                "garages": garages,
                "floor_size": {"min": min_floor_size, "max": max_floor_size},
                "year_built": year_built,
                "location": {"city": city, "province": province},
                "features": feature_list,
            },
        },
        "pagination": pagination_meta(page, limit, total),
    }


@router.get("/stats/summary")
async def listings_summary():
    return {"summary": await listings_service.summary()}


@router.get("/{listing_id}")
async def listing_get(listing_id: str):
    detail = await properties_service.get_detail(parse_object_id(listing_id, "Listing"))
    if detail["status"] != PropertyStatus.ACTIVE.value:
        raise NotFoundError("Listing not found")
    return {"listing": detail}


@router.post("/{listing_id}/interest", status_code=status.HTTP_201_CREATED)
async def listing_interest(listing_id: str, body: InterestRequest):
    """Anonymous buyer enquiry; becomes a WEBSITE lead for the listing agent."""
    lead = await listings_service.express_interest(parse_object_id(listing_id, "Listing"), body.model_dump())
    return {"lead": lead_to_dict(lead), "message": "Interest recorded successfully"}
