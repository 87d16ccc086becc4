"""Public, read-mostly view over ACTIVE properties plus buyer interest."""

from typing import Any

from beanie import PydanticObjectId
from beanie.operators import Or

from app.core.exceptions import ConflictError, NotFoundError
from app.core.logging import get_logger
from app.models.enums import LeadSource, LeadStatus, PropertyStatus
from app.models.lead import Lead
from app.models.links import link_id
from app.models.property import Property
from app.models.user import User
from app.services import properties as properties_service

log = get_logger(__name__)

TOP_LOCATIONS = 10


async def featured(limit: int = 6) -> list[dict[str, Any]]:
    items = await Property.find(
        Property.status == PropertyStatus.ACTIVE,
        Property.featured == True,  # noqa: E712
    ).sort(-Property.created_at).limit(max(1, min(limit, 50))).to_list()
    owners = await properties_service.owners_for(items)
    return [
        properties_service.property_to_dict(p, owners.get(link_id(p.user) or ""), primary_only=True)
        for p in items
    ]


def location_filter(location: str) -> Or:
    return Or(
        properties_service.contains_filter(Property.city, location),
        properties_service.contains_filter(Property.province, location),
    )


async def summary() -> dict[str, Any]:
    """Totals, average price, type breakdown and the busiest cities."""
    active = Property.find(Property.status == PropertyStatus.ACTIVE)
    total = await active.count()
    average = await Property.find(Property.status == PropertyStatus.ACTIVE).avg(Property.price)
    types = await Property.find(Property.status == PropertyStatus.ACTIVE).aggregate(
        [
            {"$group": {"_id": "$property_type", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
        ]
    ).to_list()
    cities = await Property.find(Property.status == PropertyStatus.ACTIVE).aggregate(
        [
            {"$group": {"_id": "$city", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
            {"$limit": TOP_LOCATIONS},
        ]
    ).to_list()
    return {
        "total_listings": total,
        "average_price": round(average or 0, 2),
        "property_type_breakdown": [{"type": t["_id"], "count": t["count"]} for t in types],
        "top_locations": [{"city": c["_id"], "count": c["count"]} for c in cities],
    }


async def express_interest(property_id: PydanticObjectId, contact: dict[str, Any]) -> Lead:
    """Create a WEBSITE lead for the listing's agent, once per open enquiry."""
    listing = await Property.find_one(Property.id == property_id, Property.status == PropertyStatus.ACTIVE)
    if not listing:
        raise NotFoundError("Listing not found or not available")
    email = (contact.get("email") or "").strip().lower()
    existing = await Lead.find_one(
        Lead.property.id == listing.id,
        Lead.email == email,
        Lead.status != LeadStatus.CLOSED_LOST,
    )
    if existing:
        raise ConflictError("Interest already expressed for this listing")
    owner = await User.get(PydanticObjectId(link_id(listing.user)))
    message = contact.get("message") or ""
    lead = Lead(
        user=owner,
        property=listing,
        first_name=contact["first_name"],
        last_name=contact.get("last_name") or "",
        email=email,
        phone=contact.get("phone"),
        source=LeadSource.WEBSITE,
        status=LeadStatus.NEW,
        notes=f"Interest in {listing.title}" + (f": {message}" if message else ""),
    )
    await lead.insert()
    log.info("listing_interest", property_id=str(listing.id), lead_id=str(lead.id))
    return lead
