"""Leads owned by an agent."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId

from app.core.audit import log_event
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.pagination import paginate
from app.models.enums import LeadSource, LeadStatus
from app.models.lead import Lead
from app.models.links import link_id
from app.models.property import Property
from app.models.user import User

UPDATABLE_FIELDS = ("first_name", "last_name", "email", "phone", "source", "status", "notes")


def lead_to_dict(lead: Lead) -> dict[str, Any]:
    return {
        "id": str(lead.id),
        "user_id": link_id(lead.user),
        "property_id": link_id(lead.property),
        "first_name": lead.first_name,
        "last_name": lead.last_name,
        "email": lead.email,
        "phone": lead.phone,
        "source": lead.source.value,
        "status": lead.status.value,
        "notes": lead.notes,
        "created_at": lead.created_at.isoformat(),
        "updated_at": lead.updated_at.isoformat(),
    }


async def list_leads(
    user_id: PydanticObjectId,
    status: LeadStatus | None = None,
    source: LeadSource | None = None,
    property_id: PydanticObjectId | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Lead], int]:
    limit, offset = paginate(page, limit)
    query = Lead.find(Lead.user.id == user_id)
    if status is not None:
        query = query.find(Lead.status == status)
    if source is not None:
        query = query.find(Lead.source == source)
    if property_id is not None:
        query = query.find(Lead.property.id == property_id)
    total = await query.count()
    leads = await query.sort(-Lead.created_at).skip(offset).limit(limit).to_list()
    return leads, total


async def get_owned(user: User, lead_id: PydanticObjectId) -> Lead:
    lead = await Lead.get(lead_id)
    if not lead:
        raise NotFoundError("Lead not found")
    if link_id(lead.user) != str(user.id):
        raise ForbiddenError("Access denied")
    return lead


async def create_lead(user: User, data: dict[str, Any]) -> Lead:
    property_id = data.pop("property_id", None)
    prop = None
    if property_id is not None:
        prop = await Property.get(property_id)
        if not prop:
            raise NotFoundError("Property not found")
        if link_id(prop.user) != str(user.id) and not user.is_admin:
            raise ForbiddenError("Access denied")
    lead = Lead(user=user, property=prop, **{k: v for k, v in data.items() if v is not None})
    await lead.insert()
    await log_event(str(user.id), "CREATE", "LEAD", str(lead.id), new_values=lead_to_dict(lead))
    return lead


async def update_lead(user: User, lead_id: PydanticObjectId, changes: dict[str, Any]) -> Lead:
    lead = await get_owned(user, lead_id)
    before = lead_to_dict(lead)
    for field in UPDATABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(lead, field, changes[field])
    lead.updated_at = datetime.utcnow()
    await lead.save()
    await log_event(str(user.id), "UPDATE", "LEAD", str(lead.id), new_values=lead_to_dict(lead), old_values=before)
    return lead


async def delete_lead(user: User, lead_id: PydanticObjectId) -> None:
    lead = await get_owned(user, lead_id)
    before = lead_to_dict(lead)
    await lead.delete()
    await log_event(str(user.id), "DELETE", "LEAD", str(lead_id), old_values=before)
