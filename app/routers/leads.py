from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field

from app.core.pagination import pagination_meta
from app.deps import get_current_user, parse_object_id
from app.models.enums import LeadSource, LeadStatus
from app.models.user import User
from app.services import leads as leads_service

router = APIRouter()


class LeadCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = ""
    email: EmailStr | None = None
    phone: str | None = None
    source: LeadSource = LeadSource.DIRECT
    status: LeadStatus = LeadStatus.NEW
    notes: str = ""
    property_id: str | None = None


class LeadUpdate(BaseModel):
    first_name: str | None = Field(default=None, min_length=1)
    last_name: str | None = None
    email: EmailStr | None = None
    phone: str | None = None
    source: LeadSource | None = None
    status: LeadStatus | None = None
    notes: str | None = None


@router.get("")
async def leads_list(
    user: User = Depends(get_current_user),
    status: LeadStatus | None = None,
    source: LeadSource | None = None,
    property_id: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Leads owned by the current user, newest first."""
    leads, total = await leads_service.list_leads(
        user.id,
        status=status,
        source=source,
        property_id=parse_object_id(property_id, "Property") if property_id else None,
        page=page,
        limit=limit,
    )
    return {"leads": [leads_service.lead_to_dict(x) for x in leads], "pagination": pagination_meta(page, limit, total)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def lead_create(body: LeadCreate, user: User = Depends(get_current_user)):
    data = body.model_dump()
    if data.get("property_id"):
        data["property_id"] = parse_object_id(data["property_id"], "Property")
    lead = await leads_service.create_lead(user, data)
    return {"lead": leads_service.lead_to_dict(lead)}


@router.get("/{lead_id}")
async def lead_get(lead_id: str, user: User = Depends(get_current_user)):
    lead = await leads_service.get_owned(user, parse_object_id(lead_id, "Lead"))
    return {"lead": leads_service.lead_to_dict(lead)}


@router.put("/{lead_id}")
async def lead_update(lead_id: str, body: LeadUpdate, user: User = Depends(get_current_user)):
    lead = await leads_service.update_lead(user, parse_object_id(lead_id, "Lead"), body.model_dump(exclude_unset=True))
    return {"lead": leads_service.lead_to_dict(lead)}


@router.delete("/{lead_id}")
async def lead_delete(lead_id: str, user: User = Depends(get_current_user)):
    await leads_service.delete_lead(user, parse_object_id(lead_id, "Lead"))
    return {"message": "Lead deleted successfully"}
