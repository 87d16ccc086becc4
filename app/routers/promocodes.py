from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from app.core.pagination import pagination_meta
from app.deps import get_current_user, parse_object_id, require_admin
from app.models.enums import DiscountType
from app.models.user import User
from app.services import promo_codes as promo_service

router = APIRouter()


class ValidateRequest(BaseModel):
    code: str
    package_id: str | None = None


class PromoCreate(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    description: str = ""
    discount_type: DiscountType
    discount_value: float = Field(ge=0)
    max_uses: int | None = Field(default=None, gt=0)
    is_active: bool = True
    expires_at: datetime | None = None


class PromoUpdate(BaseModel):
    description: str | None = None
    discount_type: DiscountType | None = None
    discount_value: float | None = Field(default=None, ge=0)
    max_uses: int | None = Field(default=None, gt=0)
    is_active: bool | None = None
    expires_at: datetime | None = None


@router.post("/validate")
async def promo_validate(body: ValidateRequest, user: User = Depends(get_current_user)):
    """Check a code for the current user and price it against a package."""
    package_id = parse_object_id(body.package_id, "Credit package") if body.package_id else None
    return {"promo_code": await promo_service.validate(user, body.code, package_id)}


@router.get("")
async def promos_list(
    admin: User = Depends(require_admin),
    active: bool | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    codes, total = await promo_service.list_codes(active, page, limit)
    return {"promo_codes": codes, "pagination": pagination_meta(page, limit, total)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def promo_create(body: PromoCreate, admin: User = Depends(require_admin)):
    p = await promo_service.create_code(admin, body.model_dump())
    return {"promo_code": promo_service.promo_to_dict(p)}


@router.get("/{promo_id}")
async def promo_get(promo_id: str, admin: User = Depends(require_admin)):
    p = await promo_service.get_code(parse_object_id(promo_id, "Promo code"))
    return {"promo_code": promo_service.promo_to_dict(p)}


@router.put("/{promo_id}")
async def promo_update(promo_id: str, body: PromoUpdate, admin: User = Depends(require_admin)):
    p = await promo_service.update_code(
        admin, parse_object_id(promo_id, "Promo code"), body.model_dump(exclude_unset=True)
    )
    return {"promo_code": promo_service.promo_to_dict(p)}


@router.delete("/{promo_id}")
async def promo_delete(promo_id: str, admin: User = Depends(require_admin)):
    outcome = await promo_service.delete_code(admin, parse_object_id(promo_id, "Promo code"))
    message = (
        "Promo code deactivated (has been used)"
        if outcome == "deactivated"
        else "Promo code deleted successfully"
    )
    return {"outcome": outcome, "message": message}
