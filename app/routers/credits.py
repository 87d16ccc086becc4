from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.pagination import pagination_meta
from app.deps import get_current_user, parse_object_id, require_admin
from app.models.enums import CreditType
from app.models.user import User
from app.services import credits as credits_service
from app.services import packages as packages_service

router = APIRouter()


class UseCreditsRequest(BaseModel):
    amount: int = Field(gt=0)
    description: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None


class GrantCreditsRequest(BaseModel):
    user_id: str
    amount: int = Field(gt=0)
    description: str | None = None


class LegacyPurchaseRequest(BaseModel):
    amount: int
    payment_method: str


@router.get("")
async def credits_overview(user: User = Depends(get_current_user)):
    """All ledger entries, balance and earned/used totals."""
    return await credits_service.get_overview(user.id)


@router.get("/balance")
async def credits_balance(user: User = Depends(get_current_user)):
    return {"balance": await credits_service.get_balance(user.id)}


@router.get("/usage-history")
async def credits_history(
    user: User = Depends(get_current_user),
    type: CreditType | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Ledger entries for current user (newest first)."""
    entries, total = await credits_service.list_entries(user.id, type, page, limit)
    return {
        "credits": [credits_service.entry_to_dict(e) for e in entries],
        "pagination": pagination_meta(page, limit, total),
    }


@router.post("/use")
async def credits_use(body: UseCreditsRequest, user: User = Depends(get_current_user)):
    entry, remaining = await credits_service.use_credits(
        user, body.amount, body.description, body.entity_type, body.entity_id
    )
    return {
        "credit": credits_service.entry_to_dict(entry),
        "remaining_balance": remaining,
        "message": "Credits used successfully",
    }


@router.post("/bonus")
async def credits_bonus(body: GrantCreditsRequest, admin: User = Depends(require_admin)):
    entry = await credits_service.grant_bonus(
        admin, parse_object_id(body.user_id, "User"), body.amount, body.description
    )
    return {"credit": credits_service.entry_to_dict(entry), "message": "Bonus credits added successfully"}


@router.post("/refund")
async def credits_refund(body: GrantCreditsRequest, admin: User = Depends(require_admin)):
    entry = await credits_service.refund(
        admin, parse_object_id(body.user_id, "User"), body.amount, body.description
    )
    return {"credit": credits_service.entry_to_dict(entry), "message": "Credits refunded successfully"}


@router.post("/purchase")
async def credits_purchase(body: LegacyPurchaseRequest, user: User = Depends(get_current_user)):
    """Legacy endpoint: resolves a package and points at the payments API."""
    package = await credits_service.legacy_purchase(body.amount, body.payment_method)
    return {
        "message": "Please use the new payment system at /api/payments/create",
        "redirect_to": "/api/payments/create",
        "suggested_package": packages_service.package_to_dict(package),
    }


@router.get("/packages")
async def credits_packages():
    """Legacy alias for /api/packages."""
    packages = await packages_service.list_active()
    return {
        "packages": [packages_service.package_to_dict(p) for p in packages],
        "message": "Please use the new packages API at /api/packages",
    }
