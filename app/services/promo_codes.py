"""Promo codes: discount rules, usage caps, expiry and one use per user."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.pagination import paginate
from app.models.credit_package import CreditPackage
from app.models.enums import DiscountType, TransactionStatus
from app.models.promo_code import PromoCode
from app.models.transaction import Transaction
from app.models.user import User

UPDATABLE_FIELDS = ("description", "discount_type", "discount_value", "max_uses", "is_active", "expires_at")
CLEARABLE_FIELDS = ("max_uses", "expires_at")


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def calculate_discount(promo: PromoCode, price: float) -> float:
    """PERCENTAGE takes a share of price; FIXED never exceeds price."""
    if price <= 0:
        return 0.0
    if promo.discount_type == DiscountType.PERCENTAGE:
        discount = price * promo.discount_value / 100
    else:
        discount = min(promo.discount_value, price)
    return round(max(0.0, min(discount, price)), 2)


def ensure_usable(promo: PromoCode | None, now: datetime | None = None) -> PromoCode:
    """Raise BadRequestError unless the code is active, unexpired and under its cap."""
    now = now or datetime.utcnow()
    if not promo or not promo.is_active:
        raise BadRequestError("Invalid promo code")
    if promo.expires_at and promo.expires_at < now:
        raise BadRequestError("Promo code has expired")
    if promo.max_uses is not None and promo.used_count >= promo.max_uses:
        raise BadRequestError("Promo code usage limit exceeded")
    return promo


def promo_to_dict(p: PromoCode) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "code": p.code,
        "description": p.description,
        "discount_type": p.discount_type.value,
        "discount_value": p.discount_value,
        "max_uses": p.max_uses,
        "used_count": p.used_count,
        "is_active": p.is_active,
        "expires_at": p.expires_at.isoformat() if p.expires_at else None,
        "created_at": p.created_at.isoformat(),
    }


async def get_by_code(code: str) -> PromoCode | None:
    return await PromoCode.find_one(PromoCode.code == normalize_code(code))


async def times_used_by(user_id: PydanticObjectId, promo_id: PydanticObjectId) -> int:
    """Completed transactions of this user that carried the code."""
    return await Transaction.find(
        Transaction.user.id == user_id,
        Transaction.promo_code.id == promo_id,
        Transaction.status == TransactionStatus.COMPLETED,
    ).count()


async def resolve_for_user(user_id: PydanticObjectId, code: str) -> PromoCode:
    """Look up and fully validate a code for this user."""
    promo = ensure_usable(await get_by_code(code))
    if await times_used_by(user_id, promo.id) > 0:
        raise BadRequestError("Promo code already used by this user")
    return promo


async def validate(user: User, code: str, package_id: PydanticObjectId | None = None) -> dict[str, Any]:
    if not normalize_code(code):
        raise BadRequestError("Promo code is required")
    promo = await resolve_for_user(user.id, code)
    price = 0.0
    if package_id is not None:
        package = await CreditPackage.get(package_id)
        price = package.price if package else 0.0
    return {
        "id": str(promo.id),
        "code": promo.code,
        "description": promo.description,
        "discount_type": promo.discount_type.value,
        "discount_value": promo.discount_value,
        "discount_amount": calculate_discount(promo, price),
        "expires_at": promo.expires_at.isoformat() if promo.expires_at else None,
    }


async def transaction_count(promo_id: PydanticObjectId) -> int:
    return await Transaction.find(Transaction.promo_code.id == promo_id).count()


async def list_codes(active: bool | None = None, page: int = 1, limit: int = 20) -> tuple[list[dict[str, Any]], int]:
    limit, offset = paginate(page, limit)
    query = PromoCode.find_all() if active is None else PromoCode.find(PromoCode.is_active == active)
    total = await query.count()
    codes = await query.sort(-PromoCode.created_at).skip(offset).limit(limit).to_list()
    out = []
    for p in codes:
        d = promo_to_dict(p)
        d["transaction_count"] = await transaction_count(p.id)
        out.append(d)
    return out, total


async def get_code(promo_id: PydanticObjectId) -> PromoCode:
    p = await PromoCode.get(promo_id)
    if not p:
        raise NotFoundError("Promo code not found")
    return p


async def create_code(admin: User, data: dict[str, Any]) -> PromoCode:
    code = normalize_code(data.get("code", ""))
    if not code:
        raise BadRequestError("Code, discount type, and discount value are required")
    if await PromoCode.find_one(PromoCode.code == code):
        raise BadRequestError("Promo code already exists")
    _check_discount(data["discount_type"], data["discount_value"])
    p = PromoCode(**{**data, "code": code})
    await p.insert()
    await log_event(str(admin.id), "CREATE", "PROMO_CODE", str(p.id), new_values=promo_to_dict(p))
    return p


def _check_discount(discount_type: DiscountType, value: float) -> None:
    if value < 0:
        raise BadRequestError("Discount value must not be negative")
    if discount_type == DiscountType.PERCENTAGE and value > 100:
        raise BadRequestError("Percentage discount cannot exceed 100")


async def update_code(admin: User, promo_id: PydanticObjectId, changes: dict[str, Any]) -> PromoCode:
    p = await get_code(promo_id)
    before = promo_to_dict(p)
    for field in UPDATABLE_FIELDS:
        if field in changes and (changes[field] is not None or field in CLEARABLE_FIELDS):
            setattr(p, field, changes[field])
    _check_discount(p.discount_type, p.discount_value)
    p.updated_at = datetime.utcnow()
    await p.save()
    await log_event(str(admin.id), "UPDATE", "PROMO_CODE", str(p.id), new_values=promo_to_dict(p), old_values=before)
    return p


async def delete_code(admin: User, promo_id: PydanticObjectId) -> str:
    """Deactivate when any transaction references the code, else delete."""
    p = await get_code(promo_id)
    before = promo_to_dict(p)
    if await transaction_count(p.id) > 0:
        p.is_active = False
        p.updated_at = datetime.utcnow()
        await p.save()
        outcome = "deactivated"
    else:
        await p.delete()
        outcome = "deleted"
    await log_event(str(admin.id), "DELETE", "PROMO_CODE", str(promo_id), old_values=before)
    return outcome
