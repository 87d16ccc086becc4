"""Credit packages: public catalogue plus admin management."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId

from app.core.audit import log_event
from app.core.exceptions import NotFoundError
from app.models.credit_package import CreditPackage
from app.models.transaction import Transaction
from app.models.user import User

UPDATABLE_FIELDS = ("name", "description", "credits", "price", "currency", "is_active", "is_popular", "sort_order")


def package_to_dict(p: CreditPackage) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "name": p.name,
        "description": p.description,
        "credits": p.credits,
        "price": p.price,
        "currency": p.currency,
        "is_active": p.is_active,
        "is_popular": p.is_popular,
        "sort_order": p.sort_order,
        "created_at": p.created_at.isoformat(),
        "updated_at": p.updated_at.isoformat(),
    }


async def list_active() -> list[CreditPackage]:
    return await CreditPackage.find(CreditPackage.is_active == True).sort(+CreditPackage.sort_order).to_list()  # noqa: E712


async def get_package(package_id: PydanticObjectId) -> CreditPackage:
    p = await CreditPackage.get(package_id)
    if not p:
        raise NotFoundError("Credit package not found")
    return p


async def transaction_count(package_id: PydanticObjectId) -> int:
    return await Transaction.find(Transaction.package.id == package_id).count()


async def list_all_with_counts() -> list[dict[str, Any]]:
    packages = await CreditPackage.find_all().sort(+CreditPackage.sort_order).to_list()
    out = []
    for p in packages:
        d = package_to_dict(p)
        d["transaction_count"] = await transaction_count(p.id)
        out.append(d)
    return out


async def create_package(admin: User, data: dict[str, Any]) -> CreditPackage:
    p = CreditPackage(**data)
    await p.insert()
    await log_event(str(admin.id), "CREATE", "CREDIT_PACKAGE", str(p.id), new_values=package_to_dict(p))
    return p


async def update_package(admin: User, package_id: PydanticObjectId, changes: dict[str, Any]) -> CreditPackage:
    p = await get_package(package_id)
    before = package_to_dict(p)
    for field in UPDATABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(p, field, changes[field])
    p.updated_at = datetime.utcnow()
    await p.save()
    await log_event(str(admin.id), "UPDATE", "CREDIT_PACKAGE", str(p.id), new_values=package_to_dict(p), old_values=before)
    return p


async def delete_package(admin: User, package_id: PydanticObjectId) -> str:
    """Deactivate when any transaction references the package, else delete. Returns 'deactivated' or 'deleted'."""
    p = await get_package(package_id)
    before = package_to_dict(p)
    if await transaction_count(p.id) > 0:
        p.is_active = False
        p.updated_at = datetime.utcnow()
        await p.save()
        outcome = "deactivated"
    else:
        await p.delete()
        outcome = "deleted"
    await log_event(str(admin.id), "DELETE", "CREDIT_PACKAGE", str(package_id), old_values=before)
    return outcome
