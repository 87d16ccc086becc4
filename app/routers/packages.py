from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from app.deps import parse_object_id, require_admin
from app.models.user import User
from app.services import packages as packages_service

router = APIRouter()


class PackageCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = ""
    credits: int = Field(gt=0)
    price: float = Field(ge=0)
    currency: str = Field(default="ZAR", min_length=3, max_length=3)
    is_active: bool = True
    is_popular: bool = False
    sort_order: int = 0


class PackageUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    credits: int | None = Field(default=None, gt=0)
    price: float | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    is_active: bool | None = None
    is_popular: bool | None = None
    sort_order: int | None = None


@router.get("")
async def packages_list():
    """Active packages by sort order."""
    packages = await packages_service.list_active()
    return {"packages": [packages_service.package_to_dict(p) for p in packages]}


@router.get("/admin/all")
async def packages_admin_list(admin: User = Depends(require_admin)):
    """Admin: every package with its transaction count."""
    return {"packages": await packages_service.list_all_with_counts()}


@router.get("/{package_id}")
async def package_get(package_id: str):
    p = await packages_service.get_package(parse_object_id(package_id, "Credit package"))
    return {"package": packages_service.package_to_dict(p)}


@router.post("", status_code=status.HTTP_201_CREATED)
async def package_create(body: PackageCreate, admin: User = Depends(require_admin)):
    data = body.model_dump()
    data["currency"] = data["currency"].upper()
    p = await packages_service.create_package(admin, data)
    return {"package": packages_service.package_to_dict(p)}


@router.put("/{package_id}")
async def package_update(package_id: str, body: PackageUpdate, admin: User = Depends(require_admin)):
    changes = body.model_dump(exclude_unset=True)
    if changes.get("currency"):
        changes["currency"] = changes["currency"].upper()
    p = await packages_service.update_package(admin, parse_object_id(package_id, "Credit package"), changes)
    return {"package": packages_service.package_to_dict(p)}


@router.delete("/{package_id}")
async def package_delete(package_id: str, admin: User = Depends(require_admin)):
    """Deactivated when transactions reference it, deleted otherwise."""
    outcome = await packages_service.delete_package(admin, parse_object_id(package_id, "Credit package"))
    message = (
        "Credit package deactivated (has existing transactions)"
        if outcome == "deactivated"
        else "Credit package deleted successfully"
    )
    return {"outcome": outcome, "message": message}
