from datetime import datetime

from fastapi import APIRouter, Depends, Query

from app.core.pagination import pagination_meta
from app.deps import require_admin
from app.models.enums import PaymentMethod, TransactionStatus
from app.models.user import User
from app.services import admin as admin_service

router = APIRouter()


@router.get("/dashboard")
async def admin_dashboard(admin: User = Depends(require_admin)):
    """Admin: platform totals and recent audit activity."""
    return await admin_service.dashboard()


@router.get("/transactions")
async def admin_transactions(
    admin: User = Depends(require_admin),
    status: TransactionStatus | None = None,
    payment_method: PaymentMethod | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    out = await admin_service.list_transactions(status, payment_method, date_from, date_to, page, limit)
    return {
        "transactions": out["transactions"],
        "summary": {"total_revenue": out["total_revenue"]},
        "pagination": pagination_meta(page, limit, out["total"]),
    }


@router.get("/audit-logs")
async def admin_audit_logs(
    admin: User = Depends(require_admin),
    action: str | None = None,
    entity_type: str | None = None,
    user_id: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
):
    logs, total = await admin_service.list_audit_logs(action, entity_type, user_id, page, limit)
    return {
        "logs": [admin_service.audit_to_dict(a) for a in logs],
        "pagination": pagination_meta(page, limit, total),
    }
