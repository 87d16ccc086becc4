"""Admin dashboard, transaction reporting and audit log queries."""

from datetime import datetime
from typing import Any

from beanie import PydanticObjectId
from beanie.operators import In, Set

from app.core.audit import log_event
from app.core.exceptions import BadRequestError
from app.core.pagination import paginate
from app.models.audit_log import AuditLog
from app.models.credit_entry import CreditEntry
from app.models.enums import CreditType, PaymentMethod, PropertyStatus, TransactionStatus
from app.models.property import Property
from app.models.template import Template
from app.models.transaction import Transaction
from app.models.user import User
from app.services import payments as payments_service

RECENT_ACTIVITY = 10


def audit_to_dict(a: AuditLog) -> dict[str, Any]:
    return {
        "id": str(a.id),
        "user_id": a.user_id,
        "action": a.action,
        "entity_type": a.entity_type,
        "entity_id": a.entity_id,
        "old_values": a.old_values,
        "new_values": a.new_values,
        "created_at": a.created_at.isoformat(),
    }


async def dashboard() -> dict[str, Any]:
    credits_granted = await CreditEntry.find(CreditEntry.type != CreditType.USAGE).sum(CreditEntry.amount)
    revenue = await Transaction.find(Transaction.status == TransactionStatus.COMPLETED).sum(Transaction.amount)
    recent = await AuditLog.find_all().sort(-AuditLog.created_at).limit(RECENT_ACTIVITY).to_list()
    return {
        "stats": {
            "total_users": await User.count(),
            "active_users": await User.find(User.is_active == True).count(),  # noqa: E712
            "total_properties": await Property.count(),
            "active_properties": await Property.find(Property.status == PropertyStatus.ACTIVE).count(),
            "total_templates": await Template.count(),
            "total_credits": int(credits_granted or 0),
            "revenue": round(revenue or 0, 2),
        },
        "recent_activity": [audit_to_dict(a) for a in recent],
    }


def transaction_filters(
    status: TransactionStatus | None = None,
    payment_method: PaymentMethod | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[Any]:
    filters: list[Any] = []
    if status is not None:
        filters.append(Transaction.status == status)
    if payment_method is not None:
        filters.append(Transaction.payment_method == payment_method)
    if date_from is not None:
        filters.append(Transaction.created_at >= date_from)
    if date_to is not None:
        filters.append(Transaction.created_at <= date_to)
    return filters


async def list_transactions(
    status: TransactionStatus | None = None,
    payment_method: PaymentMethod | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """Filtered transactions plus revenue of the COMPLETED ones among them."""
    limit, offset = paginate(page, limit)
    filters = transaction_filters(status, payment_method, date_from, date_to)
    query = Transaction.find(*filters)
    total = await query.count()
    txns = await query.sort(-Transaction.created_at).skip(offset).limit(limit).to_list()
    revenue = 0.0
    if status in (None, TransactionStatus.COMPLETED):
        revenue = await Transaction.find(
            *transaction_filters(TransactionStatus.COMPLETED, payment_method, date_from, date_to)
        ).sum(Transaction.amount)
    return {
        "transactions": await payments_service.attach_relations(txns),
        "total": total,
        "total_revenue": round(revenue or 0, 2),
    }


async def list_audit_logs(
    action: str | None = None,
    entity_type: str | None = None,
    user_id: str | None = None,
    page: int = 1,
    limit: int = 50,
) -> tuple[list[AuditLog], int]:
    limit, offset = paginate(page, limit, max_limit=200)
    query = AuditLog.find_all()
    if action:
        query = query.find(AuditLog.action == action)
    if entity_type:
        query = query.find(AuditLog.entity_type == entity_type)
    if user_id:
        query = query.find(AuditLog.user_id == user_id)
    total = await query.count()
    logs = await query.sort(-AuditLog.created_at).skip(offset).limit(limit).to_list()
    return logs, total


async def bulk_set_active(admin: User, user_ids: list[PydanticObjectId], is_active: bool) -> int:
    """Activate or deactivate many accounts; the acting admin is never deactivated."""
    if not user_ids:
        raise BadRequestError("No users selected")
    targets = [uid for uid in user_ids if is_active or uid != admin.id]
    if not targets:
        raise BadRequestError("Cannot deactivate your own account")
    result = await User.find(In(User.id, targets)).update(
        Set({User.is_active: is_active, User.updated_at: datetime.utcnow()})
    )
    modified = getattr(result, "modified_count", 0) or 0
    await log_event(
        str(admin.id), "BULK_STATUS_CHANGE", "USER", None,
        new_values={"user_ids": [str(t) for t in targets], "is_active": is_active},
    )
    return modified
