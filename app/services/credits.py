"""Credit ledger: append-only signed entries; balance is the running sum of deltas."""

import asyncio
import weakref
from typing import Any, Iterable

from beanie import PydanticObjectId

from app.core.audit import log_event
from app.core.exceptions import BadRequestError, InsufficientCreditsError, NotFoundError
from app.core.logging import get_logger
from app.core.pagination import paginate
from app.models.credit_entry import CreditEntry
from app.models.credit_package import CreditPackage
from app.models.enums import CreditType
from app.models.links import link_id
from app.models.user import User

log = get_logger(__name__)

LEGACY_PAYMENT_METHODS = ("CARD", "BANK_TRANSFER", "PAYPAL")
LEGACY_MIN_CREDITS = 100
LEGACY_MAX_CREDITS = 10_000

# Serializes balance read + insert per user within this process. Entries go
# away once no coroutine holds or waits on the lock.
_user_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _user_lock(user_id: str) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


def signed_amount(credit_type: CreditType, amount: int) -> int:
    """USAGE debits, everything else credits."""
    return -amount if credit_type == CreditType.USAGE else amount


def summarize(entries: Iterable[CreditEntry]) -> dict[str, int]:
    total_earned = 0
    total_used = 0
    for e in entries:
        if e.type == CreditType.USAGE:
            total_used += e.amount
        else:
            total_earned += e.amount
    return {
        "total_earned": total_earned,
        "total_used": total_used,
        "current_balance": total_earned - total_used,
    }


def entry_to_dict(e: CreditEntry) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "amount": e.amount,
        "delta": e.delta,
        "type": e.type.value,
        "description": e.description,
        "transaction_id": e.transaction_id,
        "balance_after": e.balance_after,
        "user_id": link_id(e.user),
        "created_at": e.created_at.isoformat(),
    }


async def get_balance(user_id: PydanticObjectId) -> int:
    """Return current balance for user (0 if no entries)."""
    total = await CreditEntry.find(CreditEntry.user.id == user_id).sum(CreditEntry.delta)
    return int(total or 0)


async def record_entry(
    user: User,
    credit_type: CreditType,
    amount: int,
    description: str,
    transaction_id: str | None = None,
) -> tuple[CreditEntry, int]:
    """
    Append one ledger entry and return (entry, balance_after).
    USAGE that would take the balance below zero is rejected.
    """
    if amount <= 0:
        raise BadRequestError("Valid amount is required")
    delta = signed_amount(credit_type, amount)
    async with _user_lock(str(user.id)):
        balance = await get_balance(user.id)
        if balance + delta < 0:
            raise InsufficientCreditsError(balance=balance, required=amount)
        entry = CreditEntry(
            user=user,
            amount=amount,
            delta=delta,
            type=credit_type,
            description=description,
            transaction_id=transaction_id,
            balance_after=balance + delta,
        )
        await entry.insert()
    log.info(
        "credit_entry_recorded",
        user_id=str(user.id),
        type=credit_type.value,
        amount=amount,
        balance_after=entry.balance_after,
    )
    return entry, entry.balance_after


async def get_overview(user_id: PydanticObjectId) -> dict[str, Any]:
    entries = await CreditEntry.find(CreditEntry.user.id == user_id).sort(-CreditEntry.created_at).to_list()
    summary = summarize(entries)
    return {
        "credits": [entry_to_dict(e) for e in entries],
        "balance": summary["current_balance"],
        "summary": summary,
    }


async def use_credits(
    user: User,
    amount: int,
    description: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
) -> tuple[CreditEntry, int]:
    entry, remaining = await record_entry(user, CreditType.USAGE, amount, description or "Credit usage")
    await log_event(
        str(user.id),
        "USAGE",
        entity_type or "CREDIT",
        entity_id or str(entry.id),
        new_values=entry_to_dict(entry),
    )
    return entry, remaining


async def _grant(
    admin: User,
    target_user_id: PydanticObjectId,
    credit_type: CreditType,
    amount: int,
    description: str,
) -> CreditEntry:
    target = await User.get(target_user_id)
    if not target:
        raise NotFoundError("User not found")
    entry, _ = await record_entry(target, credit_type, amount, description)
    await log_event(str(admin.id), credit_type.value, "CREDIT", str(entry.id), new_values=entry_to_dict(entry))
    return entry


async def grant_bonus(admin: User, target_user_id: PydanticObjectId, amount: int, description: str | None = None) -> CreditEntry:
    return await _grant(admin, target_user_id, CreditType.BONUS, amount, description or "Bonus credits")


async def refund(admin: User, target_user_id: PydanticObjectId, amount: int, description: str | None = None) -> CreditEntry:
    return await _grant(admin, target_user_id, CreditType.REFUND, amount, description or "Credit refund")


async def list_entries(
    user_id: PydanticObjectId,
    credit_type: CreditType | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[CreditEntry], int]:
    """Ledger entries for user, newest first."""
    limit, offset = paginate(page, limit)
    query = CreditEntry.find(CreditEntry.user.id == user_id)
    if credit_type is not None:
        query = query.find(CreditEntry.type == credit_type)
    total = await query.count()
    entries = await query.sort(-CreditEntry.created_at).skip(offset).limit(limit).to_list()
    return entries, total


async def legacy_purchase(amount: int, payment_method: str) -> CreditPackage:
    """Match a package by exact credit count; purchases go through the payments API."""
    if payment_method not in LEGACY_PAYMENT_METHODS:
        raise BadRequestError("Please select a valid payment method")
    if not LEGACY_MIN_CREDITS <= amount <= LEGACY_MAX_CREDITS:
        raise BadRequestError(f"Credit amount must be between {LEGACY_MIN_CREDITS} and {LEGACY_MAX_CREDITS}")
    package = await CreditPackage.find(
        CreditPackage.credits == amount,
        CreditPackage.is_active == True,  # noqa: E712
    ).sort(+CreditPackage.price).first_or_none()
    if not package:
        raise BadRequestError("No matching credit package found. Please use the new payment system.")
    return package
