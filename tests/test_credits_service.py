"""Credit ledger: pure helpers plus MongoDB-backed entry recording."""

import asyncio
import gc
from types import SimpleNamespace

import pytest

from app.core.exceptions import BadRequestError, InsufficientCreditsError, NotFoundError
from app.models.credit_entry import CreditEntry
from app.models.enums import CreditType, UserRole
from app.services import credits as credits_service


def _entry(credit_type: CreditType, amount: int) -> SimpleNamespace:
    return SimpleNamespace(type=credit_type, amount=amount)


def test_signed_amount():
    assert credits_service.signed_amount(CreditType.PURCHASE, 50) == 50
    assert credits_service.signed_amount(CreditType.BONUS, 5) == 5
    assert credits_service.signed_amount(CreditType.REFUND, 7) == 7
    assert credits_service.signed_amount(CreditType.USAGE, 20) == -20


def test_summarize():
    entries = [
        _entry(CreditType.PURCHASE, 100),
        _entry(CreditType.USAGE, 30),
        _entry(CreditType.BONUS, 10),
        _entry(CreditType.USAGE, 5),
    ]
    assert credits_service.summarize(entries) == {
        "total_earned": 110,
        "total_used": 35,
        "current_balance": 75,
    }


def test_summarize_empty():
    assert credits_service.summarize([]) == {"total_earned": 0, "total_used": 0, "current_balance": 0}


@pytest.mark.asyncio
async def test_get_balance_empty(make_user):
    user = await make_user()
    assert await credits_service.get_balance(user.id) == 0


@pytest.mark.asyncio
async def test_record_entry_keeps_running_snapshot(make_user):
    user = await make_user()
    e1, b1 = await credits_service.record_entry(user, CreditType.PURCHASE, 100, "Purchase: Starter")
    e2, b2 = await credits_service.record_entry(user, CreditType.USAGE, 40, "Flyer export")
    e3, b3 = await credits_service.record_entry(user, CreditType.BONUS, 15, "Welcome")
    assert (b1, b2, b3) == (100, 60, 75)
    assert (e1.balance_after, e2.balance_after, e3.balance_after) == (100, 60, 75)
    assert e2.delta == -40 and e2.amount == 40
    assert await credits_service.get_balance(user.id) == 75


@pytest.mark.asyncio
async def test_usage_cannot_overdraw(make_user):
    user = await make_user()
    await credits_service.record_entry(user, CreditType.BONUS, 10, "Welcome")
    with pytest.raises(InsufficientCreditsError) as exc:
        await credits_service.use_credits(user, 11)
    assert exc.value.details == {"balance": 10, "required": 11}
    assert await CreditEntry.find(CreditEntry.user.id == user.id).count() == 1
    assert await credits_service.get_balance(user.id) == 10


@pytest.mark.asyncio
async def test_record_entry_rejects_non_positive(make_user):
    user = await make_user()
    with pytest.raises(BadRequestError):
        await credits_service.record_entry(user, CreditType.BONUS, 0, "nothing")


@pytest.mark.asyncio
async def test_use_credits_writes_audit(make_user):
    from app.models.audit_log import AuditLog

    user = await make_user()
    await credits_service.record_entry(user, CreditType.PURCHASE, 50, "Purchase")
    entry, remaining = await credits_service.use_credits(user, 20, "Brochure", "TEMPLATE", "t-1")
    assert remaining == 30
    log = await AuditLog.find_one(AuditLog.action == "USAGE")
    assert log is not None
    assert log.entity_type == "TEMPLATE" and log.entity_id == "t-1"


@pytest.mark.asyncio
async def test_grant_bonus_and_refund(make_user):
    admin = await make_user("admin@example.com", role=UserRole.ADMIN)
    target = await make_user("target@example.com")
    await credits_service.grant_bonus(admin, target.id, 25)
    await credits_service.refund(admin, target.id, 5, "Failed export")
    overview = await credits_service.get_overview(target.id)
    assert overview["balance"] == 30
    assert overview["summary"]["total_earned"] == 30
    assert sorted(c["type"] for c in overview["credits"]) == ["BONUS", "REFUND"]


@pytest.mark.asyncio
async def test_grant_to_unknown_user(make_user):
    from beanie import PydanticObjectId

    admin = await make_user("admin@example.com", role=UserRole.ADMIN)
    with pytest.raises(NotFoundError):
        await credits_service.grant_bonus(admin, PydanticObjectId(), 10)


@pytest.mark.asyncio
async def test_list_entries_filters_by_type(make_user):
    user = await make_user()
    await credits_service.record_entry(user, CreditType.PURCHASE, 100, "Purchase")
    await credits_service.record_entry(user, CreditType.USAGE, 10, "Use")
    await credits_service.record_entry(user, CreditType.USAGE, 5, "Use")
    entries, total = await credits_service.list_entries(user.id, CreditType.USAGE, page=1, limit=1)
    assert total == 2
    assert len(entries) == 1


@pytest.mark.asyncio
async def test_legacy_purchase(make_package):
    await make_package("Pro", credits=500, price=799.0)
    await make_package("Pro Sale", credits=500, price=699.0)
    package = await credits_service.legacy_purchase(500, "CARD")
    assert package.name == "Pro Sale"
    with pytest.raises(BadRequestError):
        await credits_service.legacy_purchase(500, "CASH")
    with pytest.raises(BadRequestError):
        await credits_service.legacy_purchase(50, "CARD")
    with pytest.raises(BadRequestError):
        await credits_service.legacy_purchase(300, "CARD")


@pytest.mark.asyncio
async def test_concurrent_usage_cannot_overdraw(make_user):
    user = await make_user()
    await credits_service.record_entry(user, CreditType.PURCHASE, 10, "Purchase")
    results = await asyncio.gather(
        credits_service.use_credits(user, 10, "Flyer"),
        credits_service.use_credits(user, 10, "Brochure"),
        return_exceptions=True,
    )
    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientCreditsError)
    assert await credits_service.get_balance(user.id) == 0


@pytest.mark.asyncio
async def test_concurrent_writes_keep_balance_chain(make_user):
    user = await make_user()
    await credits_service.record_entry(user, CreditType.PURCHASE, 100, "Purchase")
    await asyncio.gather(
        *(credits_service.use_credits(user, 7, f"Export {i}") for i in range(5)),
        credits_service.record_entry(user, CreditType.BONUS, 3, "Bonus"),
    )
    entries = await CreditEntry.find(CreditEntry.user.id == user.id).sort(+CreditEntry.id).to_list()
    running = 0
    for e in entries:
        running += e.delta
        assert e.balance_after == running
        assert e.balance_after >= 0
    assert running == await credits_service.get_balance(user.id) == 68


@pytest.mark.asyncio
async def test_idle_user_locks_are_released(make_user):
    user = await make_user()
    await credits_service.record_entry(user, CreditType.BONUS, 5, "Welcome")
    gc.collect()
    assert str(user.id) not in credits_service._user_locks
