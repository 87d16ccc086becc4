"""Payment creation and gateway reconciliation (Stripe webhooks, PayFast ITN)."""

import asyncio
import hashlib
import hmac
import json
import time
from types import SimpleNamespace
from urllib.parse import quote_plus

import pytest
import stripe
from beanie import PydanticObjectId

from app.core.config import get_settings
from app.core.exceptions import BadGatewayError, BadRequestError, NotFoundError
from app.core.security import payfast_signature, verify_payfast_signature
from app.models.credit_entry import CreditEntry
from app.models.enums import CreditType, DiscountType, PaymentMethod, TransactionStatus
from app.models.links import link_id
from app.models.promo_code import PromoCode
from app.models.transaction import Transaction
from app.services import credits as credits_service
from app.services import payments as payments_service

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def payfast_settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "payfast_merchant_id", "10000100")
    monkeypatch.setattr(settings, "payfast_merchant_key", "46f0cd694581a")
    monkeypatch.setattr(settings, "payfast_passphrase", "jt7NOE43FZPn")
    return settings


@pytest.fixture
def stripe_settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_123")
    monkeypatch.setattr(settings, "stripe_webhook_secret", WEBHOOK_SECRET)
    return settings


def _stripe_header(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    ts = int(time.time())
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    sig = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def _checkout_event(txn: Transaction) -> bytes:
    event = {
        "id": "evt_test_1",
        "object": "event",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "object": "checkout.session",
                "payment_intent": "pi_test_1",
                "metadata": {
                    "transaction_id": str(txn.id),
                    "user_id": link_id(txn.user),
                    "credit_package_id": link_id(txn.package),
                },
            }
        },
    }
    return json.dumps(event).encode("utf-8")


def _pf_sign(form: dict, passphrase: str) -> str:
    """PayFast's ITN rule: every posted field in order, blanks kept, then the passphrase."""
    query = "&".join(f"{k}={quote_plus(v.strip())}" for k, v in form.items())
    if passphrase:
        query += f"&passphrase={quote_plus(passphrase)}"
    return hashlib.md5(query.encode("utf-8")).hexdigest()


def _itn(txn_id: str, amount: str, status: str = "COMPLETE", passphrase: str = "jt7NOE43FZPn") -> dict:
    form = {
        "m_payment_id": txn_id,
        "pf_payment_id": "1089250",
        "payment_status": status,
        "item_name": "Starter",
        "item_description": "",
        "amount_gross": amount,
        "amount_fee": "-4.60",
        "amount_net": "194.40",
        "custom_str1": txn_id,
        "custom_str2": "",
        "custom_str3": "",
        "name_first": "Test",
        "name_last": "",
        "email_address": "",
        "merchant_id": "10000100",
    }
    form["signature"] = _pf_sign(form, passphrase)
    return form


def test_payfast_signature_skips_blanks_and_signature():
    fields = {"merchant_id": "10000100", "item_name": "Starter Pack", "email_address": "", "signature": "x"}
    expected = hashlib.md5(b"merchant_id=10000100&item_name=Starter+Pack").hexdigest()
    assert payfast_signature(fields) == expected
    with_pass = hashlib.md5(b"merchant_id=10000100&item_name=Starter+Pack&passphrase=secret").hexdigest()
    assert payfast_signature(fields, "secret") == with_pass


def test_verify_itn_with_blank_fields():
    form = _itn("65f000000000000000000001", "199.00")
    assert verify_payfast_signature(form, "jt7NOE43FZPn")
    assert payfast_signature(form, "jt7NOE43FZPn") != form["signature"]
    tampered = {**form, "item_description": "changed"}
    assert not verify_payfast_signature(tampered, "jt7NOE43FZPn")


def test_verify_payfast_signature():
    fields = {"merchant_id": "10000100", "amount": "199.00"}
    fields["signature"] = payfast_signature(fields, "pp")
    assert verify_payfast_signature(fields, "pp")
    assert not verify_payfast_signature(fields, "other")
    assert not verify_payfast_signature({"merchant_id": "10000100"}, "pp")


def test_verify_stripe_event_requires_secret(monkeypatch):
    monkeypatch.setattr(get_settings(), "stripe_webhook_secret", "")
    with pytest.raises(BadRequestError) as exc:
        payments_service.verify_stripe_event(b"{}", "t=1,v1=abc")
    assert exc.value.message == "Webhook secret not configured"


def test_verify_stripe_event_requires_header(stripe_settings):
    with pytest.raises(BadRequestError) as exc:
        payments_service.verify_stripe_event(b"{}", None)
    assert exc.value.message == "Missing Stripe-Signature header"


@pytest.mark.asyncio
async def test_stripe_webhook_bad_signature(client, stripe_settings):
    payload = b'{"id": "evt_1", "type": "checkout.session.completed"}'
    r = await client.post(
        "/api/payments/webhook/stripe",
        content=payload,
        headers={"Stripe-Signature": _stripe_header(payload, "whsec_wrong")},
    )
    assert r.status_code == 400
    assert r.json()["error"]["message"].startswith("Webhook Error")


@pytest.mark.asyncio
async def test_create_payment_rejects_wrong_amount(make_user, make_package, payfast_settings):
    user = await make_user()
    package = await make_package(price=199.0)
    with pytest.raises(BadRequestError) as exc:
        await payments_service.create_payment(user, 150.0, PaymentMethod.PAYFAST, package.id)
    assert exc.value.message == "Payment amount does not match package price"
    assert await Transaction.count() == 0


@pytest.mark.asyncio
async def test_create_payment_inactive_package(make_user, make_package, payfast_settings):
    user = await make_user()
    package = await make_package(is_active=False)
    with pytest.raises(NotFoundError):
        await payments_service.create_payment(user, 199.0, PaymentMethod.PAYFAST, package.id)


@pytest.mark.asyncio
async def test_create_payment_payfast_form(make_user, make_package, payfast_settings):
    user = await make_user()
    package = await make_package(price=199.0)
    await PromoCode(code="TEN", discount_type=DiscountType.PERCENTAGE, discount_value=10).insert()

    out = await payments_service.create_payment(user, 199.0, PaymentMethod.PAYFAST, package.id, promo_code="ten")
    assert out["discount_applied"] == 19.9
    assert out["final_amount"] == 179.1

    form = out["payment_data"]["form_data"]
    assert out["payment_data"]["url"] == payfast_settings.payfast_url
    assert form["amount"] == "179.10"
    assert form["custom_str1"] == out["transaction_id"]
    assert form["custom_str2"] == str(user.id)
    assert form["notify_url"].endswith("/api/payments/webhook/payfast")
    assert verify_payfast_signature(form, payfast_settings.payfast_passphrase)

    txn = await Transaction.get(PydanticObjectId(out["transaction_id"]))
    assert txn.status == TransactionStatus.PENDING
    assert txn.original_amount == 199.0
    assert txn.discount_amount == 19.9


@pytest.mark.asyncio
async def test_create_payment_stripe_session(monkeypatch, make_user, make_package, stripe_settings):
    captured = {}

    def fake_create(**kwargs):
        captured.update(kwargs)
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    user = await make_user()
    package = await make_package(price=199.0)

    out = await payments_service.create_payment(user, 199.0, PaymentMethod.STRIPE, package.id)
    assert out["payment_data"]["session_id"] == "cs_test_123"
    assert captured["line_items"][0]["price_data"]["unit_amount"] == 19900
    assert captured["metadata"]["transaction_id"] == out["transaction_id"]
    txn = await Transaction.get(PydanticObjectId(out["transaction_id"]))
    assert txn.gateway_id == "cs_test_123"


@pytest.mark.asyncio
async def test_create_payment_stripe_error_fails_transaction(monkeypatch, make_user, make_package, stripe_settings):
    def fake_create(**kwargs):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    user = await make_user()
    package = await make_package(price=199.0)
    with pytest.raises(BadGatewayError):
        await payments_service.create_payment(user, 199.0, PaymentMethod.STRIPE, package.id)
    txn = await Transaction.find_one(Transaction.user.id == user.id)
    assert txn.status == TransactionStatus.FAILED


@pytest.mark.asyncio
async def test_complete_transaction_grants_once(make_user, make_package):
    user = await make_user()
    package = await make_package(credits=100, price=199.0)
    promo = PromoCode(code="ONCE", discount_type=DiscountType.FIXED, discount_value=20)
    await promo.insert()
    txn = Transaction(
        user=user, package=package, promo_code=promo, amount=179.0, original_amount=199.0,
        discount_amount=20.0, payment_method=PaymentMethod.STRIPE,
    )
    await txn.insert()

    first = await payments_service.complete_transaction(txn.id, {"event_id": "evt_1"})
    second = await payments_service.complete_transaction(txn.id, {"event_id": "evt_1"})
    assert first.status == TransactionStatus.COMPLETED
    assert second.status == TransactionStatus.COMPLETED

    entries = await CreditEntry.find(CreditEntry.user.id == user.id).to_list()
    assert len(entries) == 1
    assert entries[0].type == CreditType.PURCHASE
    assert entries[0].transaction_id == str(txn.id)
    assert entries[0].description == "Purchase: Starter"
    assert await credits_service.get_balance(user.id) == 100
    assert (await PromoCode.get(promo.id)).used_count == 1


@pytest.mark.asyncio
async def test_fail_does_not_downgrade_completed(make_user, make_package):
    user = await make_user()
    package = await make_package()
    txn = Transaction(user=user, package=package, amount=199.0, original_amount=199.0,
                      payment_method=PaymentMethod.PAYFAST)
    await txn.insert()
    await payments_service.complete_transaction(txn.id, {})
    assert await payments_service.fail_transaction(txn.id, {"error": "late"}) is None
    assert (await Transaction.get(txn.id)).status == TransactionStatus.COMPLETED


@pytest.mark.asyncio
async def test_complete_unknown_transaction(db):
    assert await payments_service.complete_transaction(PydanticObjectId(), {}) is None


@pytest.mark.asyncio
async def test_stripe_webhook_completes_and_replay_is_noop(client, make_user, make_package, stripe_settings):
    user = await make_user()
    package = await make_package(credits=250, price=399.0)
    txn = Transaction(user=user, package=package, amount=399.0, original_amount=399.0,
                      payment_method=PaymentMethod.STRIPE, gateway_id="cs_test_1")
    await txn.insert()
    payload = _checkout_event(txn)

    for _ in range(2):
        r = await client.post(
            "/api/payments/webhook/stripe",
            content=payload,
            headers={"Stripe-Signature": _stripe_header(payload)},
        )
        assert r.status_code == 200
        assert r.json() == {"received": True}

    assert (await Transaction.get(txn.id)).status == TransactionStatus.COMPLETED
    assert await credits_service.get_balance(user.id) == 250
    assert await CreditEntry.find(CreditEntry.user.id == user.id).count() == 1


@pytest.mark.asyncio
async def test_stripe_webhook_missing_metadata(client, db, stripe_settings):
    payload = json.dumps({
        "id": "evt_2",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_x", "metadata": {}}},
    }).encode("utf-8")
    r = await client.post(
        "/api/payments/webhook/stripe",
        content=payload,
        headers={"Stripe-Signature": _stripe_header(payload)},
    )
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Missing required metadata in Stripe session"


@pytest.mark.asyncio
async def test_payfast_itn_completes(client, make_user, make_package, payfast_settings):
    user = await make_user()
    package = await make_package(credits=100, price=199.0)
    txn = Transaction(user=user, package=package, amount=199.0, original_amount=199.0,
                      payment_method=PaymentMethod.PAYFAST)
    await txn.insert()

    r = await client.post("/api/payments/webhook/payfast", data=_itn(str(txn.id), "199.00"))
    assert r.status_code == 200
    assert r.text == "OK"
    settled = await Transaction.get(txn.id)
    assert settled.status == TransactionStatus.COMPLETED
    assert settled.gateway_id == "1089250"
    assert await credits_service.get_balance(user.id) == 100


@pytest.mark.asyncio
async def test_payfast_itn_amount_mismatch_fails(make_user, make_package, payfast_settings):
    user = await make_user()
    package = await make_package(price=199.0)
    txn = Transaction(user=user, package=package, amount=199.0, original_amount=199.0,
                      payment_method=PaymentMethod.PAYFAST)
    await txn.insert()

    await payments_service.handle_payfast_notification(_itn(str(txn.id), "1.00"))
    failed = await Transaction.get(txn.id)
    assert failed.status == TransactionStatus.FAILED
    assert failed.gateway_data["error"] == "amount_mismatch"
    assert await credits_service.get_balance(user.id) == 0


@pytest.mark.asyncio
async def test_payfast_itn_cancelled(make_user, make_package, payfast_settings):
    user = await make_user()
    package = await make_package()
    txn = Transaction(user=user, package=package, amount=199.0, original_amount=199.0,
                      payment_method=PaymentMethod.PAYFAST)
    await txn.insert()
    await payments_service.handle_payfast_notification(_itn(str(txn.id), "199.00", status="CANCELLED"))
    assert (await Transaction.get(txn.id)).status == TransactionStatus.FAILED


@pytest.mark.asyncio
async def test_payfast_itn_bad_signature(payfast_settings):
    form = _itn("65f000000000000000000001", "199.00", passphrase="wrong")
    with pytest.raises(BadRequestError) as exc:
        await payments_service.handle_payfast_notification(form)
    assert exc.value.message == "Invalid PayFast signature"


@pytest.mark.asyncio
async def test_payment_history_includes_package(make_user, make_package):
    user = await make_user()
    package = await make_package("Agency", credits=1000, price=1499.0)
    await Transaction(user=user, package=package, amount=1499.0, original_amount=1499.0,
                      payment_method=PaymentMethod.STRIPE).insert()
    items, total = await payments_service.payment_history(user.id)
    assert total == 1
    assert items[0]["package"] == {"id": str(package.id), "name": "Agency", "credits": 1000}
    assert items[0]["status"] == "PENDING"


@pytest.mark.asyncio
async def test_stripe_payment_failed_uses_intent_metadata(client, make_user, make_package, stripe_settings):
    user = await make_user()
    package = await make_package()
    txn = Transaction(user=user, package=package, amount=199.0, original_amount=199.0,
                      payment_method=PaymentMethod.STRIPE, gateway_id="cs_test_9")
    await txn.insert()
    payload = json.dumps({
        "id": "evt_3",
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": "pi_test_9", "metadata": {"transaction_id": str(txn.id)}}},
    }).encode("utf-8")
    r = await client.post(
        "/api/payments/webhook/stripe",
        content=payload,
        headers={"Stripe-Signature": _stripe_header(payload)},
    )
    assert r.status_code == 200
    failed = await Transaction.get(txn.id)
    assert failed.status == TransactionStatus.FAILED
    assert failed.gateway_data["payment_intent"] == "pi_test_9"


@pytest.mark.asyncio
async def test_full_discount_completes_without_gateway(make_user, make_package, payfast_settings):
    user = await make_user()
    package = await make_package(credits=100, price=199.0)
    promo = PromoCode(code="FREE", discount_type=DiscountType.PERCENTAGE, discount_value=100)
    await promo.insert()

    out = await payments_service.create_payment(user, 199.0, PaymentMethod.PAYFAST, package.id, promo_code="FREE")
    assert out["final_amount"] == 0.0
    assert out["payment_data"] == {"completed": True}
    txn = await Transaction.get(PydanticObjectId(out["transaction_id"]))
    assert txn.status == TransactionStatus.COMPLETED
    assert await credits_service.get_balance(user.id) == 100
    assert (await PromoCode.get(promo.id)).used_count == 1


@pytest.mark.asyncio
async def test_full_discount_needs_no_gateway_config(make_user, make_package, monkeypatch):
    monkeypatch.setattr(get_settings(), "stripe_secret_key", "")
    user = await make_user()
    package = await make_package(price=50.0)
    await PromoCode(code="FIFTY", discount_type=DiscountType.FIXED, discount_value=80).insert()
    out = await payments_service.create_payment(user, 50.0, PaymentMethod.STRIPE, package.id, promo_code="FIFTY")
    assert out["payment_data"] == {"completed": True}


@pytest.mark.asyncio
async def test_concurrent_completions_grant_once(make_user, make_package):
    user = await make_user()
    package = await make_package(credits=100, price=199.0)
    txn = Transaction(user=user, package=package, amount=199.0, original_amount=199.0,
                      payment_method=PaymentMethod.STRIPE)
    await txn.insert()

    await asyncio.gather(
        payments_service.complete_transaction(txn.id, {"event_id": "evt_a"}),
        payments_service.complete_transaction(txn.id, {"event_id": "evt_b"}),
    )
    purchases = await CreditEntry.find(
        CreditEntry.user.id == user.id,
        CreditEntry.type == CreditType.PURCHASE,
    ).count()
    assert purchases == 1
    assert await credits_service.get_balance(user.id) == 100
