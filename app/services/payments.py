"""Payment attempts and gateway reconciliation (Stripe Checkout, PayFast ITN).

A Transaction is inserted PENDING before the gateway is contacted. Webhooks
move it to COMPLETED or FAILED with a conditional update on the PENDING
status, so only the first notification for a transaction grants credits.
"""

import json
from datetime import datetime
from typing import Any

import stripe
from beanie import PydanticObjectId, UpdateResponse
from beanie.operators import In, Inc, Set
from bson.errors import InvalidId
from fastapi.concurrency import run_in_threadpool

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import BadGatewayError, BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.core.pagination import paginate
from app.core.security import payfast_signature, verify_payfast_signature
from app.models.credit_package import CreditPackage
from app.models.enums import CreditType, PaymentMethod, TransactionStatus
from app.models.links import link_id
from app.models.promo_code import PromoCode
from app.models.transaction import Transaction
from app.models.user import User
from app.services import credits as credits_service
from app.services import promo_codes as promo_service

log = get_logger(__name__)

PRICE_TOLERANCE = 0.01


def transaction_to_dict(
    t: Transaction,
    package: CreditPackage | None = None,
    promo: PromoCode | None = None,
) -> dict[str, Any]:
    out = {
        "id": str(t.id),
        "user_id": link_id(t.user),
        "package_id": link_id(t.package),
        "promo_code_id": link_id(t.promo_code),
        "amount": t.amount,
        "original_amount": t.original_amount,
        "discount_amount": t.discount_amount,
        "currency": t.currency,
        "status": t.status.value,
        "payment_method": t.payment_method.value,
        "gateway_id": t.gateway_id,
        "created_at": t.created_at.isoformat(),
        "updated_at": t.updated_at.isoformat(),
    }
    if package is not None:
        out["package"] = {"id": str(package.id), "name": package.name, "credits": package.credits}
    if promo is not None:
        out["promo_code"] = {"id": str(promo.id), "code": promo.code}
    return out


def _require_stripe() -> None:
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise BadRequestError("Stripe payments not configured")
    stripe.api_key = settings.stripe_secret_key


def _require_payfast() -> None:
    settings = get_settings()
    if not settings.payfast_merchant_id or not settings.payfast_merchant_key:
        raise BadRequestError("PayFast payments not configured")


async def create_payment(
    user: User,
    amount: float,
    payment_method: PaymentMethod,
    package_id: PydanticObjectId,
    promo_code: str | None = None,
    success_url: str | None = None,
    cancel_url: str | None = None,
) -> dict[str, Any]:
    """Validate package and promo, insert a PENDING transaction, start the gateway flow."""
    settings = get_settings()
    package = await CreditPackage.get(package_id)
    if not package or not package.is_active:
        raise NotFoundError("Credit package not found or inactive")
    if abs(amount - package.price) > PRICE_TOLERANCE:
        raise BadRequestError("Payment amount does not match package price")

    promo = None
    discount = 0.0
    if promo_code:
        promo = await promo_service.resolve_for_user(user.id, promo_code)
        discount = promo_service.calculate_discount(promo, package.price)
    final_amount = round(max(0.0, package.price - discount), 2)

    if final_amount > 0:
        if payment_method == PaymentMethod.STRIPE:
            _require_stripe()
        else:
            _require_payfast()

    txn = Transaction(
        user=user,
        package=package,
        promo_code=promo,
        amount=final_amount,
        original_amount=package.price,
        discount_amount=discount,
        currency=package.currency,
        payment_method=payment_method,
    )
    await txn.insert()
    log.info(
        "transaction_created",
        transaction_id=str(txn.id),
        user_id=str(user.id),
        method=payment_method.value,
        amount=final_amount,
        discount=discount,
    )

    if final_amount <= 0:
        # Gateways reject zero charges; a fully discounted purchase settles here.
        await complete_transaction(txn.id, {"free": True, "promo_code": promo.code if promo else None})
        payment_data = {"completed": True}
    elif payment_method == PaymentMethod.STRIPE:
        payment_data = await _start_stripe_checkout(txn, package, user, success_url, cancel_url)
    else:
        payment_data = _payfast_form(txn, package, user, success_url, cancel_url)
        txn.gateway_data = {"form": payment_data["form_data"]}
        await txn.save()

    return {
        "transaction_id": str(txn.id),
        "payment_data": payment_data,
        "discount_applied": discount,
        "final_amount": final_amount,
    }


async def _start_stripe_checkout(
    txn: Transaction,
    package: CreditPackage,
    user: User,
    success_url: str | None,
    cancel_url: str | None,
) -> dict[str, Any]:
    settings = get_settings()
    metadata = {
        "transaction_id": str(txn.id),
        "user_id": str(user.id),
        "credit_package_id": str(package.id),
    }
    try:
        session = await run_in_threadpool(
            stripe.checkout.Session.create,
            payment_method_types=["card"],
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": package.currency.lower(),
                        "product_data": {
                            "name": package.name,
                            "description": package.description or f"{package.credits} credits",
                        },
                        "unit_amount": int(round(txn.amount * 100)),
                    },
                    "quantity": 1,
                }
            ],
            success_url=success_url or f"{settings.frontend_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{settings.frontend_url}/payment/cancel",
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
        )
    except stripe.StripeError as e:
        log.error("stripe_session_failed", transaction_id=str(txn.id), error=str(e))
        await fail_transaction(txn.id, {"error": str(e)})
        raise BadGatewayError("Failed to create payment") from e

    txn.gateway_id = session.id
    txn.gateway_data = {"session_id": session.id, "url": session.url}
    txn.updated_at = datetime.utcnow()
    await txn.save()
    return {"url": session.url, "session_id": session.id}


def _payfast_form(
    txn: Transaction,
    package: CreditPackage,
    user: User,
    success_url: str | None,
    cancel_url: str | None,
) -> dict[str, Any]:
    settings = get_settings()
    fields = {
        "merchant_id": settings.payfast_merchant_id,
        "merchant_key": settings.payfast_merchant_key,
        "return_url": success_url or f"{settings.frontend_url}/payment/success",
        "cancel_url": cancel_url or f"{settings.frontend_url}/payment/cancel",
        "notify_url": f"{settings.backend_url}/api/payments/webhook/payfast",
        "m_payment_id": str(txn.id),
        "amount": f"{txn.amount:.2f}",
        "item_name": package.name,
        "custom_str1": str(txn.id),
        "custom_str2": str(user.id),
    }
    fields["signature"] = payfast_signature(fields, settings.payfast_passphrase)
    return {"url": settings.payfast_url, "form_data": fields}


async def complete_transaction(
    transaction_id: PydanticObjectId,
    gateway_data: dict[str, Any],
    gateway_id: str | None = None,
) -> Transaction | None:
    """
    PENDING -> COMPLETED, then one PURCHASE entry for the package credits and
    one promo use. Replays for an already settled transaction change nothing.
    """
    now = datetime.utcnow()
    changes: dict[Any, Any] = {
        Transaction.status: TransactionStatus.COMPLETED,
        Transaction.gateway_data: gateway_data,
        Transaction.updated_at: now,
    }
    if gateway_id:
        changes[Transaction.gateway_id] = gateway_id
    txn = await Transaction.find_one(
        Transaction.id == transaction_id,
        Transaction.status == TransactionStatus.PENDING,
    ).update(Set(changes), response_type=UpdateResponse.NEW_DOCUMENT)

    if txn is None:
        existing = await Transaction.get(transaction_id)
        if existing is None:
            log.warning("transaction_not_found", transaction_id=str(transaction_id))
            return None
        log.info("transaction_already_settled", transaction_id=str(transaction_id), status=existing.status.value)
        return existing

    package = await CreditPackage.get(link_id(txn.package))
    user = await User.get(link_id(txn.user))
    if package is not None and user is not None:
        await credits_service.record_entry(
            user,
            CreditType.PURCHASE,
            package.credits,
            f"Purchase: {package.name}",
            transaction_id=str(txn.id),
        )
    else:
        log.error("transaction_completed_without_grant", transaction_id=str(txn.id))

    promo_id = link_id(txn.promo_code)
    if promo_id:
        await PromoCode.find_one(PromoCode.id == PydanticObjectId(promo_id)).update(
            Inc({PromoCode.used_count: 1}),
            Set({PromoCode.updated_at: now}),
        )

    await log_event(link_id(txn.user), "PAYMENT_COMPLETED", "TRANSACTION", str(txn.id), new_values=transaction_to_dict(txn))
    log.info("transaction_completed", transaction_id=str(txn.id), amount=txn.amount)
    return txn


async def fail_transaction(transaction_id: PydanticObjectId, gateway_data: dict[str, Any]) -> Transaction | None:
    """PENDING -> FAILED; completed transactions are never downgraded."""
    txn = await Transaction.find_one(
        Transaction.id == transaction_id,
        Transaction.status == TransactionStatus.PENDING,
    ).update(
        Set({
            Transaction.status: TransactionStatus.FAILED,
            Transaction.gateway_data: gateway_data,
            Transaction.updated_at: datetime.utcnow(),
        }),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if txn is not None:
        log.info("transaction_failed", transaction_id=str(txn.id))
    return txn


def _object_id(value: Any) -> PydanticObjectId | None:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        return None


def verify_stripe_event(payload: bytes, signature: str | None) -> dict[str, Any]:
    """Check the Stripe-Signature header and return the event as plain JSON."""
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        raise BadRequestError("Webhook secret not configured")
    if not signature:
        raise BadRequestError("Missing Stripe-Signature header")
    try:
        stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        log.warning("stripe_webhook_rejected", error=str(e))
        raise BadRequestError(f"Webhook Error: {e}") from e
    return json.loads(payload)


async def handle_stripe_webhook(payload: bytes, signature: str | None) -> dict[str, Any]:
    event = verify_stripe_event(payload, signature)
    event_type = event.get("type")
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == "checkout.session.completed":
        metadata = obj.get("metadata") or {}
        transaction_id = _object_id(metadata.get("transaction_id"))
        if not transaction_id or not metadata.get("user_id") or not metadata.get("credit_package_id"):
            raise BadRequestError("Missing required metadata in Stripe session")
        await complete_transaction(
            transaction_id,
            {"session_id": obj.get("id"), "payment_intent": obj.get("payment_intent"), "event_id": event.get("id")},
        )
    elif event_type == "payment_intent.payment_failed":
        intent_id = obj.get("id")
        gateway_data = {"payment_intent": intent_id, "event_id": event.get("id")}
        transaction_id = _object_id((obj.get("metadata") or {}).get("transaction_id"))
        if transaction_id:
            await fail_transaction(transaction_id, gateway_data)
        else:
            pending = await Transaction.find(
                Transaction.gateway_id == intent_id,
                Transaction.status == TransactionStatus.PENDING,
            ).to_list()
            for txn in pending:
                await fail_transaction(txn.id, gateway_data)
    else:
        log.info("stripe_event_ignored", event_type=event_type)
    return {"received": True}


async def handle_payfast_notification(form: dict[str, str]) -> None:
    """PayFast ITN: signature-checked; COMPLETE settles, FAILED/CANCELLED fails."""
    settings = get_settings()
    if not verify_payfast_signature(form, settings.payfast_passphrase):
        log.warning("payfast_itn_rejected", reason="signature")
        raise BadRequestError("Invalid PayFast signature")
    if settings.payfast_merchant_id and form.get("merchant_id") not in (None, settings.payfast_merchant_id):
        raise BadRequestError("Unknown PayFast merchant")

    transaction_id = _object_id(form.get("custom_str1") or form.get("m_payment_id"))
    if transaction_id is None:
        raise BadRequestError("Missing transaction reference")
    status = (form.get("payment_status") or "").upper()
    gateway_data = {
        "pf_payment_id": form.get("pf_payment_id"),
        "amount_gross": form.get("amount_gross"),
        "payment_status": status,
    }

    if status == "COMPLETE":
        txn = await Transaction.get(transaction_id)
        if txn is None:
            log.warning("transaction_not_found", transaction_id=str(transaction_id))
            return
        try:
            gross = float(form.get("amount_gross") or 0)
        except ValueError:
            gross = -1.0
        if abs(gross - txn.amount) > PRICE_TOLERANCE:
            log.warning("payfast_amount_mismatch", transaction_id=str(txn.id), expected=txn.amount, received=gross)
            await fail_transaction(txn.id, {**gateway_data, "error": "amount_mismatch"})
            return
        await complete_transaction(transaction_id, gateway_data, gateway_id=form.get("pf_payment_id"))
    elif status in ("FAILED", "CANCELLED"):
        await fail_transaction(transaction_id, gateway_data)
    else:
        log.info("payfast_status_ignored", status=status)


async def attach_relations(transactions: list[Transaction]) -> list[dict[str, Any]]:
    """Serialize transactions with package and promo summaries in two lookups."""
    package_ids = {PydanticObjectId(i) for i in (link_id(t.package) for t in transactions) if i}
    promo_ids = {PydanticObjectId(i) for i in (link_id(t.promo_code) for t in transactions) if i}
    packages = {
        str(p.id): p for p in await CreditPackage.find(In(CreditPackage.id, list(package_ids))).to_list()
    } if package_ids else {}
    promos = {
        str(p.id): p for p in await PromoCode.find(In(PromoCode.id, list(promo_ids))).to_list()
    } if promo_ids else {}
    return [
        transaction_to_dict(t, packages.get(link_id(t.package)), promos.get(link_id(t.promo_code) or ""))
        for t in transactions
    ]


async def payment_history(user_id: PydanticObjectId, page: int = 1, limit: int = 10) -> tuple[list[dict[str, Any]], int]:
    limit, offset = paginate(page, limit)
    query = Transaction.find(Transaction.user.id == user_id)
    total = await query.count()
    txns = await query.sort(-Transaction.created_at).skip(offset).limit(limit).to_list()
    return await attach_relations(txns), total
