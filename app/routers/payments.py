from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from app.core.pagination import pagination_meta
from app.deps import get_current_user, parse_object_id
from app.models.enums import PaymentMethod
from app.models.user import User
from app.services import payments as payments_service

router = APIRouter()


class CreatePaymentRequest(BaseModel):
    amount: float = Field(ge=0)
    payment_method: PaymentMethod
    credit_package_id: str
    promo_code: str | None = None
    success_url: str | None = None
    cancel_url: str | None = None


@router.post("/create")
async def payment_create(body: CreatePaymentRequest, user: User = Depends(get_current_user)):
    """Start a Stripe Checkout session or return a signed PayFast form."""
    return await payments_service.create_payment(
        user,
        body.amount,
        body.payment_method,
        parse_object_id(body.credit_package_id, "Credit package"),
        promo_code=body.promo_code or None,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
    )


@router.post("/webhook/stripe")
async def payment_webhook_stripe(request: Request, stripe_signature: str | None = Header(None)):
    """Stripe events; the raw body is needed for signature verification."""
    payload = await request.body()
    return await payments_service.handle_stripe_webhook(payload, stripe_signature)


@router.post("/webhook/payfast", response_class=PlainTextResponse)
async def payment_webhook_payfast(request: Request):
    """PayFast ITN (form-encoded). PayFast expects a bare 200 OK."""
    form = await request.form()
    await payments_service.handle_payfast_notification({k: str(v) for k, v in form.items()})
    return "OK"


@router.get("/history")
async def payment_history(
    user: User = Depends(get_current_user),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
):
    transactions, total = await payments_service.payment_history(user.id, page, limit)
    return {"transactions": transactions, "pagination": pagination_meta(page, limit, total)}
