"""
Payment routes: order creation, gateway callback, user verification, history.
"""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_payment_gateway
from app.auth.session import get_current_user
from app.core.config import settings
from app.core.exceptions import UpstreamUnavailable
from app.db.session import get_db
from app.models.user import User
from app.schemas.payments import CreateOrderIn, VerifyPaymentIn
from app.services.gateway.base import CustomerDetails, GatewayError, PaymentGateway
from app.services.orders.service import OrderService
from app.services.payments.callback import normalize_callback, parse_body
from app.services.payments.service import PaymentSettlementService, SettlementResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payment", tags=["payment"])

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _settlement_body(result: SettlementResult) -> dict:
    order = result.order
    payment = result.payment
    body: dict = {"success": result.success, "status": result.status}
    if result.already_processed:
        body["alreadyProcessed"] = True
    body["payment"] = (
        {
            "id": payment.id,
            "orderId": payment.order_id,
            "amount": payment.amount,
            "currency": payment.currency,
            "status": payment.status,
            "paymentMethod": payment.payment_method,
            "paymentTime": _iso(payment.payment_time),
            "failureReason": payment.failure_reason,
        }
        if payment is not None
        else None
    )
    body["order"] = {
        "id": order.id,
        "orderId": order.order_id,
        "status": order.status,
        "packageName": order.plan_name,
        "tokensAdded": result.tokens_added,
    }
    body["user"] = {"tokens": result.user_tokens}
    body["message"] = result.message
    return body


@router.post("/create-order")
def create_order(
    payload: CreateOrderIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    orders = OrderService(db)
    order = orders.create_order(user.id, payload.package_id)

    frontend = settings.frontend_base_url.rstrip("/")
    return_url = f"{frontend}/payment/success?{urlencode({'order_id': order.order_id})}"
    notify_url = f"{settings.api_base_url.rstrip('/')}/payment/callback"
    try:
        link = gateway.create_payment_link(
            order,
            return_url=return_url,
            notify_url=notify_url,
            customer=CustomerDetails(name=user.name or "User", email=user.email, phone=user.phone),
        )
    except GatewayError as e:
        orders.mark_failed(order)
        raise UpstreamUnavailable("Failed to create payment link") from e

    order = orders.attach_payment_link(order, link)
    return {
        "success": True,
        "orderId": order.order_id,
        "paymentUrl": link.payment_url,
        "order": {
            "id": order.id,
            "orderId": order.order_id,
            "amount": order.amount,
            "currency": order.currency,
            "status": order.status,
        },
    }


@router.api_route("/callback", methods=["GET", "POST"])
async def payment_callback(
    request: Request,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> RedirectResponse:
    """
    Gateway notification and hosted-page return. Always redirects to the pricing page;
    processing errors are logged, never surfaced to the gateway.
    """
    pricing_url = f"{settings.frontend_base_url.rstrip('/')}/pricing"
    try:
        raw_body = await request.body() if request.method == "POST" else b""
        body = parse_body(raw_body, request.headers.get("content-type"))
        payload = normalize_callback(dict(request.query_params), body)

        status = payload.status
        if payload.order_id:
            signature_valid = bool(raw_body) and gateway.verify_webhook_signature(
                raw_body,
                request.headers.get(TIMESTAMP_HEADER),
                request.headers.get(SIGNATURE_HEADER),
            )
            service = PaymentSettlementService(db, gateway)
            result = await run_in_threadpool(
                service.settle,
                payload.order_id,
                supplied_verdict=payload.verdict,
                signature_valid=signature_valid,
                payment_method=payload.payment_method or None,
                failure_reason=payload.failure_reason or None,
                source="callback",
            )
            status = status or result.status
    except Exception as e:
        logger.exception("payment_callback_error", extra={"error": str(e)})
        params = {"error": "callback_error", "message": "Error processing payment callback"}
        return RedirectResponse(f"{pricing_url}?{urlencode(params)}", status_code=302)

    params = {
        key: value
        for key, value in (
            ("order_id", payload.order_id),
            ("status", status),
            ("development_mode", payload.development_mode),
        )
        if value
    }
    target = f"{pricing_url}?{urlencode(params)}" if params else pricing_url
    return RedirectResponse(target, status_code=302)


@router.post("/verify")
def verify_payment(
    payload: VerifyPaymentIn,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
) -> dict:
    result = PaymentSettlementService(db, gateway).settle(
        payload.order_id,
        expected_user_id=user.id,
        source="verify",
    )
    return _settlement_body(result)


@router.get("")
def list_payments(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict:
    rows = PaymentSettlementService(db).list_for_user(user.id)
    return {
        "success": True,
        "payments": [
            {
                "id": payment.id,
                "amount": payment.amount,
                "currency": payment.currency,
                "status": payment.status,
                "paymentMethod": payment.payment_method,
                "paymentTime": _iso(payment.payment_time),
                "failureReason": payment.failure_reason,
                "order": {"orderId": order.order_id, "planName": order.plan_name},
            }
            for payment, order in rows
        ],
    }
