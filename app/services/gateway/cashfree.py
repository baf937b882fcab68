"""
Cashfree payment links (https://docs.cashfree.com/reference/pg-new-apis-endpoint).
Create: POST /pg/links. Status: GET /pg/links/{id}. Method: GET /pg/orders/{id}/payments.
"""
import base64
import hashlib
import hmac
import logging
import time

import httpx
import pybreaker

from app.core.config import settings
from app.services.circuit_breaker import get_circuit_breaker
from app.services.gateway.base import (
    VERDICT_FAILED,
    VERDICT_PENDING,
    VERDICT_SUCCESS,
    CustomerDetails,
    GatewayError,
    GatewayStatus,
    PaymentGateway,
    PaymentLink,
)
from app.utils.metrics import gateway_request_duration_seconds, gateway_requests_total

logger = logging.getLogger(__name__)

# Cashfree link_status -> settlement verdict. Anything else (ACTIVE, PARTIALLY_PAID, ...) is pending.
LINK_STATUS_VERDICTS = {
    "PAID": VERDICT_SUCCESS,
    "EXPIRED": VERDICT_FAILED,
    "TERMINATED": VERDICT_FAILED,
    "CANCELLED": VERDICT_FAILED,
}


class CashfreeGateway(PaymentGateway):
    def __init__(
        self,
        app_id: str | None = None,
        secret_key: str | None = None,
        base_url: str | None = None,
        api_version: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.app_id = app_id or settings.cashfree_app_id
        self.secret_key = secret_key or settings.cashfree_secret_key
        self.base_url = (base_url or settings.cashfree_base_url).rstrip("/")
        self.api_version = api_version or settings.cashfree_api_version
        self.timeout = timeout or settings.cashfree_timeout
        self._transport = transport
        self._breaker = get_circuit_breaker("gateway")

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-version": self.api_version,
            "x-client-id": self.app_id,
            "x-client-secret": self.secret_key,
        }

    def _request(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        start = time.time()
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = self._breaker.call(
                    client.request, method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
                )
        except (httpx.HTTPError, pybreaker.CircuitBreakerError):
            gateway_requests_total.labels(operation=operation, status="error").inc()
            raise
        finally:
            gateway_request_duration_seconds.labels(operation=operation).observe(time.time() - start)
        gateway_requests_total.labels(operation=operation, status=str(response.status_code)).inc()
        return response

    def create_payment_link(
        self,
        order,
        return_url: str,
        notify_url: str,
        customer: CustomerDetails,
    ) -> PaymentLink:
        payload = {
            "link_id": order.order_id,
            "link_amount": order.amount,
            "link_currency": order.currency,
            "link_purpose": f"Payment for {order.plan_name}",
            "customer_details": {
                "customer_name": customer.name or "User",
                "customer_email": customer.email,
                "customer_phone": customer.phone or settings.cashfree_default_customer_phone,
            },
            "link_meta": {
                "return_url": return_url,
                "notify_url": notify_url,
            },
            "link_notify": {"send_email": True, "send_sms": False},
        }
        try:
            response = self._request("create_link", "POST", "/pg/links", json=payload)
        except (httpx.HTTPError, pybreaker.CircuitBreakerError) as e:
            logger.warning("gateway_create_link_unreachable", extra={"order_id": order.order_id, "error": str(e)})
            raise GatewayError(f"Payment gateway unreachable: {e}") from e

        if response.status_code >= 400:
            logger.warning(
                "gateway_create_link_rejected",
                extra={"order_id": order.order_id, "status_code": response.status_code, "error": response.text[:500]},
            )
            raise GatewayError("Failed to create payment link", status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError("Malformed payment gateway response") from e
        if not isinstance(data, dict) or not data.get("link_url"):
            logger.warning("gateway_create_link_no_url", extra={"order_id": order.order_id})
            raise GatewayError("Payment URL not received from payment gateway")

        return PaymentLink(payment_url=data["link_url"], link_id=data.get("link_id") or order.order_id)

    def query_status(self, order_id: str) -> GatewayStatus:
        try:
            response = self._request("link_status", "GET", f"/pg/links/{order_id}")
        except (httpx.HTTPError, pybreaker.CircuitBreakerError) as e:
            logger.warning("gateway_status_unreachable", extra={"order_id": order_id, "error": str(e)})
            return GatewayStatus(verdict=VERDICT_PENDING, reachable=False)

        if response.status_code >= 400:
            logger.warning(
                "gateway_status_rejected",
                extra={"order_id": order_id, "status_code": response.status_code},
            )
            return GatewayStatus(verdict=VERDICT_PENDING, reachable=False)
        try:
            data = response.json()
        except ValueError:
            logger.warning("gateway_status_malformed", extra={"order_id": order_id})
            return GatewayStatus(verdict=VERDICT_PENDING, reachable=False)
        if not isinstance(data, dict):
            return GatewayStatus(verdict=VERDICT_PENDING, reachable=False)

        raw_status = str(data.get("link_status") or "").upper()
        verdict = LINK_STATUS_VERDICTS.get(raw_status, VERDICT_PENDING)
        paid = verdict == VERDICT_SUCCESS
        method = self._payment_method(order_id) if paid else None
        return GatewayStatus(verdict=verdict, paid=paid, method=method, raw_status=raw_status or None)

    def _payment_method(self, order_id: str) -> str | None:
        """Best effort: a missing method never blocks settlement."""
        try:
            response = self._request("order_payments", "GET", f"/pg/orders/{order_id}/payments")
            if response.status_code >= 400:
                return None
            data = response.json()
        except (httpx.HTTPError, pybreaker.CircuitBreakerError, ValueError) as e:
            logger.info("gateway_payment_method_unavailable", extra={"order_id": order_id, "error": str(e)})
            return None
        if isinstance(data, list) and data and isinstance(data[0], dict):
            method = data[0].get("payment_method")
            if isinstance(method, dict):
                # newer API versions return {"upi": {...}} style objects
                return next(iter(method), None)
            return method
        return None

    def verify_webhook_signature(self, raw_body: bytes, timestamp: str | None, signature: str | None) -> bool:
        """base64(HMAC-SHA256(secret, timestamp + body)) compared in constant time."""
        if not timestamp or not signature:
            return False
        message = timestamp.encode("utf-8") + raw_body
        digest = hmac.new(self.secret_key.encode("utf-8"), message, hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode("ascii")
        return hmac.compare_digest(expected, signature)
