"""
PaymentSettlementService — turns a pending order into completed/failed exactly once.

Responsibilities:
- Tamper check: the order amount must still equal the live catalog price
- Idempotency: payments.order_id is unique, one Payment row per order
- Verdict: trusted webhook status, otherwise the gateway is asked
- Atomic settlement: Payment insert + order transition + token credit in one commit

Webhook and user verification may race on the same order. The loser of the
Payment insert race gets an IntegrityError and reports "already processed".
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import OrderNotFound, TamperDetected
from app.models.order import Order
from app.models.payment import Payment
from app.models.token_package import TokenPackage
from app.services.audit.service import AuditService
from app.services.catalog.service import CatalogService
from app.services.gateway.base import VERDICT_FAILED, VERDICT_PENDING, VERDICT_SUCCESS, PaymentGateway
from app.services.ledger.service import TokenLedgerService
from app.services.orders.state import OrderStatus, is_terminal, transition
from app.utils.metrics import settlement_tamper_total, settlements_total, tokens_credited_total

logger = logging.getLogger(__name__)

PAYMENT_SUCCESS = "success"
PAYMENT_FAILED = "failed"

MESSAGES = {
    OrderStatus.COMPLETED.value: "Payment verified successfully",
    OrderStatus.FAILED.value: "Payment verification failed",
    OrderStatus.PENDING.value: "Payment is still being processed",
}


@dataclass
class SettlementResult:
    success: bool
    status: str  # completed / failed / pending (order status after settlement)
    already_processed: bool
    order: Order
    payment: Payment | None = None
    tokens_added: int = 0
    user_tokens: int = 0

    @property
    def message(self) -> str:
        if self.already_processed:
            return "Payment already processed"
        return MESSAGES.get(self.status, "")


class PaymentSettlementService:
    def __init__(self, db: Session, gateway: PaymentGateway | None = None):
        self.db = db
        self.gateway = gateway
        self.catalog = CatalogService(db)
        self.ledger = TokenLedgerService(db)
        self.audit = AuditService(db)

    def settle(
        self,
        order_id: str,
        supplied_verdict: str | None = None,
        expected_user_id: str | None = None,
        signature_valid: bool = False,
        payment_method: str | None = None,
        failure_reason: str | None = None,
        source: str = "verify",
    ) -> SettlementResult:
        """
        Settle an order. Safe to call any number of times, from any entry point.
        Raises OrderNotFound (also when expected_user_id does not own the order)
        and TamperDetected.
        """
        order = self.db.query(Order).filter(Order.order_id == order_id).one_or_none() if order_id else None
        if order is None or (expected_user_id is not None and order.user_id != expected_user_id):
            logger.info("settlement_order_not_found", extra={"order_id": order_id, "source": source})
            raise OrderNotFound()

        pkg = self.catalog.get_package_by_id(order.package_id)
        if not self.catalog.amount_matches(pkg, order.amount):
            self._handle_tamper(order, pkg, source)
        tokens = pkg.tokens

        existing = self._find_payment(order.order_id)
        if existing is not None:
            logger.info("payment_already_processed", extra={"order_id": order.order_id, "source": source})
            settlements_total.labels(source=source, outcome="already_processed").inc()
            return self._already_processed(order, existing)
        if is_terminal(order.status):
            # e.g. payment link creation failed: nothing to settle
            logger.info(
                "settlement_order_already_final",
                extra={"order_id": order.order_id, "outcome": order.status, "source": source},
            )
            return SettlementResult(
                success=order.status == OrderStatus.COMPLETED.value,
                status=order.status,
                already_processed=True,
                order=order,
                user_tokens=self.ledger.get_balance(order.user_id),
            )

        verdict, method = self._resolve_verdict(order, supplied_verdict, signature_valid, payment_method)

        if verdict == VERDICT_PENDING:
            if not settings.settlement_finalize_pending_as_failed:
                logger.info("settlement_pending", extra={"order_id": order.order_id, "source": source})
                settlements_total.labels(source=source, outcome="pending").inc()
                return SettlementResult(
                    success=False,
                    status=OrderStatus.PENDING.value,
                    already_processed=False,
                    order=order,
                    user_tokens=self.ledger.get_balance(order.user_id),
                )
            verdict = VERDICT_FAILED
            failure_reason = failure_reason or "payment_not_confirmed"

        return self._record(order, verdict, tokens, method, failure_reason, source)

    def list_for_user(self, user_id: str) -> list[tuple[Payment, Order]]:
        """Payments made through the user's orders, newest first."""
        return (
            self.db.query(Payment, Order)
            .join(Order, Order.id == Payment.order_internal_id)
            .filter(Order.user_id == user_id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find_payment(self, order_id: str) -> Payment | None:
        return self.db.query(Payment).filter(Payment.order_id == order_id).one_or_none()

    def _resolve_verdict(
        self,
        order: Order,
        supplied_verdict: str | None,
        signature_valid: bool,
        payment_method: str | None,
    ) -> tuple[str, str | None]:
        trusted = signature_valid or settings.callback_trust_unsigned_status
        if supplied_verdict in (VERDICT_SUCCESS, VERDICT_FAILED) and trusted:
            return supplied_verdict, payment_method or None

        status = self.gateway.query_status(order.order_id)
        logger.info(
            "gateway_verdict",
            extra={
                "order_id": order.order_id,
                "verdict": status.verdict,
                "raw_status": status.raw_status,
                "outcome": "reachable" if status.reachable else "unreachable",
            },
        )
        return status.verdict, status.method or payment_method or None

    def _already_processed(self, order: Order, payment: Payment) -> SettlementResult:
        self.db.refresh(order)
        return SettlementResult(
            success=payment.status == PAYMENT_SUCCESS,
            status=order.status,
            already_processed=True,
            order=order,
            payment=payment,
            tokens_added=0,
            user_tokens=self.ledger.get_balance(order.user_id),
        )

    def _record(
        self,
        order: Order,
        verdict: str,
        tokens: int,
        method: str | None,
        failure_reason: str | None,
        source: str,
    ) -> SettlementResult:
        success = verdict == VERDICT_SUCCESS
        order_key = order.order_id
        try:
            payment = Payment(
                order_id=order.order_id,
                order_internal_id=order.id,
                user_id=order.user_id,
                amount=order.amount,
                currency=order.currency,
                status=PAYMENT_SUCCESS if success else PAYMENT_FAILED,
                payment_method=method,
                payment_time=datetime.now(timezone.utc) if success else None,
                failure_reason=None if success else failure_reason,
                tokens_granted=tokens if success else 0,
            )
            self.db.add(payment)
            self.db.flush()

            transition(order, OrderStatus.COMPLETED if success else OrderStatus.FAILED)
            self.db.add(order)
            if success:
                self.ledger.credit(order.user_id, tokens)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning("payment_duplicate", extra={"order_id": order_key, "source": source})
            existing = self._find_payment(order_key)
            if existing is None:
                raise
            settlements_total.labels(source=source, outcome="already_processed").inc()
            return self._already_processed(order, existing)

        self.db.refresh(order)
        self.db.refresh(payment)
        balance = self.ledger.get_balance(order.user_id)
        outcome = order.status
        settlements_total.labels(source=source, outcome=outcome).inc()
        if success:
            tokens_credited_total.inc(tokens)
            logger.info(
                "payment_completed",
                extra={
                    "user_id": order.user_id,
                    "order_id": order.order_id,
                    "package_id": order.package_id,
                    "amount": order.amount,
                    "tokens": tokens,
                    "new_balance": balance,
                    "source": source,
                },
            )
        else:
            logger.info(
                "payment_failed",
                extra={"order_id": order.order_id, "error": payment.failure_reason, "source": source},
            )
        return SettlementResult(
            success=success,
            status=outcome,
            already_processed=False,
            order=order,
            payment=payment,
            tokens_added=tokens if success else 0,
            user_tokens=balance,
        )

    def _handle_tamper(self, order: Order, pkg: TokenPackage | None, source: str) -> None:
        """Fail the order, keep an audit trail and raise TamperDetected. Never credits."""
        expected = pkg.price if pkg is not None else None
        order_key = order.order_id
        logger.warning(
            "settlement_tamper_detected",
            extra={
                "order_id": order_key,
                "user_id": order.user_id,
                "package_id": order.package_id,
                "amount": order.amount,
                "expected_amount": expected,
                "source": source,
            },
        )
        settlement_tamper_total.inc()
        try:
            if self._find_payment(order_key) is None:
                self.db.add(
                    Payment(
                        order_id=order_key,
                        order_internal_id=order.id,
                        user_id=order.user_id,
                        amount=order.amount,
                        currency=order.currency,
                        status=PAYMENT_FAILED,
                        failure_reason="amount_mismatch",
                        tokens_granted=0,
                    )
                )
                self.db.flush()
            if order.status == OrderStatus.PENDING.value:
                transition(order, OrderStatus.FAILED)
                self.db.add(order)
            self.audit.flag_order(
                order,
                "settlement_tamper_detected",
                {"expected_amount": expected, "source": source},
            )
            self.db.commit()
        except IntegrityError:
            # a concurrent settlement recorded this order first; the flag is still raised
            self.db.rollback()
            logger.warning("payment_duplicate", extra={"order_id": order_key, "source": source})
            self.audit.flag_order(
                order,
                "settlement_tamper_detected",
                {"expected_amount": expected, "source": source, "payment_already_recorded": True},
                commit=True,
            )
        raise TamperDetected(order_key, order.amount, expected)
