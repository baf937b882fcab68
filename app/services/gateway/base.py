"""
Payment gateway contract used by orders and settlement.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

VERDICT_SUCCESS = "success"
VERDICT_FAILED = "failed"
VERDICT_PENDING = "pending"


@dataclass
class PaymentLink:
    payment_url: str
    link_id: str


@dataclass
class CustomerDetails:
    name: str
    email: str | None = None
    phone: str | None = None


@dataclass
class GatewayStatus:
    """Outcome of a status query. reachable=False means the gateway could not be asked."""
    verdict: str  # success / failed / pending
    paid: bool = False
    method: str | None = None
    raw_status: str | None = None
    reachable: bool = True
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def definitive(self) -> bool:
        return self.verdict in (VERDICT_SUCCESS, VERDICT_FAILED)


class GatewayError(Exception):
    """Payment link could not be created."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PaymentGateway(ABC):
    @abstractmethod
    def create_payment_link(
        self,
        order,
        return_url: str,
        notify_url: str,
        customer: CustomerDetails,
    ) -> PaymentLink:
        """One external call. Raises GatewayError on any failure."""

    @abstractmethod
    def query_status(self, order_id: str) -> GatewayStatus:
        """Never raises: failures come back as verdict=pending, reachable=False."""

    def verify_webhook_signature(self, raw_body: bytes, timestamp: str | None, signature: str | None) -> bool:
        return False
