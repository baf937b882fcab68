"""
OrderService — purchase orders created from the catalog.

Amount, currency and plan name are always copied from the live package;
anything the client sends about price or tokens is ignored.
"""
import logging
import secrets
import time

import redis
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InvalidPackage, RateLimited
from app.models.order import Order
from app.services.catalog.service import CatalogService
from app.services.orders.state import OrderStatus, transition
from app.utils.metrics import orders_created_total, orders_link_failed_total

logger = logging.getLogger(__name__)


def generate_order_id() -> str:
    """order_<epoch ms>_<16 hex chars>; the random part makes ids unguessable."""
    return f"order_{int(time.time() * 1000)}_{secrets.token_hex(8)}"


class OrderService:
    def __init__(self, db: Session, redis_client: redis.Redis | None = None):
        self.db = db
        self._redis = redis_client
        self.catalog = CatalogService(db)

    def create_order(self, user_id: str, package_id: str) -> Order:
        """Create a pending order for an active package. Raises InvalidPackage / RateLimited."""
        pkg = self.catalog.get_package_by_id(package_id)
        if pkg is None:
            logger.info("order_invalid_package", extra={"user_id": user_id, "package_id": package_id})
            raise InvalidPackage()
        if not self._check_rate_limit(user_id):
            logger.warning("purchase_rate_limited", extra={"user_id": user_id})
            raise RateLimited()

        order = Order(
            order_id=generate_order_id(),
            user_id=user_id,
            package_id=pkg.id,
            plan_name=pkg.name,
            amount=pkg.price,
            currency=pkg.currency,
            status=OrderStatus.PENDING.value,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        orders_created_total.labels(package_id=pkg.id).inc()
        logger.info(
            "order_created",
            extra={
                "user_id": user_id,
                "order_id": order.order_id,
                "package_id": pkg.id,
                "amount": order.amount,
            },
        )
        return order

    def attach_payment_link(self, order: Order, link) -> Order:
        """Adopt the gateway's canonical id when it differs from ours."""
        if link.link_id and link.link_id != order.order_id:
            logger.info(
                "order_id_replaced_by_gateway",
                extra={"order_id": order.order_id, "link_id": link.link_id},
            )
            order.order_id = link.link_id
            self.db.add(order)
            self.db.commit()
            self.db.refresh(order)
        return order

    def mark_failed(self, order: Order) -> Order:
        """Payment link could not be created: the order is dead, the user must start over."""
        transition(order, OrderStatus.FAILED)
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        orders_link_failed_total.inc()
        logger.warning("order_link_failed", extra={"order_id": order.order_id, "user_id": order.user_id})
        return order

    def get_by_order_id(self, order_id: str) -> Order | None:
        if not order_id:
            return None
        return self.db.query(Order).filter(Order.order_id == order_id).one_or_none()

    def list_for_user(self, user_id: str, limit: int = 50) -> list[Order]:
        return (
            self.db.query(Order)
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .all()
        )

    # ------------------------------------------------------------------
    # Rate-limit (Redis, shared by all API replicas)
    # ------------------------------------------------------------------

    def _check_rate_limit(self, user_id: str) -> bool:
        """At most purchase_rate_limit orders per window. Fails open when Redis is down."""
        if settings.purchase_rate_limit <= 0:
            return True
        key = f"purchase_rate:{user_id}"
        try:
            client = self._redis or redis.Redis.from_url(settings.redis_url, decode_responses=True)
            current = client.incr(key)
            if current == 1:
                client.expire(key, settings.purchase_rate_window_seconds)
            return current <= settings.purchase_rate_limit
        except redis.RedisError as e:
            logger.warning("purchase_rate_limit_redis_error", extra={"error": str(e)})
            return True
