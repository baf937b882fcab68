"""Tests for OrderService and the order state machine."""
import re
from unittest.mock import MagicMock, patch

import pytest
import redis

from app.core.config import settings
from app.core.exceptions import InvalidPackage, RateLimited
from app.services.gateway.base import PaymentLink
from app.services.orders.service import OrderService, generate_order_id
from app.services.orders.state import InvalidOrderTransition, OrderStatus, is_terminal, transition


class TestOrderState:
    def test_pending_to_completed_and_failed(self):
        order = MagicMock(status="pending")
        transition(order, OrderStatus.COMPLETED)
        assert order.status == "completed"
        order = MagicMock(status="pending")
        transition(order, OrderStatus.FAILED)
        assert order.status == "failed"

    @pytest.mark.parametrize("current", ["completed", "failed"])
    def test_terminal_states_are_final(self, current):
        order = MagicMock(status=current)
        with pytest.raises(InvalidOrderTransition):
            transition(order, OrderStatus.COMPLETED)
        with pytest.raises(InvalidOrderTransition):
            transition(order, OrderStatus.PENDING)
        assert order.status == current
        assert is_terminal(current)

    def test_pending_is_not_terminal(self):
        assert not is_terminal("pending")


class TestCreateOrder:
    def test_order_id_format_is_unguessable(self):
        a, b = generate_order_id(), generate_order_id()
        assert re.fullmatch(r"order_\d{13}_[0-9a-f]{16}", a)
        assert a != b

    def test_amount_comes_from_catalog(self, db, packages, user):
        order = OrderService(db).create_order(user.id, "growth")
        assert order.status == "pending"
        assert order.amount == 650
        assert order.currency == "INR"
        assert order.plan_name == "Growth"
        assert order.package_id == "growth"
        assert order.user_id == user.id

    def test_unknown_package_rejected(self, db, packages, user):
        with pytest.raises(InvalidPackage):
            OrderService(db).create_order(user.id, "platinum")

    def test_inactive_package_rejected(self, db, packages, user):
        packages["agency"].is_active = False
        db.commit()
        with pytest.raises(InvalidPackage):
            OrderService(db).create_order(user.id, "agency")

    def test_attach_payment_link_adopts_gateway_id(self, db, packages, user):
        svc = OrderService(db)
        order = svc.create_order(user.id, "starter")
        svc.attach_payment_link(order, PaymentLink(payment_url="https://pay.test/x", link_id="cf_link_1"))
        assert svc.get_by_order_id("cf_link_1").id == order.id

    def test_mark_failed_is_terminal(self, db, packages, user):
        svc = OrderService(db)
        order = svc.create_order(user.id, "starter")
        svc.mark_failed(order)
        assert svc.get_by_order_id(order.order_id).status == "failed"
        with pytest.raises(InvalidOrderTransition):
            svc.mark_failed(order)

    def test_list_for_user_only_returns_own_orders(self, db, packages, user, user_factory):
        other = user_factory(email="other@example.com")
        svc = OrderService(db)
        mine = svc.create_order(user.id, "starter")
        svc.create_order(other.id, "starter")
        assert [o.id for o in svc.list_for_user(user.id)] == [mine.id]


class TestPurchaseRateLimit:
    def test_over_limit_rejected(self, db, packages, user):
        fake_redis = MagicMock()
        fake_redis.incr.return_value = 4
        with patch.object(settings, "purchase_rate_limit", 3):
            with pytest.raises(RateLimited):
                OrderService(db, redis_client=fake_redis).create_order(user.id, "starter")

    def test_first_purchase_sets_window(self, db, packages, user):
        fake_redis = MagicMock()
        fake_redis.incr.return_value = 1
        with patch.object(settings, "purchase_rate_limit", 3):
            OrderService(db, redis_client=fake_redis).create_order(user.id, "starter")
        fake_redis.expire.assert_called_once_with(f"purchase_rate:{user.id}", settings.purchase_rate_window_seconds)

    def test_redis_down_fails_open(self, db, packages, user):
        fake_redis = MagicMock()
        fake_redis.incr.side_effect = redis.ConnectionError("down")
        with patch.object(settings, "purchase_rate_limit", 3):
            order = OrderService(db, redis_client=fake_redis).create_order(user.id, "starter")
        assert order.status == "pending"
