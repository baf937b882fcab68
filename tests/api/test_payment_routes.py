"""HTTP tests for packages and payment routes."""
from urllib.parse import parse_qs, urlparse

from app.core.exceptions import AuthenticationRequired
from app.models.order import Order
from app.models.payment import Payment
from app.services.gateway.base import GatewayError
from app.services.ledger.service import TokenLedgerService


def _redirect_params(response):
    location = response.headers["location"]
    parsed = urlparse(location)
    return parsed, {k: v[0] for k, v in parse_qs(parsed.query).items()}


class TestPackages:
    def test_lists_active_packages_uncached(self, client, packages):
        response = client.get("/packages")
        assert response.status_code == 200
        assert "no-store" in response.headers["cache-control"]
        body = response.json()
        assert body["success"] is True
        assert [p["id"] for p in body["packages"]] == ["starter", "growth", "pro", "agency"]
        assert body["packages"][0] == {
            "id": "starter",
            "name": "Starter",
            "description": "Perfect for trying out video generation",
            "tokens": 10,
            "price": 150,
            "currency": "INR",
        }


class TestCreateOrder:
    def test_creates_order_and_link(self, client, db, packages, gateway):
        response = client.post("/payment/create-order", json={"packageId": "growth"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["paymentUrl"] == f"https://pay.test/{body['orderId']}"
        assert body["order"]["amount"] == 650
        assert body["order"]["status"] == "pending"
        created = gateway.created[0]
        assert created["notify_url"] == "http://api.test/payment/callback"
        assert created["return_url"].startswith("http://frontend.test/payment/success?order_id=")

    def test_client_price_is_ignored(self, client, db, packages):
        response = client.post(
            "/payment/create-order",
            json={"packageId": "pro", "amount": 1, "tokens": 100000, "packageName": "Free"},
        )
        assert response.status_code == 200
        order = db.query(Order).one()
        assert order.amount == 1440
        assert order.plan_name == "Pro"

    def test_unknown_package(self, client, packages):
        response = client.post("/payment/create-order", json={"packageId": "gold"})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_package"

    def test_missing_package_id_is_400(self, client, packages):
        response = client.post("/payment/create-order", json={})
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    def test_gateway_failure_fails_order(self, client, db, packages, gateway):
        gateway.link_error = GatewayError("down")
        response = client.post("/payment/create-order", json={"packageId": "starter"})
        assert response.status_code == 500
        assert response.json()["retryable"] is True
        assert db.query(Order).one().status == "failed"

    def test_gateway_renamed_order(self, client, db, packages, gateway):
        gateway.rename_to = "cf_link_42"
        response = client.post("/payment/create-order", json={"packageId": "starter"})
        assert response.json()["orderId"] == "cf_link_42"
        assert db.query(Order).one().order_id == "cf_link_42"

    def test_requires_session(self, client, packages):
        from app.auth.session import get_current_user
        from app.main import app

        def _anonymous():
            raise AuthenticationRequired()

        app.dependency_overrides[get_current_user] = _anonymous
        response = client.post("/payment/create-order", json={"packageId": "starter"})
        assert response.status_code == 401
        assert response.json()["code"] == "authentication_required"


class TestVerify:
    def _order_id(self, client):
        return client.post("/payment/create-order", json={"packageId": "starter"}).json()["orderId"]

    def test_verify_paid_order(self, client, db, user, packages, gateway):
        order_id = self._order_id(client)
        gateway.pay(method="upi")

        response = client.post("/payment/verify", json={"orderId": order_id})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["order"]["status"] == "completed"
        assert body["order"]["tokensAdded"] == 10
        assert body["payment"]["paymentMethod"] == "upi"
        assert body["user"]["tokens"] == 10
        assert body["message"] == "Payment verified successfully"

        again = client.post("/payment/verify", json={"orderId": order_id}).json()
        assert again["alreadyProcessed"] is True
        assert again["user"]["tokens"] == 10

    def test_verify_pending(self, client, packages):
        order_id = self._order_id(client)
        body = client.post("/payment/verify", json={"orderId": order_id}).json()
        assert body["success"] is False
        assert body["status"] == "pending"
        assert body["payment"] is None

    def test_verify_unknown_order(self, client, packages):
        response = client.post("/payment/verify", json={"orderId": "order_0_missing"})
        assert response.status_code == 404

    def test_verify_missing_order_id(self, client, packages):
        assert client.post("/payment/verify", json={}).status_code == 400

    def test_verify_tampered_order(self, client, db, packages, gateway):
        order_id = self._order_id(client)
        db.query(Order).filter(Order.order_id == order_id).update({"amount": 1})
        db.commit()
        gateway.pay()

        response = client.post("/payment/verify", json={"orderId": order_id})
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "amount_mismatch"
        assert body["security_flag"] is True
        assert body["orderId"] == order_id

    def test_payment_history(self, client, packages, gateway):
        order_id = self._order_id(client)
        gateway.pay()
        client.post("/payment/verify", json={"orderId": order_id})
        body = client.get("/payment").json()
        assert len(body["payments"]) == 1
        assert body["payments"][0]["order"]["planName"] == "Starter"
        assert body["payments"][0]["status"] == "success"


class TestCallback:
    def _order(self, client):
        return client.post("/payment/create-order", json={"packageId": "starter"}).json()["orderId"]

    def test_signed_webhook_credits_and_redirects(self, client, db, user, packages, gateway):
        order_id = self._order(client)
        gateway.signature_ok = True
        response = client.post(
            "/payment/callback",
            json={"data": {"order": {"order_id": order_id}, "payment": {"payment_status": "SUCCESS"}}},
            headers={"x-webhook-signature": "sig", "x-webhook-timestamp": "1"},
            follow_redirects=False,
        )
        assert response.status_code == 302
        parsed, params = _redirect_params(response)
        assert parsed.netloc == "frontend.test"
        assert parsed.path == "/pricing"
        assert params == {"order_id": order_id, "status": "SUCCESS"}
        assert TokenLedgerService(db).get_balance(user.id) == 10
        assert gateway.queried == []

    def test_signed_payment_link_event_credits(self, client, db, user, packages, gateway):
        order_id = self._order(client)
        gateway.signature_ok = True
        response = client.post(
            "/payment/callback",
            json={
                "type": "PAYMENT_LINK_EVENT",
                "data": {
                    "link_id": order_id,
                    "link_status": "PAID",
                    "order": {"order_id": "CFPay_U1mgll3c0e9g_ehdcjjbtckf"},
                },
            },
            headers={"x-webhook-signature": "sig", "x-webhook-timestamp": "1"},
            follow_redirects=False,
        )
        assert response.status_code == 302
        _, params = _redirect_params(response)
        assert params == {"order_id": order_id, "status": "PAID"}
        assert db.query(Payment).count() == 1
        assert TokenLedgerService(db).get_balance(user.id) == 10
        assert db.query(Order).one().status == "completed"

    def test_form_callback_with_query_priority(self, client, db, user, packages, gateway):
        order_id = self._order(client)
        gateway.pay()
        response = client.post(
            f"/payment/callback?order_id={order_id}&development_mode=true",
            content=b"order_id=ignored&status=success",
            headers={"content-type": "application/x-www-form-urlencoded"},
            follow_redirects=False,
        )
        _, params = _redirect_params(response)
        assert params == {"order_id": order_id, "status": "success", "development_mode": "true"}
        # unsigned status was re-confirmed with the gateway
        assert gateway.queried == [order_id]
        assert TokenLedgerService(db).get_balance(user.id) == 10

    def test_duplicate_webhooks_credit_once(self, client, db, user, packages, gateway):
        order_id = self._order(client)
        gateway.signature_ok = True
        for _ in range(3):
            client.post(
                "/payment/callback",
                json={"order_id": order_id, "status": "success"},
                follow_redirects=False,
            )
        assert db.query(Payment).count() == 1
        assert TokenLedgerService(db).get_balance(user.id) == 10

    def test_forged_unsigned_success_does_not_credit(self, client, db, user, packages, gateway):
        order_id = self._order(client)
        response = client.get(
            f"/payment/callback?order_id={order_id}&status=success",
            follow_redirects=False,
        )
        assert response.status_code == 302
        assert TokenLedgerService(db).get_balance(user.id) == 0
        assert db.query(Order).one().status == "pending"

    def test_unknown_order_redirects_with_error(self, client, packages):
        response = client.post(
            "/payment/callback",
            json={"order_id": "order_0_missing", "status": "success"},
            follow_redirects=False,
        )
        assert response.status_code == 302
        _, params = _redirect_params(response)
        assert params["error"] == "callback_error"
        assert params["message"] == "Error processing payment callback"

    def test_empty_callback_redirects(self, client):
        response = client.get("/payment/callback", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "http://frontend.test/pricing"


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_request_id_echoed(self, client):
        response = client.get("/health", headers={"X-Request-Id": "abc-123"})
        assert response.headers["x-request-id"] == "abc-123"

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "settlements_total" in response.text
