"""Tests for normalize_callback / parse_body — pure functions, no DB."""
import json

from app.services.payments.callback import normalize_callback, parse_body


class TestParseBody:
    def test_json(self):
        raw = json.dumps({"order_id": "o1", "status": "success"}).encode()
        assert parse_body(raw, "application/json") == {"order_id": "o1", "status": "success"}

    def test_form(self):
        raw = b"order_id=o1&status=failed&failure_reason=bank+declined"
        body = parse_body(raw, "application/x-www-form-urlencoded")
        assert body == {"order_id": "o1", "status": "failed", "failure_reason": "bank declined"}

    def test_garbage_is_empty(self):
        assert parse_body(b"{not json", "application/json") == {}
        assert parse_body(b"", "application/json") == {}
        assert parse_body(b"[1, 2]", "application/json") == {}
        assert parse_body(b"\x00\x01", "application/octet-stream") == {}


class TestNormalizeCallback:
    def test_query_wins_over_body(self):
        payload = normalize_callback(
            {"order_id": "from-query", "status": "success"},
            {"order_id": "from-body", "status": "failed", "payment_method": "card"},
        )
        assert payload.order_id == "from-query"
        assert payload.status == "success"
        assert payload.payment_method == "card"

    def test_body_fills_gaps(self):
        payload = normalize_callback({}, {"order_id": "o1", "status": "failed", "failure_reason": "declined"})
        assert payload.order_id == "o1"
        assert payload.failure_reason == "declined"
        assert payload.verdict == "failed"

    def test_nested_webhook_shape(self):
        body = {
            "type": "PAYMENT_SUCCESS_WEBHOOK",
            "data": {
                "order": {"order_id": "order_1_abc", "order_amount": 150},
                "payment": {"payment_status": "SUCCESS", "payment_group": "upi"},
            },
        }
        payload = normalize_callback({}, body)
        assert payload.order_id == "order_1_abc"
        assert payload.status == "SUCCESS"
        assert payload.payment_method == "upi"
        assert payload.verdict == "success"

    def test_link_event_uses_link_id(self):
        body = {
            "type": "PAYMENT_LINK_EVENT",
            "data": {
                "link_id": "order_1_abc",
                "link_status": "PAID",
                "order": {"order_id": "CFPay_U1mgll3c0e9g_ehdcjjbtckf", "transaction_status": "SUCCESS"},
            },
        }
        payload = normalize_callback({}, body)
        assert payload.order_id == "order_1_abc"
        assert payload.status == "PAID"
        assert payload.verdict == "success"

    def test_payment_event_uses_link_id_tag(self):
        body = {
            "type": "PAYMENT_SUCCESS_WEBHOOK",
            "data": {
                "order": {"order_id": "CFPay_xyz", "order_tags": {"link_id": "order_2_def"}},
                "payment": {"payment_status": "SUCCESS", "payment_group": "card"},
            },
        }
        payload = normalize_callback({}, body)
        assert payload.order_id == "order_2_def"
        assert payload.payment_method == "card"
        assert payload.verdict == "success"

    def test_nested_failure_reason(self):
        body = {
            "data": {
                "order": {"order_id": "o2"},
                "payment": {"payment_status": "FAILED"},
                "error_details": {"error_description": "insufficient funds"},
            }
        }
        payload = normalize_callback({}, body)
        assert payload.verdict == "failed"
        assert payload.failure_reason == "insufficient funds"

    def test_unknown_status_has_no_verdict(self):
        assert normalize_callback({"order_id": "o", "status": "ACTIVE"}, None).verdict is None
        assert normalize_callback({"order_id": "o"}, None).verdict is None

    def test_development_mode_passthrough(self):
        payload = normalize_callback({"development_mode": "true"}, {})
        assert payload.development_mode == "true"
        assert payload.order_id == ""
