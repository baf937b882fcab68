"""
Webhook payload normalization.

The gateway (and the redirect back from its hosted page) may deliver fields in
the query string, a flat JSON/form body or the nested webhook shape
{"data": {"link_id": ..., "order": {...}, "payment": {...}}}. Query values win;
the body only fills gaps.
"""
import json
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl

from app.services.gateway.base import VERDICT_FAILED, VERDICT_PENDING, VERDICT_SUCCESS

# Gateway status strings -> settlement verdicts. Unknown values stay pending.
STATUS_VERDICTS = {
    "success": VERDICT_SUCCESS,
    "paid": VERDICT_SUCCESS,
    "failed": VERDICT_FAILED,
    "failure": VERDICT_FAILED,
    "user_dropped": VERDICT_FAILED,
    "cancelled": VERDICT_FAILED,
    "expired": VERDICT_FAILED,
    "terminated": VERDICT_FAILED,
}


@dataclass
class CallbackPayload:
    order_id: str = ""
    status: str = ""
    payment_method: str = ""
    failure_reason: str = ""
    development_mode: str = ""

    @property
    def verdict(self) -> str | None:
        """Definitive verdict carried by the payload, or None."""
        if not self.status:
            return None
        verdict = STATUS_VERDICTS.get(self.status.strip().lower(), VERDICT_PENDING)
        return verdict if verdict != VERDICT_PENDING else None


def parse_body(raw_body: bytes, content_type: str | None) -> dict[str, Any]:
    """JSON or form-encoded body as a dict; anything unparseable is an empty dict."""
    if not raw_body:
        return {}
    content_type = (content_type or "").lower()
    text = raw_body.decode("utf-8", errors="replace")
    if "application/x-www-form-urlencoded" in content_type:
        return dict(parse_qsl(text, keep_blank_values=False))
    if "application/json" in content_type or text.lstrip().startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def _dig(data: dict, *path: str) -> Any:
    cur: Any = data
    for key in path:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _from_body(body: dict[str, Any]) -> dict[str, str]:
    # orders are keyed by the payment-link id; data.order.order_id is the gateway's own id
    link_id = _text(_dig(body, "data", "link_id")) or _text(_dig(body, "data", "order", "order_tags", "link_id"))
    return {
        "order_id": _text(body.get("order_id")) or link_id or _text(_dig(body, "data", "order", "order_id")),
        "status": _text(body.get("status")) or _text(_dig(body, "data", "link_status"))
        or _text(_dig(body, "data", "payment", "payment_status")),
        "payment_method": _text(body.get("payment_method")) or _text(_dig(body, "data", "payment", "payment_group")),
        "failure_reason": _text(body.get("failure_reason"))
        or _text(_dig(body, "data", "error_details", "error_description")),
        "development_mode": _text(body.get("development_mode")),
    }


def normalize_callback(query: dict[str, Any], body: dict[str, Any] | None) -> CallbackPayload:
    """Merge query and body fields. Pure: no I/O, no side effects."""
    from_body = _from_body(body or {})
    merged = {}
    for key in ("order_id", "status", "payment_method", "failure_reason", "development_mode"):
        merged[key] = _text(query.get(key)) or from_body[key]
    return CallbackPayload(**merged)
