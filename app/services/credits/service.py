"""
CreditHistoryService — token movements derived from Order/Payment (credits)
and Video/Image (debits). There is no separate ledger table.
"""
from datetime import timezone

from sqlalchemy.orm import Session

from app.models.image import Image
from app.models.order import Order
from app.models.payment import Payment
from app.models.video import Video
from app.services.generation.service import paginate
from app.services.ledger.service import TokenLedgerService
from app.services.orders.state import OrderStatus

PROMPT_PREVIEW = 100


class CreditHistoryService:
    def __init__(self, db: Session):
        self.db = db

    def history(self, user_id: str, page: int = 1, limit: int = 50) -> dict:
        transactions: list[dict] = []

        purchases = (
            self.db.query(Order, Payment)
            .join(Payment, Payment.order_internal_id == Order.id)
            .filter(Order.user_id == user_id, Order.status == OrderStatus.COMPLETED.value)
            .all()
        )
        for order, payment in purchases:
            transactions.append({
                "id": order.id,
                "type": "credit",
                "amount": payment.tokens_granted,
                "description": f"Purchased {order.plan_name} package",
                "createdAt": payment.payment_time or order.created_at,
                "details": {
                    "packageName": order.plan_name,
                    "price": order.amount,
                    "currency": order.currency,
                },
            })

        for video in self.db.query(Video).filter(Video.user_id == user_id).all():
            transactions.append({
                "id": video.id,
                "type": "debit",
                "amount": video.tokens_used,
                "description": "Video generation",
                "createdAt": video.created_at,
                "details": {
                    "prompt": video.prompt[:PROMPT_PREVIEW],
                    "status": video.status,
                    "aspectRatio": video.aspect_ratio,
                },
            })

        for image in self.db.query(Image).filter(Image.user_id == user_id).all():
            transactions.append({
                "id": image.id,
                "type": "debit",
                "amount": image.tokens_used,
                "description": "Image generation",
                "createdAt": image.created_at,
                "details": {
                    "prompt": image.prompt[:PROMPT_PREVIEW],
                    "aspectRatio": image.aspect_ratio,
                },
            })

        # SQLite hands back naive datetimes even for timezone-aware columns
        transactions.sort(key=lambda t: _sort_key(t["createdAt"]), reverse=True)

        skip = (page - 1) * limit
        return {
            "transactions": transactions[skip:skip + limit],
            "pagination": paginate(page, limit, len(transactions)),
            "summary": {
                "totalCreditsAdded": sum(t["amount"] for t in transactions if t["type"] == "credit"),
                "totalCreditsUsed": sum(t["amount"] for t in transactions if t["type"] == "debit"),
                "currentBalance": TokenLedgerService(self.db).get_balance(user_id),
            },
        }


def _sort_key(value):
    if value is None:
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()
