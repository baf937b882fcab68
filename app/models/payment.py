"""
Payment model — settlement record, at most one per order.
order_id is unique: an existing row means the order was already settled.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(String, unique=True, nullable=False)        # gateway-facing order id
    order_internal_id = Column(String, nullable=False, index=True)  # orders.id
    user_id = Column(String, nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False)                       # success / failed
    payment_method = Column(String, nullable=True)
    payment_time = Column(DateTime(timezone=True), nullable=True)  # set only on success
    failure_reason = Column(String, nullable=True)
    tokens_granted = Column(Integer, nullable=False, default=0)    # tokens credited by this settlement
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
