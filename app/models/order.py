"""
Order model — purchase intent tied to an external payment link.
order_id is the gateway-facing identifier; it may be replaced by the gateway's canonical id
when the link is created.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from app.db.base import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    package_id = Column(String, nullable=False)
    plan_name = Column(String, nullable=False)           # package name at purchase time (display only)
    amount = Column(Integer, nullable=False)             # package price at purchase time
    currency = Column(String, nullable=False, default="INR")
    status = Column(String, nullable=False, default="pending")  # pending / completed / failed
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
