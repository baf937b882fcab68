"""
TokenPackage model — purchasable token bundles.
Seeded by the administrator (scripts/seed_packages.py); read-only on the request path.
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.db.base import Base


class TokenPackage(Base):
    __tablename__ = "token_packages"

    id = Column(String, primary_key=True)  # "starter" / "growth" / "pro" / "agency"
    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    tokens = Column(Integer, nullable=False)                  # tokens credited per purchase
    price = Column(Integer, nullable=False)                   # in whole currency units (INR)
    currency = Column(String, nullable=False, default="INR")
    is_active = Column(Boolean, nullable=False, default=True)
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
