"""
TokenLedgerService — the only writer of users.tokens.

All changes are single conditional UPDATE statements, so concurrent requests
can never drive a balance below zero. Methods flush but never commit: the
caller owns the transaction and commits the balance change together with the
record that explains it (Payment, Video, Image).
"""
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientTokens
from app.models.user import User

logger = logging.getLogger(__name__)

IMAGE_TARIFF = 1
VIDEO_TARIFF = 10


class TokenLedgerService:
    def __init__(self, db: Session):
        self.db = db

    def get_balance(self, user_id: str) -> int:
        tokens = self.db.query(User.tokens).filter(User.id == user_id).scalar()
        return tokens or 0

    def ensure_balance(self, user_id: str, amount: int) -> int:
        """Early reject before any provider call. Returns the current balance."""
        balance = self.get_balance(user_id)
        if balance < amount:
            logger.info(
                "balance_insufficient",
                extra={"user_id": user_id, "tariff": amount, "balance": balance},
            )
            raise InsufficientTokens(required=amount, balance=balance)
        return balance

    def credit(self, user_id: str, amount: int) -> None:
        """Atomic tokens = tokens + amount. Raises LookupError if the user row is gone."""
        if amount <= 0:
            raise ValueError("credit amount must be positive")
        result = self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(tokens=User.tokens + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise LookupError(f"user {user_id} not found")
        self.db.flush()

    def debit(self, user_id: str, amount: int) -> None:
        """Atomic tokens = tokens - amount WHERE tokens >= amount; InsufficientTokens otherwise."""
        if amount <= 0:
            raise ValueError("debit amount must be positive")
        result = self.db.execute(
            update(User)
            .where(User.id == user_id, User.tokens >= amount)
            .values(tokens=User.tokens - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InsufficientTokens(required=amount, balance=self.get_balance(user_id))
        self.db.flush()
