from typing import Any

from sqlalchemy.orm import Session

from app.models.audit_log import AuditLog
from app.models.order import Order

SEVERITY_INFO = "info"
SEVERITY_SECURITY = "security"


class AuditService:
    def __init__(self, db: Session) -> None:
        self.db = db

    def log(
        self,
        action: str,
        entity_type: str,
        entity_id: str | None,
        payload: dict[str, Any] | None = None,
        actor_type: str = "system",
        actor_id: str | None = None,
        severity: str = SEVERITY_INFO,
        commit: bool = True,
    ) -> AuditLog:
        """Record an audit entry. commit=False joins the caller's transaction."""
        entry = AuditLog(
            severity=severity,
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            payload=payload or {},
        )
        self.db.add(entry)
        if commit:
            self.db.commit()
            self.db.refresh(entry)
        else:
            self.db.flush()
        return entry

    def flag_order(
        self,
        order: Order,
        action: str,
        details: dict[str, Any] | None = None,
        commit: bool = False,
    ) -> AuditLog:
        """Security flag on an order; the payload always names the order and its owner."""
        payload = {
            "order_id": order.order_id,
            "user_id": order.user_id,
            "package_id": order.package_id,
            "amount": order.amount,
        }
        payload.update(details or {})
        return self.log(
            action=action,
            entity_type="order",
            entity_id=order.id,
            payload=payload,
            severity=SEVERITY_SECURITY,
            commit=commit,
        )

    def list_for_entity(self, entity_type: str, entity_id: str) -> list[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.asc())
            .all()
        )

    def list_security_flags(self, limit: int = 100) -> list[AuditLog]:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.severity == SEVERITY_SECURITY)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
            .all()
        )
