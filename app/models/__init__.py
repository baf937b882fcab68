from app.models.audit_log import AuditLog
from app.models.image import Image
from app.models.order import Order
from app.models.payment import Payment
from app.models.token_package import TokenPackage
from app.models.user import User
from app.models.video import Video

__all__ = [
    "AuditLog",
    "Image",
    "Order",
    "Payment",
    "TokenPackage",
    "User",
    "Video",
]
