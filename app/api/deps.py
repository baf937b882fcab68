"""
External collaborators as FastAPI dependencies, so tests can override them.
"""
from app.services.gateway.base import PaymentGateway
from app.services.gateway.cashfree import CashfreeGateway
from app.services.generation.base import ImageProvider, VideoProvider
from app.services.generation.providers.fal import FalImageProvider
from app.services.generation.providers.kie_veo import KieVeoProvider


def get_payment_gateway() -> PaymentGateway:
    return CashfreeGateway()


def get_image_provider() -> ImageProvider:
    return FalImageProvider()


def get_video_provider() -> VideoProvider:
    return KieVeoProvider()
