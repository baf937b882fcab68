"""
Shared fixtures: in-memory SQLite, fake gateway/providers, TestClient with dependency overrides.
Environment must be set before anything under app/ is imported (settings are read at import).
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6379/15"
os.environ["SESSION_SECRET"] = "test-session-secret-0123456789"
os.environ["CASHFREE_APP_ID"] = "test-app-id"
os.environ["CASHFREE_SECRET_KEY"] = "test-secret-key"
os.environ["FAL_API_KEY"] = "test-fal-key"
os.environ["KIE_API_KEY"] = "test-kie-key"
os.environ["PURCHASE_RATE_LIMIT"] = "0"
os.environ["CIRCUIT_BREAKER_STORAGE"] = "memory"
os.environ["CB_FAILURE_THRESHOLD"] = "1000"
os.environ["DATABASE_AUTO_CREATE"] = "false"
os.environ["FRONTEND_BASE_URL"] = "http://frontend.test"
os.environ["API_BASE_URL"] = "http://api.test"

import pytest
from fastapi.testclient import TestClient

import app.models  # noqa: F401
from app.db.base import Base
from app.db.session import SessionLocal, engine
from app.models.user import User
from app.services.catalog.service import CatalogService
from app.services.gateway.base import (
    VERDICT_PENDING,
    VERDICT_SUCCESS,
    GatewayStatus,
    PaymentGateway,
    PaymentLink,
)
from app.services.generation.base import (
    TASK_PROCESSING,
    ImageGenerationResponse,
    ImageProvider,
    VideoProvider,
    VideoTaskStatus,
)


class FakeGateway(PaymentGateway):
    def __init__(self):
        self.status = GatewayStatus(verdict=VERDICT_PENDING, raw_status="ACTIVE")
        self.status_side_effect = None
        self.link_error: Exception | None = None
        self.rename_to: str | None = None
        self.signature_ok = False
        self.created: list = []
        self.queried: list[str] = []

    def create_payment_link(self, order, return_url, notify_url, customer):
        if self.link_error is not None:
            raise self.link_error
        self.created.append({"order_id": order.order_id, "return_url": return_url, "notify_url": notify_url})
        link_id = self.rename_to or order.order_id
        return PaymentLink(payment_url=f"https://pay.test/{link_id}", link_id=link_id)

    def query_status(self, order_id):
        self.queried.append(order_id)
        if self.status_side_effect is not None:
            return self.status_side_effect(order_id)
        return self.status

    def verify_webhook_signature(self, raw_body, timestamp, signature):
        return self.signature_ok

    def pay(self, method="upi"):
        self.status = GatewayStatus(verdict=VERDICT_SUCCESS, paid=True, method=method, raw_status="PAID")


class FakeImageProvider(ImageProvider):
    name = "fake-image"

    def __init__(self):
        self.calls = []
        self.error: Exception | None = None

    def generate(self, request):
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        n = len(self.calls)
        return ImageGenerationResponse(
            image_url=f"https://img.test/{n}.jpg",
            image_id=f"fal-{n}",
            model="fal-ai/nano-banana",
            provider=self.name,
        )


class FakeVideoProvider(VideoProvider):
    name = "fake-video"

    def __init__(self):
        self.started = []
        self.credits = 100
        self.credits_error: Exception | None = None
        self.start_error: Exception | None = None
        self.statuses: dict[str, VideoTaskStatus] = {}
        self.status_error: Exception | None = None

    def start(self, request):
        if self.start_error is not None:
            raise self.start_error
        self.started.append(request)
        return f"task-{len(self.started)}"

    def get_status(self, task_id):
        if self.status_error is not None:
            raise self.status_error
        return self.statuses.get(task_id, VideoTaskStatus(task_id=task_id, status=TASK_PROCESSING))

    def get_remaining_credits(self):
        if self.credits_error is not None:
            raise self.credits_error
        return self.credits


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def packages(db):
    CatalogService(db).seed_default_packages()
    db.commit()
    return {p.id: p for p in CatalogService(db).list_active()}


def make_user(db, tokens=0, email=None, name="Test User"):
    user = User(email=email, name=name, tokens=tokens)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user_factory(db):
    def _make(tokens=0, email=None, name="Test User"):
        return make_user(db, tokens=tokens, email=email, name=name)
    return _make


@pytest.fixture
def user(db):
    return make_user(db, email="buyer@example.com")


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def image_provider():
    return FakeImageProvider()


@pytest.fixture
def video_provider():
    return FakeVideoProvider()


@pytest.fixture
def client(db, user, gateway, image_provider, video_provider):
    from app.api.deps import get_image_provider, get_payment_gateway, get_video_provider
    from app.auth.session import get_current_user
    from app.db.session import get_db
    from app.main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_image_provider] = lambda: image_provider
    app.dependency_overrides[get_video_provider] = lambda: video_provider
    test_client = TestClient(app)
    try:
        yield test_client
    finally:
        app.dependency_overrides.clear()

