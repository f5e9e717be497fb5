import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="storefront-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/storefront_test.db"
os.environ["ENV"] = "dev"
os.environ["ENABLE_METRICS"] = "false"
os.environ["ENABLE_ADMIN"] = "true"
os.environ["WELCOME_COUPON_CODE"] = "WELCOME50"
os.environ["REFERRAL_REWARD"] = "100"

import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient
from sqlmodel import SQLModel
from storefront.config.settings import config_settings
from storefront.db.connection import async_engine
from storefront.image_uploads.dependency import get_image_store
from storefront.image_uploads.services import ImageStore
from storefront.main import create_app
from storefront.payments.gateway import RazorpayGateway, get_payment_gateway
import storefront.schema.full_schema  # noqa: F401  table metadata for drop_all


class FakeGateway(RazorpayGateway):
    """Keeps the real signature checks, replaces the outbound order call."""

    def __init__(self):
        super().__init__(key_id=config_settings.RZPAY_KEY, key_secret=config_settings.RZPAY_SECRET,
                         webhook_secret=config_settings.RAZORPAY_WEBHOOK_SECRET,
                         base_url="https://gateway.invalid/v1", client=httpx.AsyncClient())
        self.created = []

    async def create_order(self, amount_paise, currency, receipt, notes=None, idempotency_key=None):
        self.created.append({"amount": amount_paise, "currency": currency, "receipt": receipt})
        return {"id": f"order_test_{len(self.created)}", "amount": amount_paise, "currency": currency,
                "status": "created"}


class FakeImageStore(ImageStore):

    def __init__(self):
        super().__init__(cloud_name="test-cloud", api_key="key", api_secret="secret", client=httpx.AsyncClient())
        self.destroyed = []

    async def destroy(self, storage_key: str) -> bool:
        self.destroyed.append(storage_key)
        return True


@pytest.fixture
async def fake_gateway():
    gateway = FakeGateway()
    yield gateway
    await gateway.aclose()


@pytest.fixture
async def fake_images():
    store = FakeImageStore()
    yield store
    await store.aclose()


@pytest.fixture
async def app(fake_gateway, fake_images):
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)

    application = create_app()
    application.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    application.dependency_overrides[get_image_store] = lambda: fake_images
    async with LifespanManager(application):
        yield application


@pytest.fixture
async def ac_client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
