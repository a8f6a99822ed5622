import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from main import create_app
from src.api.webhooks.providers.factory import WebhookProviderFactory
from src.config.settings import Settings
from src.database.connection import Database
from src.integrations.outbound_webhooks.dispatcher import OutboundWebhookDispatcher
from tests.constants import (
    ADMIN_API_TOKEN,
    BASE_URL,
    EXTERNAL_API_TOKEN,
    MERCADOPAGO_ACCESS_TOKEN,
    MERCADOPAGO_API_URL,
    MERCADOPAGO_SECRET,
    STRIPE_SECRET,
)
from tests.helpers import FakeMercadoPagoAPI, FakeSubscriberEndpoint


def make_settings(**overrides) -> Settings:
    test_settings = Settings()
    test_settings.ENVIRONMENT = "test"
    test_settings.DATABASE_URL = None
    test_settings.EXTERNAL_API_TOKEN = EXTERNAL_API_TOKEN
    test_settings.ADMIN_API_TOKEN = ADMIN_API_TOKEN
    test_settings.MERCADOPAGO_ACCESS_TOKEN = MERCADOPAGO_ACCESS_TOKEN
    test_settings.MERCADOPAGO_API_URL = MERCADOPAGO_API_URL
    test_settings.MERCADOPAGO_WEBHOOK_SECRET = MERCADOPAGO_SECRET
    test_settings.MERCADOPAGO_SIGNATURE_FORMAT = "manifest"
    test_settings.MERCADOPAGO_WEBHOOK_PATH = "/webhooks/mercadopago"
    test_settings.MERCADOPAGO_SKIP_SIGNATURE_VALIDATION = False
    test_settings.STRIPE_WEBHOOK_SECRET = STRIPE_SECRET
    test_settings.STRIPE_SIGNATURE_TOLERANCE = 300
    test_settings.UNKNOWN_PAYMENT_REVIEW_THRESHOLD = 3
    for key, value in overrides.items():
        setattr(test_settings, key, value)
    return test_settings


@pytest.fixture
def test_settings():
    return make_settings()


@pytest_asyncio.fixture
async def database(tmp_path):
    """A fresh SQLite database file per test."""
    db = Database.from_url(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def mercadopago_api():
    return FakeMercadoPagoAPI()


@pytest.fixture
def subscriber():
    return FakeSubscriberEndpoint()


def build_app(app_settings, database, mercadopago_api, subscriber):
    app = create_app(app_settings)
    app.state.database = database
    app.state.providers = WebhookProviderFactory.from_settings(
        app_settings, transport=mercadopago_api.transport
    )
    app.state.dispatcher = OutboundWebhookDispatcher(database, transport=subscriber.transport)
    return app


@pytest.fixture
def app(test_settings, database, mercadopago_api, subscriber):
    return build_app(test_settings, database, mercadopago_api, subscriber)


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url=BASE_URL) as c:
        yield c


@pytest_asyncio.fixture
async def external_client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=BASE_URL,
        headers={"Authorization": f"Bearer {EXTERNAL_API_TOKEN}"},
    ) as c:
        yield c


@pytest_asyncio.fixture
async def admin_client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url=BASE_URL,
        headers={"Authorization": f"Bearer {ADMIN_API_TOKEN}"},
    ) as c:
        yield c
