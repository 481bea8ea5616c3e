"""
Pytest configuration and fixtures
"""
import asyncio
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest

# Add src to path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Set test environment variables before importing
os.environ["ENV"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["STORE_BACKEND"] = "memory"
os.environ["UPLOAD_PATH"] = tempfile.mkdtemp(prefix="listing-wizard-uploads-")
os.environ["PUBLIC_UPLOAD_URL"] = "http://testserver/uploads"
os.environ["PROXY_BASE_URL"] = "http://proxy.test"
os.environ["CORS_ORIGINS"] = "*"
os.environ.pop("CLOUDFLARE_ACCOUNT_ID", None)
os.environ.pop("CLOUDFLARE_API_TOKEN", None)

# Import after setting env vars
from listing_wizard.schemas import ExtractedProduct, SEOOptimization, UploadedImage  # noqa: E402
from listing_wizard.services.kv_store import InMemoryKeyValueStore  # noqa: E402
from listing_wizard.services.project_store import ProjectStore  # noqa: E402
from listing_wizard.services.remote_client import RemoteServiceClient  # noqa: E402
from listing_wizard.services.subscription_service import SubscriptionService  # noqa: E402
from listing_wizard.services.usage_meter import UsageMeter  # noqa: E402


class FrozenClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime):
        self.now = now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeRemoteClient(RemoteServiceClient):
    """
    Scriptable RemoteServiceClient

    Set `error` to make every call fail, `delay` to make calls slow, or `gate`
    (an asyncio.Event created inside the running loop) to hold calls until set.
    """

    def __init__(self):
        self.product = ExtractedProduct(
            title="Acme Steel Water Bottle",
            description="<p>Keeps drinks <b>cold</b> for 24 hours.</p>",
            features=["Double-wall insulation", "Leak-proof lid"],
            brand="Acme",
            price="$24.99",
        )
        self.seo = SEOOptimization(
            keywords=["water bottle", "insulated bottle"],
            highlights=["*BPA free* steel"],
            explanation="High-traffic terms for the category",
        )
        self.enhanced_description = "<p><strong>Capacity:</strong> 750 ml</p>"
        self.error: Optional[Exception] = None
        self.delay = 0.0
        self.gate: Optional[asyncio.Event] = None
        self.calls = []
        self._upload_count = 0

    async def _respond(self, name, value):
        self.calls.append(name)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return value

    async def extract_product_data(self, url):
        return await self._respond("extract_product_data", self.product)

    async def optimize_seo(self, title, plain_text_description, use_web_context=True):
        return await self._respond("optimize_seo", self.seo)

    async def enhance_description(self, plain_text_description):
        return await self._respond("enhance_description", self.enhanced_description)

    async def upload_image(self, file_bytes, content_type="image/png"):
        self._upload_count += 1
        url = f"https://img.example.com/{self._upload_count}.png"
        return await self._respond("upload_image", UploadedImage(url=url))

    async def take_screenshot(self, url):
        return await self._respond("take_screenshot", b"\x89PNG")

    async def scrape_content(self, url, selector):
        return await self._respond("scrape_content", [])

    async def extract_links(self, url):
        return await self._respond("extract_links", [])

    async def extract_page_content(self, url):
        return await self._respond("extract_page_content", "<html></html>")


@pytest.fixture
def frozen_clock():
    """Clock frozen at 2025-03-15 12:00 UTC"""
    return FrozenClock(datetime(2025, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def kv_store():
    """Fresh in-memory key-value store"""
    return InMemoryKeyValueStore()


@pytest.fixture
def project_store(kv_store):
    return ProjectStore(kv_store)


@pytest.fixture
def subscription_service(kv_store, frozen_clock):
    return SubscriptionService(kv_store, clock=frozen_clock)


@pytest.fixture
def usage_meter(kv_store, subscription_service, frozen_clock):
    return UsageMeter(kv_store, subscription_service, clock=frozen_clock)


@pytest.fixture
def fake_remote():
    return FakeRemoteClient()


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def wizard_sessions(project_store, usage_meter, fake_remote):
    """Wizard session registry whose controllers use the fake remote client"""
    from listing_wizard.services.wizard_controller import WizardController
    from listing_wizard.services.wizard_sessions import WizardSessionRegistry

    return WizardSessionRegistry(lambda: WizardController(project_store, usage_meter, fake_remote, timeout=1.0))


@pytest.fixture
def app_client(project_store, subscription_service, usage_meter, upload_dir, wizard_sessions):
    """
    TestClient with in-memory services

    AI and browser providers are absent unless a test overrides them.
    """
    from fastapi.testclient import TestClient
    from listing_wizard import dependencies
    from listing_wizard.app import app
    from listing_wizard.services.storage_provider import LocalDiskStorageProvider

    storage = LocalDiskStorageProvider(base_path=str(upload_dir), public_url="http://testserver/uploads")

    app.dependency_overrides[dependencies.get_project_store] = lambda: project_store
    app.dependency_overrides[dependencies.get_subscription_service] = lambda: subscription_service
    app.dependency_overrides[dependencies.get_usage_meter] = lambda: usage_meter
    app.dependency_overrides[dependencies.get_ai_provider] = lambda: None
    app.dependency_overrides[dependencies.get_browser_provider] = lambda: None
    app.dependency_overrides[dependencies.get_storage_provider] = lambda: storage
    app.dependency_overrides[dependencies.get_wizard_sessions] = lambda: wizard_sessions

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client

    app.dependency_overrides.clear()
