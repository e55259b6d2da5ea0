"""Shared pytest fixtures for the tales test suite."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from tales.core.config import Settings
from tales.db.memory_store import MemoryEntitlementStore
from tales.db.session import init_db, make_session_factory
from tales.db.sql_store import SqlEntitlementStore
from tales.schemas.project import Page
from tales.services.paystack import PaystackClient, compute_signature

SECRET_KEY = "sk_test_secret"


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings():
    """Settings with a test Paystack key, the launch discount code and no external storage."""
    return Settings(
        app_env="test",
        database_url="",
        app_base_url="https://tales.test",
        paystack_secret_key=SECRET_KEY,
        paystack_base_url="https://paystack.test",
        currency="NGN",
        discount_codes="SHIROI:5",
        elevenlabs_api_key="",
        azure_storage_account="",
        azure_storage_account_key="",
    )


# ---------------------------------------------------------------------------
# Store fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def memory_store():
    return MemoryEntitlementStore()


@pytest.fixture
def sql_store(tmp_path):
    """SQL store backed by a temp-file SQLite database."""
    factory = make_session_factory(f"sqlite:///{tmp_path / 'tales.db'}")
    init_db(factory)
    return SqlEntitlementStore(factory)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Runs a test against both backends."""
    if request.param == "memory":
        return request.getfixturevalue("memory_store")
    return request.getfixturevalue("sql_store")


def make_pages(count: int = 3, secret: bool = False) -> list[Page]:
    pages = [Page(title=f"Step {i + 1}", body=f"Body {i + 1}", signature="") for i in range(count)]
    if secret:
        pages[-1] = pages[-1].model_copy(update={"secret": True})
    return pages


@pytest.fixture
def free_project(memory_store):
    """papyrus + romantic + 3 pages: 1500 export."""
    return memory_store.create_project("papyrus", "romantic", pages=make_pages(3))


@pytest.fixture
def premium_project(memory_store):
    """papyrus + heartbreak (premium vibe) + 3 pages: 2000 premium."""
    return memory_store.create_project("papyrus", "heartbreak", pages=make_pages(3))


# ---------------------------------------------------------------------------
# Paystack fakes
# ---------------------------------------------------------------------------

class FakePaystack:
    """httpx transport standing in for the Paystack REST API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.verify_data: dict = {}
        self.verify_status = True

    def set_charge(self, reference: str, amount_minor: int, metadata, status: str = "success"):
        self.verify_data[reference] = {
            "status": status,
            "reference": reference,
            "amount": amount_minor,
            "currency": "NGN",
            "metadata": metadata,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/transaction/initialize":
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "message": "Authorization URL created",
                    "data": {
                        "authorization_url": f"https://checkout.paystack.test/{body['reference']}",
                        "access_code": "ac_test",
                        "reference": body["reference"],
                    },
                },
            )
        if request.url.path.startswith("/transaction/verify/"):
            reference = request.url.path.rsplit("/", 1)[-1]
            data = self.verify_data.get(reference)
            if data is None:
                return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})
            return httpx.Response(200, json={"status": self.verify_status, "message": "Verification successful", "data": data})
        return httpx.Response(404, json={"status": False, "message": "Not found"})

    def client(self) -> PaystackClient:
        return PaystackClient(SECRET_KEY, "https://paystack.test", transport=httpx.MockTransport(self.handler))


@pytest.fixture
def paystack():
    return FakePaystack()


@pytest.fixture
def provider(paystack):
    return paystack.client()


def signed_event(event: str, data: dict, secret: str = SECRET_KEY) -> tuple[bytes, str]:
    """Webhook body and its x-paystack-signature."""
    raw = json.dumps({"event": event, "data": data}).encode("utf-8")
    return raw, compute_signature(secret, raw)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest.fixture
def api(settings, memory_store, provider):
    """TestClient over an app wired to the in-memory store and the fake Paystack."""
    from tales.main import create_app
    from tales.services.paystack import get_payment_provider

    app = create_app(settings=settings, store=memory_store)
    app.dependency_overrides[get_payment_provider] = lambda: provider
    return TestClient(app)
