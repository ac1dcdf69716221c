"""Shared test fixtures."""
import json

import httpx
import pytest

from checkout_tool.api import StorefrontAPI
from checkout_tool.cart import CartItem, CartStore
from checkout_tool.crypto import StoreCrypto
from checkout_tool.forms import CheckoutFormState
from checkout_tool.local_store import LocalStore
from checkout_tool.profile.schema import Address

API_BASE = "http://backend.test/api"


@pytest.fixture
def store(tmp_path):
    """Encrypted local store in a temporary directory."""
    return LocalStore(tmp_path / "store.enc", StoreCrypto(key_path=tmp_path / "test.key"))


@pytest.fixture
def cart(store):
    return CartStore(store)


@pytest.fixture
def sample_item():
    return CartItem(product_id="P1", quantity=2, price=500, name="Linen Kurta", size="M", color="Blue")


@pytest.fixture
def filled_cart(cart, sample_item):
    cart.add_item(sample_item)
    return cart


@pytest.fixture
def sample_addresses():
    return [
        Address.model_validate({
            "_id": "addr-1",
            "type": "Work",
            "name": "Asha Rao",
            "phone": "9876543210",
            "street": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
            "isDefault": False,
        }),
        Address.model_validate({
            "_id": "addr-2",
            "type": "Home",
            "name": "Asha Rao",
            "phone": "9123456780",
            "street": "4 Park Street",
            "city": "Kolkata",
            "state": "West Bengal",
            "pincode": "700016",
            "isDefault": True,
        }),
    ]


@pytest.fixture
def guest_form():
    """A complete guest form with a manually entered address."""
    return CheckoutFormState(
        first_name="Asha",
        last_name="Rao",
        email="a@b.com",
        phone="9876543210",
        address="12 MG Road",
        city="Bengaluru",
        state="Karnataka",
        zip_code="560001",
        payment_method="cod",
        terms_accepted=True,
    )


class RecordingBackend:
    """Routes requests to canned JSON responses and records every call."""

    def __init__(self, routes: dict | None = None):
        self.routes = dict(routes or {})
        self.calls: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"success": False, "message": f"No route for {key}"})
        handler = self.routes[key]
        result = handler(request) if callable(handler) else handler
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.calls]

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content or b"{}") for r in self.calls if r.url.path == path]


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def make_api(backend):
    """Factory for a StorefrontAPI wired to the recording backend."""
    def _make(access_token: str | None = None) -> StorefrontAPI:
        return StorefrontAPI(API_BASE, access_token=access_token, transport=httpx.MockTransport(backend))
    return _make
