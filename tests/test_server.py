"""Tests for MCP server tool registration and dispatch."""
import json

import pytest
from unittest.mock import AsyncMock, patch

import checkout_tool.server as server_module
from checkout_tool.cart import CouponApplier
from checkout_tool.checkout import CheckoutOutcome, CheckoutSession
from checkout_tool.config import CheckoutConfig
from checkout_tool.guest_verification import GuestVerifier
from checkout_tool.orders import OrderSubmitter
from checkout_tool.profile import ProfileManager
from checkout_tool.server import call_tool, list_tools


EXPECTED_TOOLS = [
    "view_cart",
    "add_to_cart",
    "remove_from_cart",
    "apply_coupon",
    "remove_coupon",
    "set_contact",
    "set_shipping_address",
    "list_addresses",
    "use_saved_address",
    "use_new_address",
    "send_otp",
    "verify_otp",
    "set_payment_method",
    "accept_terms",
    "place_order",
    "check_payment_status",
    "resume_order",
    "set_auth_token",
]


@pytest.fixture
def session(make_api, store, cart, tmp_path):
    """Install a session backed by the recording backend as the server singleton."""
    api = make_api()
    profiles = ProfileManager(api)
    session = CheckoutSession(
        api=api,
        store=store,
        cart=cart,
        profiles=profiles,
        verifier=GuestVerifier(api),
        coupons=CouponApplier(api, cart),
        submitter=OrderSubmitter(api, profiles),
        config=CheckoutConfig(poll_interval=0, state_dir=tmp_path),
    )
    server_module._session = session
    server_module._session_started = True
    yield session
    server_module._session = None
    server_module._session_started = False


async def _call(name: str, arguments: dict | None = None) -> dict:
    result = await call_tool(name, arguments or {})
    return json.loads(result[0].text)


@pytest.mark.asyncio
async def test_list_tools_returns_all_eighteen():
    tools = await list_tools()
    names = [t.name for t in tools]
    assert len(tools) == 18
    for expected in EXPECTED_TOOLS:
        assert expected in names, f"Missing tool: {expected}"


@pytest.mark.asyncio
async def test_all_tools_have_schemas():
    tools = await list_tools()
    for tool in tools:
        assert tool.description, f"{tool.name} missing description"
        assert tool.inputSchema["type"] == "object"


@pytest.mark.asyncio
async def test_unknown_tool(session):
    result = await call_tool("nonexistent_tool", {})
    assert "Unknown tool" in result[0].text


class TestCartTools:
    @pytest.mark.asyncio
    async def test_add_and_view_cart(self, session):
        added = await _call("add_to_cart", {"product_id": "P1", "price": 500, "quantity": 2, "size": "M"})
        assert added["status"] == "added"
        assert added["sku"] == "P1-M-default"

        viewed = await _call("view_cart")
        assert viewed["cart"]["subtotal"] == 1000
        assert viewed["cart"]["total"] == 1000
        assert viewed["cart"]["gst"]["label"] == "18%"

    @pytest.mark.asyncio
    async def test_invalid_item_rejected(self, session):
        result = await _call("add_to_cart", {"product_id": "P1", "price": -5})
        assert result["status"] == "invalid"
        assert session.cart.snapshot().is_empty

    @pytest.mark.asyncio
    async def test_remove_missing_sku(self, session):
        result = await _call("remove_from_cart", {"sku": "nope"})
        assert result["status"] == "not_found"

    @pytest.mark.asyncio
    async def test_coupon_rejection_carries_notice(self, session, backend):
        backend.routes[("POST", "/api/promotions/verify-coupon")] = {"success": False}
        result = await _call("apply_coupon", {"code": "BOGUS"})
        assert result["status"] == "rejected"
        assert result["notices"] == ["error: Invalid coupon code"]


class TestCheckoutTools:
    @pytest.mark.asyncio
    async def test_place_order_blocks_unverified_guest(self, session, backend):
        result = await _call("place_order")
        assert result["status"] == "rejected"
        assert result["next_step"] == "send_otp"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_unsupported_payment_method(self, session):
        result = await _call("set_payment_method", {"method": "bitcoin"})
        assert result["status"] == "invalid"
        assert "payment_method" in result["errors"]

    @pytest.mark.asyncio
    async def test_set_shipping_address_switches_to_manual(self, session):
        session.form.use_existing_address = True
        result = await _call("set_shipping_address", {
            "address": "12 MG Road", "city": "Bengaluru", "state": "Karnataka", "zip_code": "560001",
        })
        assert result["checkout"]["address_source"] == "new"
        assert session.form.city == "Bengaluru"

    @pytest.mark.asyncio
    async def test_list_addresses_for_guest(self, session):
        result = await _call("list_addresses")
        assert result["status"] == "guest"

    @pytest.mark.asyncio
    async def test_use_saved_address_without_addresses(self, session):
        result = await _call("use_saved_address")
        assert result["status"] == "invalid"

    @pytest.mark.asyncio
    async def test_check_payment_status_delegates(self, session):
        with patch.object(
            session, "confirm_payment",
            AsyncMock(return_value=CheckoutOutcome("paid", "Payment successful!", order_id="ORD-1")),
        ) as confirm:
            result = await _call("check_payment_status", {"order_id": "ORD-1"})
        confirm.assert_awaited_once_with(callback_url=None, order_id="ORD-1")
        assert result == {"status": "paid", "message": "Payment successful!", "order_id": "ORD-1"}

    @pytest.mark.asyncio
    async def test_contact_output_is_sanitized(self, session, backend):
        backend.routes[("GET", "/api/guest-verification/check/a@b.com")] = {"success": True, "data": {"verified": False}}
        result = await _call("set_contact", {"email": "a@b.com", "phone": "9876543210"})
        assert result["checkout"]["phone"] == "******3210"
        assert result["checkout"]["email_verified"] is False


class TestDispatchErrors:
    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error_text(self, session):
        with patch.object(session, "place_order", AsyncMock(side_effect=RuntimeError("boom"))):
            result = await call_tool("place_order", {})
        assert result[0].text == "Error: boom"

    @pytest.mark.asyncio
    async def test_debug_log_written(self, session, tmp_path):
        with patch.object(server_module, "_DEBUG_LOG_DIR", tmp_path / "debug"):
            await call_tool("view_cart", {})
        logs = list((tmp_path / "debug").glob("session_*.log"))
        assert len(logs) == 1
        assert "TOOL: view_cart" in logs[0].read_text()

    @pytest.mark.asyncio
    async def test_debug_log_omits_secrets(self, session, tmp_path):
        with patch.object(server_module, "_DEBUG_LOG_DIR", tmp_path / "debug"):
            await call_tool("verify_otp", {"otp": "482913"})
            await call_tool("set_auth_token", {"access_token": "tok-9f8e7d6c"})
        text = next((tmp_path / "debug").glob("session_*.log")).read_text()
        assert "TOOL: set_auth_token" in text
        assert "482913" not in text
        assert "tok-9f8e7d6c" not in text

    @pytest.mark.asyncio
    async def test_session_started_once(self, session):
        server_module._session_started = False
        session.start = AsyncMock()
        await call_tool("view_cart", {})
        await call_tool("view_cart", {})
        session.start.assert_awaited_once()
