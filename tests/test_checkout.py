"""End-to-end tests for the checkout session against a recorded backend."""
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from checkout_tool.cart import CartItem, CouponApplier
from checkout_tool.checkout import CheckoutSession
from checkout_tool.config import CheckoutConfig
from checkout_tool.gateway import GatewayError, GatewaySuccess
from checkout_tool.guest_verification import GuestVerifier, VerificationState
from checkout_tool.orders import OrderSubmitter
from checkout_tool.profile import ProfileManager

SUCCESS_URL = "http://shop.test/payment/success.html?orderId=ORD-8&txStatus=SUCCESS"

PROFILE = {
    "success": True,
    "data": {
        "user": {
            "name": "Asha Rao",
            "email": "asha@example.com",
            "whatsappNumber": "9876543210",
            "addresses": [
                {
                    "_id": "addr-1",
                    "name": "Asha Rao",
                    "phone": "9876543210",
                    "street": "12 MG Road",
                    "city": "Bengaluru",
                    "state": "Karnataka",
                    "pincode": "560001",
                    "isDefault": True,
                },
            ],
        },
    },
}


@pytest.fixture
def make_session(make_api, store, cart, tmp_path):
    def _make(access_token: str | None = None, gateway=None) -> CheckoutSession:
        api = make_api(access_token=access_token)
        profiles = ProfileManager(api)
        return CheckoutSession(
            api=api,
            store=store,
            cart=cart,
            profiles=profiles,
            verifier=GuestVerifier(api),
            coupons=CouponApplier(api, cart),
            submitter=OrderSubmitter(api, profiles),
            gateway=gateway,
            config=CheckoutConfig(poll_interval=0, state_dir=tmp_path),
        )
    return _make


def _fill_guest(session: CheckoutSession, guest_form) -> None:
    for name, value in guest_form.model_dump().items():
        setattr(session.form, name, value)


def _gateway(outcome) -> MagicMock:
    gateway = MagicMock()
    gateway.initialize = AsyncMock(return_value=outcome)
    return gateway


class TestGuestGate:
    @pytest.mark.asyncio
    async def test_unverified_guest_makes_no_call(self, backend, make_session, filled_cart, guest_form):
        session = make_session()
        _fill_guest(session, guest_form)

        outcome = await session.place_order()

        assert outcome.status == "rejected"
        assert outcome.next_step == "send_otp"
        assert session.notices[-1].message == "Please verify your email before proceeding with checkout"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_otp_round_trip_unlocks_checkout(self, backend, make_session, guest_form):
        backend.routes[("GET", "/api/guest-verification/check/a@b.com")] = {"success": True, "data": {"verified": False}}
        backend.routes[("POST", "/api/guest-verification/send-otp")] = {"success": True}
        backend.routes[("POST", "/api/guest-verification/verify-otp")] = {"success": True}
        session = make_session()

        await session.set_contact(email="a@b.com")
        await session.send_otp()
        assert session.verifier.show_otp_form
        result = await session.verify_otp(" 123456 ")

        assert result.verified
        assert session.verifier.is_verified
        assert not session.verifier.show_otp_form

    @pytest.mark.asyncio
    async def test_verification_does_not_survive_sign_in_and_out(
        self, backend, make_session, filled_cart, guest_form,
    ):
        backend.routes[("GET", "/api/auth/profile")] = PROFILE
        backend.routes[("GET", "/api/guest-verification/check/asha@example.com")] = {
            "success": True, "data": {"verified": False},
        }
        session = make_session()
        _fill_guest(session, guest_form)
        session.verifier.email = "a@b.com"
        session.verifier.state = VerificationState.VERIFIED

        await session.set_auth_token("tok")
        assert session.form.email == "asha@example.com"
        await session.set_auth_token(None)

        outcome = await session.place_order()

        assert session.is_guest
        assert outcome.status == "rejected"
        assert outcome.next_step == "send_otp"
        assert not any(path.startswith("/api/orders") for path in backend.paths())

    @pytest.mark.asyncio
    async def test_verified_email_must_match_form(self, backend, make_session, filled_cart, guest_form):
        session = make_session()
        _fill_guest(session, guest_form)
        session.form.email = "other@example.com"
        session.verifier.email = "a@b.com"
        session.verifier.state = VerificationState.VERIFIED

        outcome = await session.place_order()

        assert outcome.status == "rejected"
        assert backend.calls == []


class TestPlaceOrder:
    @pytest.mark.asyncio
    async def test_validation_errors_make_no_call(self, backend, make_session, filled_cart, guest_form):
        session = make_session(access_token="tok")
        guest_form.terms_accepted = False
        guest_form.city = ""
        _fill_guest(session, guest_form)

        outcome = await session.place_order()

        assert outcome.status == "invalid"
        assert outcome.errors == {
            "city": "City is required",
            "terms_accepted": "You must accept the terms and conditions",
        }
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_empty_cart_rejected(self, backend, make_session, guest_form):
        session = make_session(access_token="tok")
        _fill_guest(session, guest_form)
        outcome = await session.place_order()
        assert outcome.status == "rejected"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_single_flight(self, backend, make_session, filled_cart, guest_form):
        session = make_session(access_token="tok")
        _fill_guest(session, guest_form)
        session.processing_order = True
        outcome = await session.place_order()
        assert outcome.status == "rejected"
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_verified_guest_cod_order(self, backend, make_session, filled_cart, guest_form):
        session = make_session()
        _fill_guest(session, guest_form)
        session.verifier.email = "a@b.com"
        session.verifier.state = VerificationState.VERIFIED
        backend.routes[("POST", "/api/orders/guest")] = {"success": True, "data": {"order": {"_id": "ORD-5"}}}
        guest_session = filled_cart.get_guest_session_id(create=True)
        backend.routes[("DELETE", f"/api/cart/guest/{guest_session}")] = {"success": True}

        outcome = await session.place_order()

        assert outcome.status == "placed"
        assert outcome.order_id == "ORD-5"
        assert session.order_placed
        assert filled_cart.snapshot().is_empty
        body = backend.bodies("/api/orders/guest")[0]
        assert body["guestSessionId"] == guest_session
        assert body["isGuestCheckout"] is True
        assert not session.processing_order

    @pytest.mark.asyncio
    async def test_order_failure_allows_retry(self, backend, make_session, filled_cart, guest_form):
        session = make_session(access_token="tok")
        _fill_guest(session, guest_form)
        backend.routes[("POST", "/api/orders")] = httpx.Response(400, json={"success": False, "message": "Out of stock"})

        outcome = await session.place_order()

        assert outcome.status == "error"
        assert outcome.message == "Failed to place order: Out of stock"
        assert outcome.next_step == "place_order"
        assert not session.processing_order
        assert not filled_cart.snapshot().is_empty


class TestGatewayPayment:
    @pytest.mark.asyncio
    async def test_signed_in_gateway_payment(self, backend, make_session, filled_cart):
        backend.routes[("GET", "/api/auth/profile")] = PROFILE
        backend.routes[("POST", "/api/orders")] = {
            "success": True, "data": {"orderId": "ORD-8", "paymentSessionId": "sess-8"},
        }
        backend.routes[("POST", "/api/orders/payment/callback")] = {
            "success": True, "data": {"paymentStatus": "PAID", "orderStatus": "CONFIRMED"},
        }
        backend.routes[("DELETE", "/api/cart")] = {"success": True}
        gateway = _gateway(GatewaySuccess(order_id="ORD-8", callback_url=SUCCESS_URL))
        session = make_session(access_token="tok", gateway=gateway)

        await session.start()
        assert session.form.first_name == "Asha"
        assert session.form.selected_address_id == "addr-1"
        session.accept_terms()

        outcome = await session.place_order()

        assert outcome.status == "paid"
        assert outcome.order_id == "ORD-8"
        gateway.initialize.assert_awaited_once_with("sess-8", "ORD-8")
        order = backend.bodies("/api/orders")[0]
        assert order["addressId"] == "addr-1"
        assert "address" not in order["shipping"]
        assert backend.paths().count("/api/cart") == 1
        assert filled_cart.snapshot().is_empty

    @pytest.mark.asyncio
    async def test_gateway_error_points_to_status_check(self, backend, make_session, filled_cart, guest_form):
        backend.routes[("POST", "/api/orders")] = {
            "success": True, "data": {"orderId": "ORD-9", "paymentToken": "sess-9"},
        }
        gateway = _gateway(GatewayError(order_id="ORD-9", message="Payment window timed out"))
        session = make_session(access_token="tok", gateway=gateway)
        guest_form.payment_method = "cashfree"
        _fill_guest(session, guest_form)

        outcome = await session.place_order()

        assert outcome.status == "payment_error"
        assert outcome.next_step == "check_payment_status"
        assert not filled_cart.snapshot().is_empty

    @pytest.mark.asyncio
    async def test_unverified_payment_after_timeout(self, backend, make_session, store):
        store.set_pending_order_id("ORD-11")
        backend.routes[("POST", "/api/orders/payment/callback")] = {
            "success": True, "data": {"paymentStatus": "PENDING"},
        }
        session = make_session(access_token="tok")

        outcome = await session.confirm_payment()

        assert outcome.status == "payment_unverified"
        assert outcome.order_id == "ORD-11"
        assert backend.paths().count("/api/orders/payment/callback") == 6

    @pytest.mark.asyncio
    async def test_repeated_status_check_clears_cart_once(self, backend, make_session, filled_cart):
        backend.routes[("POST", "/api/orders/payment/callback")] = {
            "success": True, "data": {"paymentStatus": "PAID", "orderStatus": "CONFIRMED"},
        }
        backend.routes[("DELETE", "/api/cart")] = {"success": True}
        session = make_session(access_token="tok")

        first = await session.confirm_payment(order_id="ORD-8")
        filled_cart.add_item(CartItem(product_id="P2", quantity=1, price=300, name="Cotton Dupatta"))
        second = await session.confirm_payment(order_id="ORD-8")

        assert first.status == second.status == "paid"
        assert [item.product_id for item in filled_cart.snapshot().items] == ["P2"]
        assert backend.paths().count("/api/cart") == 1

    @pytest.mark.asyncio
    async def test_explicit_order_id_wins_over_pending(self, backend, make_session, store):
        store.set_pending_order_id("ORD-A")
        backend.routes[("POST", "/api/orders/payment/callback")] = {
            "success": True, "data": {"paymentStatus": "FAILED"},
        }
        session = make_session(access_token="tok")

        outcome = await session.confirm_payment(order_id="ORD-B")

        assert outcome.order_id == "ORD-B"
        assert backend.bodies("/api/orders/payment/callback")[0]["orderId"] == "ORD-B"


class TestStartAndResume:
    @pytest.mark.asyncio
    async def test_profile_failure_becomes_notice(self, backend, make_session):
        backend.routes[("GET", "/api/auth/profile")] = httpx.Response(500, json={"message": "db down"})
        session = make_session(access_token="tok")
        await session.start()
        assert session.notices[-1].message == "Failed to load your address information"

    @pytest.mark.asyncio
    async def test_guest_start_skips_profile(self, backend, make_session):
        await make_session().start()
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_resume_processed_order(self, backend, make_session):
        backend.routes[("GET", "/api/orders/ORD-3")] = {"success": True, "data": {"payment": {"status": "PAID"}}}
        session = make_session(access_token="tok")
        outcome = await session.resume_order("ORD-3")
        assert outcome.status == "processed"
        assert session.notices[-1].message == "This order has already been processed."

    @pytest.mark.asyncio
    async def test_resume_pending_order_prefills(self, backend, make_session):
        backend.routes[("GET", "/api/orders/ORD-4")] = {
            "success": True,
            "data": {
                "payment": {"status": "PENDING"},
                "shipping": {
                    "address": {
                        "name": "Ravi Kumar",
                        "email": "ravi@example.com",
                        "phone": "9000000001",
                        "street": "7 Anna Salai",
                        "city": "Chennai",
                        "state": "Tamil Nadu",
                        "pincode": "600002",
                    },
                },
            },
        }
        session = make_session(access_token="tok")
        outcome = await session.resume_order("ORD-4")
        assert outcome.status == "resumed"
        assert session.form.first_name == "Ravi"
        assert session.form.city == "Chennai"
        assert session.form.email == "ravi@example.com"
        assert not session.form.use_existing_address
