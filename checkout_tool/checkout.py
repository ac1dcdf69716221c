"""
Checkout session — orchestrates one checkout from cart to terminal state.

Cart snapshot -> address / guest-verification gate -> coupon -> order submitter
-> gateway bridge (online payment only) -> status poller -> success | failure.

Every error is recovered here into a Notice and an outcome that names the next
actionable step; nothing propagates out to the caller.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from .address import AddressResolver
from .api import StorefrontAPI
from .browser import BrowserManager
from .cart import CartStore, CouponApplier
from .config import CheckoutConfig
from .crypto import StoreCrypto
from .errors import APIError, CheckoutError, ValidationError, VerificationRequired
from .forms import PAYMENT_METHODS, CheckoutFormState, validate_form
from .gateway import GatewayError, PaymentGatewayBridge
from .guest_verification import GuestVerifier, VerificationResult
from .local_store import LocalStore
from .orders import OrderSubmitter, PaymentSession, build_order_payload
from .poller import CallbackParams, PaymentStatusPoller, PollPhase, PollResult
from .profile import Address, ProfileManager

logger = logging.getLogger(__name__)


@dataclass
class Notice:
    """User-facing message (what the web client showed as a toast)."""
    level: str  # success | error | info
    message: str


@dataclass
class CheckoutOutcome:
    status: str
    message: str
    order_id: str | None = None
    errors: dict[str, str] = field(default_factory=dict)
    next_step: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status, "message": self.message}
        if self.order_id:
            result["order_id"] = self.order_id
        if self.errors:
            result["errors"] = self.errors
        if self.next_step:
            result["next_step"] = self.next_step
        return result


class CheckoutSession:
    """Holds form state and drives the checkout workflow."""

    def __init__(
        self,
        api: StorefrontAPI,
        store: LocalStore,
        cart: CartStore,
        profiles: ProfileManager,
        verifier: GuestVerifier,
        coupons: CouponApplier,
        submitter: OrderSubmitter,
        gateway: PaymentGatewayBridge | None = None,
        config: CheckoutConfig | None = None,
        browser: BrowserManager | None = None,
    ):
        self.api = api
        self.store = store
        self.cart = cart
        self.profiles = profiles
        self.verifier = verifier
        self.coupons = coupons
        self.submitter = submitter
        self.gateway = gateway
        self.config = config or CheckoutConfig()
        self._browser = browser

        self.form = CheckoutFormState()
        self.addresses = AddressResolver(self.form)
        self.notices: list[Notice] = []
        self.processing_order = False
        self.order_placed = False
        self.order_id: str | None = None
        self.payment_session: PaymentSession | None = None
        self._cancel = asyncio.Event()

    @classmethod
    def from_config(cls, config: CheckoutConfig) -> "CheckoutSession":
        """Wire up the real collaborators for a config."""
        api = StorefrontAPI(config.api_base_url, timeout=config.api_timeout, access_token=config.access_token)
        store = LocalStore(config.store_path, StoreCrypto(config.key_path))
        cart = CartStore(store)
        profiles = ProfileManager(api)
        browser = BrowserManager(headless=config.headless)
        gateway = PaymentGatewayBridge(
            browser, store, config.storefront_url,
            mode=config.gateway_mode, timeout=config.gateway_timeout,
        )
        return cls(
            api=api,
            store=store,
            cart=cart,
            profiles=profiles,
            verifier=GuestVerifier(api),
            coupons=CouponApplier(api, cart),
            submitter=OrderSubmitter(api, profiles),
            gateway=gateway,
            config=config,
            browser=browser,
        )

    @property
    def is_guest(self) -> bool:
        return not self.api.is_authenticated

    def _notify(self, level: str, message: str) -> None:
        self.notices.append(Notice(level, message))
        log = logger.warning if level == "error" else logger.info
        log("[%s] %s", level, message)

    def drain_notices(self) -> list[Notice]:
        notices, self.notices = self.notices, []
        return notices

    # ------------------------------------------------------------------
    # Form population
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Prefill contact details and saved addresses for signed-in users."""
        if self.is_guest:
            return
        try:
            profile = await self.profiles.load()
        except CheckoutError as e:
            logger.error("Profile load failed: %s", e.message)
            self._notify("error", "Failed to load your address information")
            return

        self.form.first_name = profile.first_name
        self.form.last_name = profile.last_name
        self.form.phone = profile.phone
        await self.set_email(profile.email)
        self.addresses.load(profile.addresses)

    async def set_auth_token(self, access_token: str | None) -> None:
        """Sign in with a backend token, or sign out with None.

        Guest verification never carries across an identity change.
        """
        self.api.set_auth_token(access_token)
        self.profiles.clear_cache()
        self.verifier.reset()
        if self.api.is_authenticated:
            await self.start()
            return
        self.addresses.load([])
        self.addresses.use_new_address()
        if self.form.email:
            await self.set_email(self.form.email)

    async def set_email(self, email: str) -> None:
        self.form.email = email.strip()
        await self.verifier.on_email_changed(self.form.email, self.is_guest)

    async def set_contact(
        self,
        first_name: str | None = None,
        last_name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
    ) -> None:
        if first_name is not None:
            self.form.first_name = first_name.strip()
        if last_name is not None:
            self.form.last_name = last_name.strip()
        if phone is not None:
            self.form.phone = phone.strip()
        if email is not None:
            await self.set_email(email)

    def set_shipping_fields(self, **fields: Any) -> None:
        """Set manual address fields (address, city, state, zip_code, country, save_address)."""
        allowed = {"address", "city", "state", "zip_code", "country", "save_address"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationError({name: f"Unknown address field: {name}" for name in sorted(unknown)})
        for name, value in fields.items():
            setattr(self.form, name, value.strip() if isinstance(value, str) else value)
        self.addresses.use_new_address()

    def set_payment_method(self, method: str) -> None:
        method = method.strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError({"payment_method": f"Unsupported payment method: {method}"})
        self.form.payment_method = method

    def accept_terms(self, accepted: bool = True) -> None:
        self.form.terms_accepted = accepted

    # ------------------------------------------------------------------
    # Guest verification and coupons
    # ------------------------------------------------------------------

    async def send_otp(self) -> VerificationResult:
        result = await self.verifier.send_otp(self.form.email)
        self._notify("success" if result.success else "error", result.message)
        return result

    async def verify_otp(self, otp: str) -> VerificationResult:
        result = await self.verifier.verify_otp(otp.strip(), self.form.email)
        self._notify("success" if result.success else "error", result.message)
        return result

    async def apply_coupon(self, code: str):
        result = await self.coupons.apply(code)
        if result.success:
            self._notify("success", "Coupon applied successfully")
        else:
            self._notify("error", result.error or "Failed to apply coupon. Please try again.")
        return result

    async def remove_coupon(self):
        result = await self.coupons.remove()
        self._notify("info", "Coupon removed")
        return result

    # ------------------------------------------------------------------
    # Resuming a pending order
    # ------------------------------------------------------------------

    async def resume_order(self, order_id: str) -> CheckoutOutcome:
        """Prefill the form from an existing order whose payment is still pending."""
        try:
            response = await self.api.get_order(order_id)
        except APIError as e:
            logger.error("Fetching order %s failed: %s", order_id, e.message)
            self._notify("error", "Failed to load order details. Please try again.")
            return CheckoutOutcome("error", "Failed to load order details. Please try again.", order_id=order_id)

        if not response.get("success"):
            self._notify("error", "Could not load order details. Please try again.")
            return CheckoutOutcome("error", "Could not load order details. Please try again.", order_id=order_id)

        order = response.get("data") or {}
        payment_status = (order.get("payment") or {}).get("status")
        if payment_status and payment_status != "PENDING":
            self._notify("info", "This order has already been processed.")
            return CheckoutOutcome(
                "processed", "This order has already been processed.",
                order_id=order_id, next_step="View the order in your account order history",
            )

        shipping_address = (order.get("shipping") or {}).get("address")
        if shipping_address:
            self.addresses.use_new_address()
            self.addresses.prefill_from(Address.model_validate(shipping_address))
            if shipping_address.get("email"):
                await self.set_email(shipping_address["email"])

        self.order_id = order_id
        return CheckoutOutcome("resumed", "Order details loaded", order_id=order_id, next_step="place_order")

    # ------------------------------------------------------------------
    # Placing the order
    # ------------------------------------------------------------------

    async def place_order(self) -> CheckoutOutcome:
        if self.processing_order:
            return CheckoutOutcome("rejected", "Your order is already being processed")

        if self.is_guest and not self.verifier.is_verified_for(self.form.email):
            message = VerificationRequired().message
            self._notify("error", message)
            return CheckoutOutcome("rejected", message, next_step="send_otp")

        errors = validate_form(self.form)
        if errors:
            first = next(iter(errors.values()))
            self._notify("error", first)
            return CheckoutOutcome("invalid", first, errors=errors)

        cart = self.cart.snapshot()
        if cart.is_empty:
            message = "Your cart is empty. Please add items to your cart before checkout."
            self._notify("error", message)
            return CheckoutOutcome("rejected", message, next_step="add_to_cart")

        self.processing_order = True
        try:
            return await self._submit(cart)
        finally:
            self.processing_order = False

    async def _submit(self, cart) -> CheckoutOutcome:
        try:
            resolved = self.addresses.resolve()
            guest_session = self.cart.get_guest_session_id(create=True) if self.is_guest else None
            payload = build_order_payload(
                self.form, cart, resolved,
                is_guest=self.is_guest,
                guest_session_id=guest_session,
                default_gst_rate=self.config.default_gst_rate,
            )
            new_address = None
            if not self.is_guest and self.form.save_address and not self.form.use_existing_address:
                new_address = self.addresses.new_address_for_profile()
            result = await self.submitter.submit(payload, new_address)
        except ValidationError as e:
            self._notify("error", e.message)
            return CheckoutOutcome("invalid", e.message, errors=e.errors)
        except CheckoutError as e:
            message = f"Failed to place order: {e.message or 'Unknown error'}"
            self._notify("error", message)
            return CheckoutOutcome("error", message, next_step="place_order")

        self.order_id = result.order_id
        if result.payment_session is None:
            self.order_placed = True
            if self.store.mark_cart_cleared(result.order_id):
                await self.clear_cart()
            self._notify("success", "Order placed successfully")
            return CheckoutOutcome("placed", "Order placed successfully", order_id=result.order_id)

        self.payment_session = result.payment_session
        return await self._pay(result.payment_session)

    async def _pay(self, session: PaymentSession) -> CheckoutOutcome:
        if self.gateway is None:
            self._notify("error", "Payment gateway is not loaded. Please try again.")
            return CheckoutOutcome(
                "payment_error", "Payment gateway is not loaded. Please try again.",
                order_id=session.order_id, next_step="check_payment_status",
            )

        outcome = await self.gateway.initialize(session.payment_session_id, session.order_id)
        if isinstance(outcome, GatewayError):
            self._notify("error", "Payment failed. Please try again.")
            return CheckoutOutcome(
                "payment_error", outcome.message,
                order_id=session.order_id, next_step="check_payment_status",
            )
        # Success and failure redirects both go through the poller; the backend decides.
        return await self.confirm_payment(callback_url=outcome.callback_url, order_id=outcome.order_id)

    # ------------------------------------------------------------------
    # Payment confirmation
    # ------------------------------------------------------------------

    async def confirm_payment(self, callback_url: str | None = None, order_id: str | None = None) -> CheckoutOutcome:
        """Run the status poller for a gateway redirect or a pending order."""
        params = CallbackParams.from_url(callback_url, self.store, order_id=order_id)

        poller = PaymentStatusPoller(
            self.api, self.store,
            on_paid=self.clear_cart,
            interval=self.config.poll_interval,
            max_retries=self.config.poll_retries,
        )
        result = await poller.run(params, cancel=self._cancel)
        return self._payment_outcome(result)

    def _payment_outcome(self, result: PollResult) -> CheckoutOutcome:
        if result.phase is PollPhase.SUCCESS:
            self.order_placed = True
            self.order_id = result.order_id
            message = "Payment successful! Your order has been placed."
            self._notify("success", message)
            return CheckoutOutcome("paid", message, order_id=result.order_id)

        if result.cancelled:
            return CheckoutOutcome(
                "payment_pending", "Payment verification was interrupted",
                order_id=result.order_id, next_step="check_payment_status",
            )

        if result.timed_out:
            self._notify("info", result.error)
            return CheckoutOutcome(
                "payment_unverified", result.error,
                order_id=result.order_id, next_step="Check your order status in your account order history",
            )

        self._notify("error", result.error or "Payment failed. Please try again.")
        next_step = "place_order" if result.order_id else "Return to the shop"
        return CheckoutOutcome("payment_failed", result.error or "", order_id=result.order_id, next_step=next_step)

    async def clear_cart(self) -> None:
        """Clear the backend cart (best effort) and the local cart."""
        guest_session = self.cart.get_guest_session_id()
        if self.api.is_authenticated or guest_session:
            try:
                await self.api.clear_cart(guest_session)
            except APIError as e:
                logger.warning("Backend cart clear failed: %s", e.message)
        self.cart.clear()

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Stop any in-flight payment polling at its next wait."""
        self._cancel.set()

    async def close(self) -> None:
        self.cancel()
        if self._browser is not None:
            await self._browser.close()
        await self.api.close()
