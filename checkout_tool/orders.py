"""
Order submitter.

Builds the normalized order payload from the form, cart snapshot and resolved
address, sends it to the order-creation endpoint, and normalizes the response
into an order reference. Gateway payments come back as a PaymentSession for
the gateway bridge; everything else is a confirmed order.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .address import ResolvedAddress
from .api import StorefrontAPI
from .cart.schema import CartSnapshot
from .errors import APIError, CheckoutError, ValidationError
from .forms import CheckoutFormState
from .gst import DEFAULT_GST_RATE
from .profile.manager import ProfileManager
from .profile.schema import Address

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Customer"
PLACEHOLDER_EMAIL = "guest@example.com"
PLACEHOLDER_PHONE = "0000000000"

GATEWAY_METHODS = {"CASHFREE"}

# Response contract v1: order id may sit at any of these paths. Kept as a
# migration shim until the backend returns a single shape.
_ORDER_ID_PATHS: tuple[tuple[str, ...], ...] = (
    ("orderId",),
    ("order_id",),
    ("order", "_id"),
    ("order", "id"),
    ("order", "order_id"),
    ("paymentDetails", "orderId"),
    ("_id",),
)
_SESSION_TOKEN_KEYS = ("paymentToken", "paymentSessionId", "payment_session_id")


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    product_id: str = Field(serialization_alias="productId")
    variant_sku: str = Field(serialization_alias="variantSku")
    qty: int
    price: float
    gst_rate: float = Field(serialization_alias="gstRate")


class OrderPayload(BaseModel):
    """Body for POST /orders. Built once per attempt, never mutated."""
    model_config = ConfigDict(frozen=True)

    items: tuple[OrderItem, ...]
    shipping: dict[str, Any]
    payment: dict[str, Any]
    coupon_code: str | None = Field(default=None, serialization_alias="couponCode")
    address_id: str | None = Field(default=None, serialization_alias="addressId")
    customer_name: str = Field(serialization_alias="customerName")
    customer_email: str = Field(serialization_alias="customerEmail")
    customer_phone: str = Field(serialization_alias="customerPhone")
    is_guest_checkout: bool = Field(serialization_alias="isGuestCheckout")
    guest_session_id: str | None = Field(default=None, serialization_alias="guestSessionId")
    subtotal: float
    total: float

    @property
    def payment_method(self) -> str:
        return self.payment["method"]

    @property
    def uses_gateway(self) -> bool:
        return self.payment_method in GATEWAY_METHODS

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class OrderRef:
    order_id: str
    payment_session_id: str | None = None
    synthesized: bool = False


@dataclass(frozen=True)
class PaymentSession:
    """Handoff from order creation to the gateway bridge."""
    order_id: str
    payment_session_id: str
    synthesized: bool = False


@dataclass
class OrderResult:
    success: bool
    data: dict[str, Any]
    order_id: str
    payment_session: PaymentSession | None = None

    @property
    def requires_payment(self) -> bool:
        return self.payment_session is not None


def normalize_payment_method(method: str) -> tuple[str, dict[str, Any]]:
    """Map a form payment method to the backend's method name and details."""
    if method == "cashfree":
        return "CASHFREE", {}
    if method == "cod":
        return "COD", {"codCharge": 0}
    return method.upper(), {}


def build_order_payload(
    form: CheckoutFormState,
    cart: CartSnapshot,
    resolved: ResolvedAddress,
    is_guest: bool,
    guest_session_id: str | None = None,
    default_gst_rate: float = DEFAULT_GST_RATE,
) -> OrderPayload:
    """Assemble the order payload. Same inputs always give the same payload."""
    if (resolved.address_id is None) == (resolved.shipping is None):
        raise CheckoutError("Exactly one shipping address source is required")

    items = tuple(
        OrderItem(
            product_id=item.product_id,
            variant_sku=item.resolved_sku(),
            qty=item.quantity,
            price=item.price,
            gst_rate=item.gst_rate if item.gst_rate is not None else default_gst_rate,
        )
        for item in cart.items
    )

    shipping: dict[str, Any] = {"method": "Standard", "cost": cart.shipping_cost}
    if resolved.shipping is not None:
        shipping["address"] = resolved.shipping.model_dump()

    method, details = normalize_payment_method(form.payment_method)
    if method in GATEWAY_METHODS:
        # The gateway needs real contact details; placeholders are for COD only
        missing = {}
        if not form.email:
            missing["email"] = "Email is required for online payment"
        if not form.phone:
            missing["phone"] = "Phone number is required for online payment"
        if missing:
            raise ValidationError(missing)

    name = form.full_name or (resolved.saved.name if resolved.saved else "")
    return OrderPayload(
        items=items,
        shipping=shipping,
        payment={"method": method, "details": details},
        coupon_code=cart.coupon_code or None,
        address_id=resolved.address_id,
        customer_name=name or PLACEHOLDER_NAME,
        customer_email=form.email or PLACEHOLDER_EMAIL,
        customer_phone=form.phone or PLACEHOLDER_PHONE,
        is_guest_checkout=is_guest,
        guest_session_id=guest_session_id if is_guest else None,
        subtotal=cart.subtotal,
        total=cart.total,
    )


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def extract_order_ref(data: dict[str, Any] | None, now_ms: int | None = None) -> OrderRef:
    """
    Normalize an order-creation response into an OrderRef.

    Looks at the top level first, then a nested ``data`` object. When no id is
    found anywhere a fallback ``ORDER-<epoch-ms>`` is synthesized and flagged.
    """
    data = data or {}
    scopes = [data]
    if isinstance(data.get("data"), dict):
        scopes.append(data["data"])

    token = None
    for scope in scopes:
        token = next((scope[k] for k in _SESSION_TOKEN_KEYS if scope.get(k)), None)
        if token:
            break

    for scope in scopes:
        for path in _ORDER_ID_PATHS:
            value = _dig(scope, path)
            if value:
                return OrderRef(order_id=str(value), payment_session_id=token)

    fallback = f"ORDER-{now_ms if now_ms is not None else int(time.time() * 1000)}"
    logger.warning("Order response had no recognizable id; using fallback %s", fallback)
    return OrderRef(order_id=fallback, payment_session_id=token, synthesized=True)


class OrderSubmitter:
    """Sends order payloads to the backend."""

    def __init__(self, api: StorefrontAPI, profiles: ProfileManager | None = None):
        self._api = api
        self._profiles = profiles

    async def submit(self, payload: OrderPayload, new_address: Address | None = None) -> OrderResult:
        """
        Create the order.

        Args:
            payload: Normalized order payload
            new_address: Manually entered address to save to the profile first

        Returns:
            OrderResult; ``payment_session`` is set for gateway payments

        Raises:
            CheckoutError / APIError when the order was not created
        """
        if new_address is not None and self._profiles is not None:
            await self._save_address(new_address)

        logger.info(
            "Submitting order: %d items, method=%s, guest=%s",
            len(payload.items), payload.payment_method, payload.is_guest_checkout,
        )
        response = await self._api.create_order(payload.to_json())
        if not response.get("success"):
            raise CheckoutError(response.get("error") or response.get("message") or "Failed to complete checkout")

        data = response.get("data") or {}
        ref = extract_order_ref(data)

        if not payload.uses_gateway:
            logger.info("Order %s confirmed (%s)", ref.order_id, payload.payment_method)
            return OrderResult(success=True, data=data, order_id=ref.order_id)

        if not ref.payment_session_id:
            logger.error("Gateway order created without a payment session token")
            raise CheckoutError("Payment initialization failed. Please try again.")

        session = PaymentSession(
            order_id=ref.order_id,
            payment_session_id=ref.payment_session_id,
            synthesized=ref.synthesized,
        )
        logger.info("Order %s awaiting gateway payment", ref.order_id)
        return OrderResult(success=True, data=data, order_id=ref.order_id, payment_session=session)

    async def _save_address(self, address: Address) -> None:
        try:
            await self._profiles.add_address(address)
            logger.info("Saved new address to profile")
        except APIError as e:
            logger.warning("Saving address failed, continuing checkout: %s", e.message)
