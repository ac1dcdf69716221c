"""Coupon applier — verify a code with the backend and update the cart store."""
import logging
from dataclasses import dataclass

from ..api import StorefrontAPI
from ..errors import APIError
from .store import CartStore

logger = logging.getLogger(__name__)


@dataclass
class CouponResult:
    success: bool
    error: str | None = None
    code: str | None = None
    discount: float = 0.0


def compute_discount(subtotal: float, discount_type: str, discount_value: float) -> float:
    """Percentage or fixed discount, never more than the subtotal."""
    if discount_type == "percentage":
        discount = subtotal * discount_value / 100
    else:
        discount = discount_value
    return round(min(max(discount, 0.0), subtotal), 2)


class CouponApplier:
    """Applies and removes coupons. The local discount is advisory only."""

    def __init__(self, api: StorefrontAPI, cart: CartStore):
        self._api = api
        self._cart = cart

    async def apply(self, code: str) -> CouponResult:
        code = (code or "").strip()
        if not code:
            return CouponResult(success=False, error="Please enter a coupon code")

        try:
            response = await self._api.verify_coupon(code)
        except APIError as e:
            logger.warning("Coupon %s rejected: %s", code, e.message)
            return CouponResult(success=False, error=e.message or "Failed to apply coupon")

        if not response.get("success"):
            return CouponResult(success=False, error=response.get("error") or "Invalid coupon code")

        data = response.get("data") or {}
        subtotal = self._cart.snapshot().subtotal
        minimum = data.get("minimumPurchase")
        if minimum and subtotal < float(minimum):
            return CouponResult(
                success=False,
                error=f"Minimum purchase of ₹{int(float(minimum))} required for this coupon",
            )

        discount = compute_discount(
            subtotal,
            data.get("discountType", "fixed"),
            float(data.get("discountValue", 0)),
        )
        self._cart.set_coupon(code, discount)
        logger.info("Coupon %s applied: discount %.2f", code, discount)

        await self._sync_backend_cart(code)
        return CouponResult(success=True, code=code, discount=discount)

    async def remove(self) -> CouponResult:
        """Drop the coupon locally; the backend detach is best effort."""
        self._cart.clear_coupon()
        guest_session = self._cart.get_guest_session_id()
        if self._api.is_authenticated or guest_session:
            try:
                await self._api.remove_cart_coupon(guest_session)
            except APIError as e:
                logger.warning("Backend coupon removal failed: %s", e.message)
        return CouponResult(success=True)

    async def _sync_backend_cart(self, code: str) -> None:
        guest_session = self._cart.get_guest_session_id()
        if not self._api.is_authenticated and not guest_session:
            return
        try:
            await self._api.apply_cart_coupon(code, guest_session)
        except APIError as e:
            logger.warning("Could not attach coupon %s to backend cart: %s", code, e.message)
