"""
Storefront REST client.

Thin async wrapper over httpx for the backend endpoints the checkout flow
consumes. Every method returns the decoded JSON envelope
(`{"success": ..., "data": ..., "message": ...}`); non-2xx responses and
transport failures raise APIError carrying the backend's message.
"""
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .errors import APIError

logger = logging.getLogger(__name__)


def _backend_message(payload: dict[str, Any], default: str) -> str:
    """Pick the human-readable message out of an error envelope."""
    for key in ("message", "error"):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
        if isinstance(value, dict) and value.get("message"):
            return value["message"]
    return default


class StorefrontAPI:
    """HTTP client for the storefront backend."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        access_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        self._access_token: str | None = None
        self.set_auth_token(access_token)
        logger.info("Storefront API client initialized: %s", self._base_url)

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    def set_auth_token(self, access_token: str | None) -> None:
        """Attach or drop the bearer token used for authenticated calls."""
        self._access_token = access_token or None
        if self._access_token:
            self._client.headers["Authorization"] = f"Bearer {self._access_token}"
        else:
            self._client.headers.pop("Authorization", None)

    async def request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise APIError(f"Network error: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {"data": payload}

        if response.is_error:
            message = _backend_message(payload, f"Request failed with status {response.status_code}")
            logger.warning("%s %s -> HTTP %d: %s", method, path, response.status_code, message)
            raise APIError(message, status_code=response.status_code, payload=payload)

        logger.debug("%s %s -> HTTP %d", method, path, response.status_code)
        return payload

    async def get(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, json: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: dict[str, Any] | None = None, **kwargs: Any) -> dict[str, Any]:
        return await self.request("PUT", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> dict[str, Any]:
        return await self.request("DELETE", path, **kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Profile and addresses
    # ------------------------------------------------------------------

    async def get_profile(self) -> dict[str, Any]:
        return await self.get("/auth/profile")

    async def add_address(self, address: dict[str, Any]) -> dict[str, Any]:
        return await self.post("/auth/address", json=address)

    async def update_address(self, address_id: str, address: dict[str, Any]) -> dict[str, Any]:
        return await self.put(f"/auth/address/{quote(address_id, safe='')}", json=address)

    async def delete_address(self, address_id: str) -> dict[str, Any]:
        return await self.delete(f"/auth/address/{quote(address_id, safe='')}")

    # ------------------------------------------------------------------
    # Guest verification
    # ------------------------------------------------------------------

    async def send_guest_otp(self, email: str) -> dict[str, Any]:
        return await self.post("/guest-verification/send-otp", json={"email": email})

    async def verify_guest_otp(self, email: str, otp: str) -> dict[str, Any]:
        return await self.post("/guest-verification/verify-otp", json={"email": email, "otp": otp})

    async def check_guest_verification(self, email: str) -> dict[str, Any]:
        return await self.get(f"/guest-verification/check/{quote(email, safe='@')}")

    # ------------------------------------------------------------------
    # Cart and coupons
    # ------------------------------------------------------------------

    async def verify_coupon(self, code: str) -> dict[str, Any]:
        return await self.post("/promotions/verify-coupon", json={"couponCode": code})

    async def apply_cart_coupon(self, code: str, guest_session_id: str | None = None) -> dict[str, Any]:
        if self.is_authenticated:
            return await self.post("/cart/apply-coupon", json={"code": code})
        return await self.post(f"/cart/guest/{guest_session_id}/apply-coupon", json={"code": code})

    async def remove_cart_coupon(self, guest_session_id: str | None = None) -> dict[str, Any]:
        if self.is_authenticated:
            return await self.post("/cart/remove-coupon")
        return await self.post(f"/cart/guest/{guest_session_id}/remove-coupon")

    async def clear_cart(self, guest_session_id: str | None = None) -> dict[str, Any]:
        if self.is_authenticated:
            return await self.delete("/cart")
        return await self.delete(f"/cart/guest/{guest_session_id}")

    # ------------------------------------------------------------------
    # Orders and payment
    # ------------------------------------------------------------------

    async def create_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        endpoint = "/orders" if self.is_authenticated else "/orders/guest"
        return await self.post(endpoint, json=payload)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        return await self.get(f"/orders/{quote(order_id, safe='')}")

    async def payment_callback(
        self,
        order_id: str,
        tx_status: str,
        payment_id: str | None = None,
    ) -> dict[str, Any]:
        """Submit a gateway redirect or poll for the final payment status."""
        return await self.post(
            "/orders/payment/callback",
            json={"orderId": order_id, "paymentId": payment_id, "txStatus": tx_status},
            headers={"X-Source": "frontend"},
        )
