"""
Payment status poller.

After the gateway redirect, asks the backend for the authoritative payment
status until it is terminal or the retry budget runs out. State machine:
PROCESSING -> SUCCESS | FAILED, with no way back once terminal.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlparse

from .api import StorefrontAPI
from .errors import APIError
from .local_store import LocalStore

logger = logging.getLogger(__name__)

STATUS_CHECK = "STATUS_CHECK"
TIMEOUT_MESSAGE = "Payment verification timed out. Please check your order status in your account."
FAILED_MESSAGE = "Payment failed. Please try again."


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


_STATUS_SYNONYMS = {
    "PAID": PaymentStatus.PAID,
    "SUCCESS": PaymentStatus.PAID,
    "CAPTURED": PaymentStatus.PAID,
    "AUTHORIZED": PaymentStatus.PAID,
    "FAILED": PaymentStatus.FAILED,
    "FAILURE": PaymentStatus.FAILED,
    "CANCELLED": PaymentStatus.FAILED,
}


def normalize_payment_status(raw: str | None) -> PaymentStatus:
    """Fold gateway-specific status names into PENDING / PAID / FAILED."""
    return _STATUS_SYNONYMS.get((raw or "").upper(), PaymentStatus.PENDING)


class PollPhase(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class CallbackParams:
    """Identifiers gathered from the gateway redirect."""
    order_id: str | None
    payment_id: str | None = None
    tx_status: str | None = None
    error: str | None = None

    @classmethod
    def from_url(
        cls, url: str | None, store: LocalStore | None = None, order_id: str | None = None,
    ) -> "CallbackParams":
        """Read the redirect query. An explicit order id wins, then the URL's, then the stored pending id."""
        params: dict[str, str] = {}
        if url:
            params = {k: v[0] for k, v in parse_qs(urlparse(url).query).items() if v}
        order_id = order_id or params.get("orderId")
        if not order_id and store is not None:
            order_id = store.get_pending_order_id()
        return cls(
            order_id=order_id,
            payment_id=params.get("paymentId"),
            tx_status=params.get("txStatus"),
            error=params.get("error"),
        )

    @property
    def initial_tx_status(self) -> str:
        if self.error:
            return "FAILED"
        return self.tx_status or STATUS_CHECK


@dataclass
class PollResult:
    phase: PollPhase
    order_id: str | None
    payment_status: str | None = None
    order_status: str | None = None
    error: str | None = None
    attempts: int = 0
    cancelled: bool = False

    @property
    def timed_out(self) -> bool:
        return self.phase is PollPhase.FAILED and self.error == TIMEOUT_MESSAGE


class PaymentStatusPoller:
    """Bounded, single-flight status loop with a cancellation event."""

    def __init__(
        self,
        api: StorefrontAPI,
        store: LocalStore,
        on_paid: Callable[[], Awaitable[None]],
        interval: float = 2.0,
        max_retries: int = 5,
    ):
        self._api = api
        self._store = store
        self._on_paid = on_paid
        self._interval = interval
        self._max_retries = max_retries

    async def run(self, params: CallbackParams, cancel: asyncio.Event | None = None) -> PollResult:
        """
        Poll until PAID, FAILED, cancellation, or the retry budget is spent.

        The first request carries the redirect's txStatus; each retry is a
        STATUS_CHECK sent after a fixed delay. Errors count as "still pending".
        """
        if not params.order_id:
            return PollResult(phase=PollPhase.FAILED, order_id=None, error="No order ID found for payment verification.")

        order_id = params.order_id
        tx_status = params.initial_tx_status
        attempts = 0
        last_payment_status = None
        last_order_status = None

        while True:
            attempts += 1
            try:
                response = await self._api.payment_callback(order_id, tx_status, params.payment_id)
            except APIError as e:
                logger.warning("Payment status check %d for %s failed: %s", attempts, order_id, e.message)
                response = None

            if response and response.get("success"):
                data = response.get("data") or {}
                last_payment_status = data.get("paymentStatus")
                last_order_status = data.get("orderStatus")
                status = normalize_payment_status(last_payment_status)

                if status is PaymentStatus.PAID:
                    self._store.clear_pending_order_id()
                    await self._clear_cart_once(order_id)
                    logger.info("Payment for %s confirmed after %d checks", order_id, attempts)
                    return PollResult(
                        phase=PollPhase.SUCCESS, order_id=order_id,
                        payment_status=last_payment_status, order_status=last_order_status,
                        attempts=attempts,
                    )
                if status is PaymentStatus.FAILED:
                    self._store.clear_pending_order_id()
                    logger.info("Payment for %s failed", order_id)
                    return PollResult(
                        phase=PollPhase.FAILED, order_id=order_id,
                        payment_status=last_payment_status, order_status=last_order_status,
                        error=params.error or FAILED_MESSAGE, attempts=attempts,
                    )

            retries_used = attempts - 1
            if retries_used >= self._max_retries:
                logger.warning("Payment verification for %s timed out after %d retries", order_id, retries_used)
                return PollResult(
                    phase=PollPhase.FAILED, order_id=order_id,
                    payment_status=last_payment_status, order_status=last_order_status,
                    error=TIMEOUT_MESSAGE, attempts=attempts,
                )

            if await self._wait(cancel):
                logger.info("Payment polling for %s cancelled", order_id)
                return PollResult(
                    phase=PollPhase.PROCESSING, order_id=order_id,
                    payment_status=last_payment_status, order_status=last_order_status,
                    attempts=attempts, cancelled=True,
                )
            tx_status = STATUS_CHECK

    async def _wait(self, cancel: asyncio.Event | None) -> bool:
        """Sleep one interval. Returns True if cancelled meanwhile."""
        if cancel is None:
            await asyncio.sleep(self._interval)
            return False
        if cancel.is_set():
            return True
        try:
            await asyncio.wait_for(cancel.wait(), timeout=self._interval)
            return True
        except asyncio.TimeoutError:
            return False

    async def _clear_cart_once(self, order_id: str) -> None:
        if not self._store.mark_cart_cleared(order_id):
            logger.debug("Cart already cleared for %s", order_id)
            return
        await self._on_paid()
