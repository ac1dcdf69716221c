"""
Payment-gateway bridge for Cashfree hosted checkout.

Wraps the vendor's callback-style JS SDK in a single awaitable: the checkout is
rendered in a Playwright page served at the storefront origin, and the bridge
waits for the redirect to one of the callback pages. The result is a tagged
union (GatewaySuccess | GatewayFailure | GatewayError). The bridge never
finalizes an order; the payment status poller does that after the redirect.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Literal, Union
from urllib.parse import parse_qs, quote, urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import BrowserManager
from .local_store import LocalStore

logger = logging.getLogger(__name__)

CASHFREE_SDK_URL = "https://sdk.cashfree.com/js/v3/cashfree.js"
CHECKOUT_COMPONENTS = ["order-details", "card", "upi", "app", "netbanking", "paylater"]
FAILED_TX_STATUSES = {"FAILED", "FAILURE", "CANCELLED", "USER_DROPPED"}

_GATEWAY_PAGE = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<title>Secure payment</title>
<script src="{sdk_url}"></script>
</head>
<body>
<script>
window.__startCheckout = function (opts) {{
  function fail(message) {{
    window.location.href = opts.failureUrl + "&error=" + encodeURIComponent(message);
  }}
  var cashfree = window.Cashfree({{ mode: opts.mode }});
  cashfree.checkout({{
    paymentSessionId: opts.paymentSessionId,
    orderId: opts.orderId,
    redirectTarget: "_self",
    components: opts.components
  }}).then(function (result) {{
    if (result && result.error) {{
      fail(result.error.message || "Payment failed");
    }} else if (result && result.paymentDetails) {{
      window.location.href = opts.successUrl;
    }}
  }}).catch(function (error) {{
    fail((error && error.message) || "Payment error");
  }});
}};
</script>
</body>
</html>
"""


@dataclass(frozen=True)
class GatewaySuccess:
    order_id: str
    payment_id: str | None = None
    tx_status: str | None = None
    callback_url: str = ""
    kind: Literal["success"] = field(default="success", init=False)


@dataclass(frozen=True)
class GatewayFailure:
    order_id: str
    message: str = "Payment failed"
    callback_url: str = ""
    kind: Literal["failure"] = field(default="failure", init=False)


@dataclass(frozen=True)
class GatewayError:
    order_id: str
    message: str
    kind: Literal["error"] = field(default="error", init=False)


GatewayOutcome = Union[GatewaySuccess, GatewayFailure, GatewayError]


def parse_callback_url(url: str, order_id: str) -> GatewayOutcome:
    """Classify the URL the gateway redirected to."""
    parsed = urlparse(url)
    params = {k: v[0] for k, v in parse_qs(parsed.query).items() if v}
    resolved_id = params.get("orderId") or params.get("order_id") or order_id
    tx_status = (params.get("txStatus") or "").upper() or None
    error = params.get("error")

    if parsed.path.endswith("failure.html") or error or tx_status in FAILED_TX_STATUSES:
        return GatewayFailure(order_id=resolved_id, message=error or "Payment failed", callback_url=url)
    return GatewaySuccess(
        order_id=resolved_id,
        payment_id=params.get("paymentId"),
        tx_status=tx_status,
        callback_url=url,
    )


class PaymentGatewayBridge:
    """Opens the hosted checkout and awaits the redirect back to the storefront."""

    def __init__(
        self,
        browser: BrowserManager,
        store: LocalStore,
        storefront_url: str,
        mode: str = "sandbox",
        timeout: float = 900.0,
    ):
        self._browser = browser
        self._store = store
        self._storefront_url = storefront_url.rstrip("/")
        self._mode = mode
        self._timeout = timeout

    def callback_urls(self, order_id: str) -> tuple[str, str]:
        """Success and failure URLs, both carrying the order id."""
        encoded = quote(str(order_id), safe="")
        return (
            f"{self._storefront_url}/payment/success.html?orderId={encoded}",
            f"{self._storefront_url}/payment/failure.html?orderId={encoded}",
        )

    def _is_callback_url(self, url: str) -> bool:
        path = urlparse(url).path
        return url.startswith(self._storefront_url) and (
            path.endswith("/payment/success.html")
            or path.endswith("/payment/failure.html")
            or path.endswith("/payment/callback")
        )

    async def initialize(self, session_token: str, order_id: str) -> GatewayOutcome:
        """
        Run the hosted checkout for one order.

        Persists the pending order id first so the status poller can recover it
        after a restart, then awaits the gateway redirect.
        """
        order_id = str(order_id)
        self._store.set_pending_order_id(order_id)
        success_url, failure_url = self.callback_urls(order_id)
        options = {
            "mode": self._mode,
            "paymentSessionId": session_token,
            "orderId": order_id,
            "components": CHECKOUT_COMPONENTS,
            "successUrl": success_url,
            "failureUrl": failure_url,
        }

        page = None
        try:
            page = await self._browser.new_page()
            gateway_url = f"{self._storefront_url}/__checkout__/{quote(order_id, safe='')}"
            await self._browser.serve_html(page, gateway_url, _GATEWAY_PAGE.format(sdk_url=CASHFREE_SDK_URL))

            if await page.evaluate("typeof window.Cashfree") != "function":
                logger.error("Cashfree SDK failed to load")
                return GatewayError(order_id=order_id, message="Payment gateway is not loaded. Please try again.")

            logger.info("Opening %s checkout for order %s", self._mode, order_id)
            await page.evaluate(f"window.__startCheckout({json.dumps(options)})")
            await page.wait_for_url(self._is_callback_url, wait_until="commit", timeout=self._timeout * 1000)
            outcome = parse_callback_url(page.url, order_id)
            logger.info("Gateway returned %s for order %s", outcome.kind, order_id)
            return outcome

        except PlaywrightTimeoutError:
            logger.warning("Gateway checkout timed out for order %s", order_id)
            return GatewayError(order_id=order_id, message="Payment window timed out")
        except PlaywrightError as e:
            logger.error("Gateway checkout failed for order %s: %s", order_id, e)
            return GatewayError(order_id=order_id, message=f"Payment error: {e}")
        finally:
            if page is not None:
                await self._browser.close_page(page)
