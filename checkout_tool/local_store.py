"""Encrypted key/value store for state that must survive a restart.

Plays the role of browser local storage: the pending order id written before the
payment redirect, the cart, and the guest session id.
"""
import logging
from pathlib import Path
from typing import Any

from .crypto import StoreCrypto

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path.home() / ".config" / "checkout-tool" / "store.enc"

PENDING_ORDER_KEY = "pendingOrderId"
CART_KEY = "cart"
GUEST_SESSION_KEY = "guestSessionId"
CLEARED_ORDERS_KEY = "clearedOrderIds"

MAX_CLEARED_ORDERS = 50


class LocalStore:
    """Single-writer key/value store, encrypted at rest."""

    def __init__(self, path: Path | None = None, crypto: StoreCrypto | None = None):
        self._path = path or DEFAULT_STORE_PATH
        self._crypto = crypto or StoreCrypto()
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            if self._path.exists():
                self._data = self._crypto.decrypt(self._path.read_bytes())
            else:
                self._data = {}
        return self._data

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(self._crypto.encrypt(self._load()))

    def get_item(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set_item(self, key: str, value: Any) -> None:
        self._load()[key] = value
        self._flush()
        logger.debug("Stored %s", key)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._flush()
            logger.debug("Removed %s", key)

    def clear(self) -> None:
        self._data = {}
        self._flush()

    # Pending order slot

    def get_pending_order_id(self) -> str | None:
        return self.get_item(PENDING_ORDER_KEY)

    def set_pending_order_id(self, order_id: str) -> None:
        self.set_item(PENDING_ORDER_KEY, str(order_id))

    def clear_pending_order_id(self) -> None:
        self.remove_item(PENDING_ORDER_KEY)

    # Orders whose cart has already been cleared after payment

    def mark_cart_cleared(self, order_id: str) -> bool:
        """Record that the cart was cleared for an order. False if it already was."""
        cleared = list(self.get_item(CLEARED_ORDERS_KEY, []))
        if order_id in cleared:
            return False
        cleared.append(order_id)
        self.set_item(CLEARED_ORDERS_KEY, cleared[-MAX_CLEARED_ORDERS:])
        return True
