"""Cart store: the injected source of cart and coupon state."""
import logging
import secrets
import time

from ..local_store import CART_KEY, GUEST_SESSION_KEY, LocalStore
from .schema import CartItem, CartSnapshot

logger = logging.getLogger(__name__)


class CartStore:
    """Holds cart lines and the applied coupon, persisted to the local store."""

    def __init__(self, store: LocalStore):
        self._store = store
        saved = store.get_item(CART_KEY) or {}
        self._items: list[CartItem] = [CartItem(**item) for item in saved.get("items", [])]
        self._coupon_code: str | None = saved.get("couponCode")
        self._coupon_discount: float = float(saved.get("couponDiscount", 0.0))

    def _persist(self) -> None:
        self._store.set_item(CART_KEY, {
            "items": [item.model_dump() for item in self._items],
            "couponCode": self._coupon_code,
            "couponDiscount": self._coupon_discount,
        })

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            items=tuple(self._items),
            coupon_code=self._coupon_code,
            discount=self._coupon_discount,
        )

    @property
    def coupon_code(self) -> str | None:
        return self._coupon_code

    @property
    def coupon_discount(self) -> float:
        return self._coupon_discount

    def add_item(self, item: CartItem) -> None:
        """Add a line, merging quantity into an existing line with the same SKU."""
        for i, existing in enumerate(self._items):
            if existing.resolved_sku() == item.resolved_sku():
                self._items[i] = existing.model_copy(update={"quantity": existing.quantity + item.quantity})
                break
        else:
            self._items.append(item)
        self._persist()
        logger.info("Cart: added %dx %s", item.quantity, item.resolved_sku())

    def remove_item(self, sku: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.resolved_sku() != sku]
        if len(self._items) == before:
            return False
        self._persist()
        return True

    def set_coupon(self, code: str, discount: float) -> None:
        self._coupon_code = code
        self._coupon_discount = discount
        self._persist()

    def clear_coupon(self) -> None:
        self._coupon_code = None
        self._coupon_discount = 0.0
        self._persist()

    def clear(self) -> None:
        """Empty the cart and drop any coupon."""
        self._items = []
        self._coupon_code = None
        self._coupon_discount = 0.0
        self._persist()
        logger.info("Cart cleared")

    def get_guest_session_id(self, create: bool = False) -> str | None:
        session_id = self._store.get_item(GUEST_SESSION_KEY)
        if session_id is None and create:
            session_id = f"guest-{int(time.time() * 1000)}-{secrets.token_hex(6)}"
            self._store.set_item(GUEST_SESSION_KEY, session_id)
        return session_id
