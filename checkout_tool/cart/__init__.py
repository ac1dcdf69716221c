"""Cart state, totals, and coupons."""
from .coupons import CouponApplier, CouponResult
from .schema import CartItem, CartSnapshot
from .store import CartStore

__all__ = ["CartItem", "CartSnapshot", "CartStore", "CouponApplier", "CouponResult"]
