"""User profile and saved-address management."""
from .manager import ProfileManager
from .schema import Address, ShippingAddress, UserProfile

__all__ = ["ProfileManager", "Address", "ShippingAddress", "UserProfile"]
