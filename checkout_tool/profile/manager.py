"""Profile manager — load the user profile and manage saved addresses."""
import logging

from ..api import StorefrontAPI
from ..errors import CheckoutError
from ..output_sanitizer import redact_email, redact_phone
from .schema import Address, UserProfile

logger = logging.getLogger(__name__)


class ProfileManager:
    """Reads the authenticated profile and performs address CRUD."""

    def __init__(self, api: StorefrontAPI):
        self._api = api
        self._cached: UserProfile | None = None

    async def load(self) -> UserProfile:
        """Fetch the profile (cached until clear_cache or an address change)."""
        if self._cached:
            return self._cached
        response = await self._api.get_profile()
        if not response.get("success"):
            raise CheckoutError(response.get("message") or "Failed to load your address information")
        data = response.get("data") or {}
        self._cached = UserProfile.model_validate(data.get("user", data))
        logger.info("Loaded profile with %d saved addresses", len(self._cached.addresses))
        return self._cached

    async def add_address(self, address: Address) -> dict:
        response = await self._api.add_address(address.to_backend())
        self.clear_cache()
        return response

    async def update_address(self, address_id: str, address: Address) -> dict:
        response = await self._api.update_address(address_id, address.to_backend())
        self.clear_cache()
        return response

    async def delete_address(self, address_id: str) -> dict:
        response = await self._api.delete_address(address_id)
        self.clear_cache()
        return response

    async def get_redacted_summary(self) -> dict:
        """Return a summary safe for LLM output, with no raw PII."""
        profile = await self.load()
        name_parts = profile.name.split()
        if len(name_parts) > 1:
            redacted_name = f"{name_parts[0]} {name_parts[-1][0]}."
        else:
            redacted_name = name_parts[0] if name_parts else ""

        return {
            "name": redacted_name,
            "email": redact_email(profile.email) if profile.email else "",
            "phone": redact_phone(profile.phone) if profile.phone else "",
            "addresses": [
                {
                    "id": addr.id,
                    "type": addr.type,
                    "city": addr.city,
                    "state": addr.state,
                    "pincode": addr.pincode[:3] + "***",
                    "is_default": addr.is_default,
                }
                for addr in profile.addresses
            ],
        }

    def clear_cache(self) -> None:
        self._cached = None
