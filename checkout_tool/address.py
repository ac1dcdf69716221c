"""Address resolver — saved address vs. freshly entered address."""
import logging
from dataclasses import dataclass

from .errors import ValidationError
from .forms import ADDRESS_FIELDS, CheckoutFormState
from .profile.schema import Address, ShippingAddress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedAddress:
    """Exactly one of address_id / shipping is set."""
    address_id: str | None = None
    shipping: ShippingAddress | None = None
    saved: Address | None = None


def _split_name(name: str) -> tuple[str, str]:
    parts = name.split(" ")
    return parts[0], " ".join(parts[1:])


class AddressResolver:
    """Chooses the authoritative shipping address source for a form."""

    def __init__(self, form: CheckoutFormState):
        self._form = form
        self._addresses: list[Address] = []

    @property
    def addresses(self) -> list[Address]:
        return list(self._addresses)

    def find(self, address_id: str | None) -> Address | None:
        if not address_id:
            return None
        return next((a for a in self._addresses if a.id == address_id), None)

    def default_address(self) -> Address | None:
        """The address flagged default, else the first in list order."""
        if not self._addresses:
            return None
        return next((a for a in self._addresses if a.is_default), self._addresses[0])

    def load(self, addresses: list[Address]) -> None:
        """Install the profile's addresses; a non-empty list switches to saved mode."""
        self._addresses = list(addresses)
        if self._addresses:
            self.use_saved_address()
        logger.info("Address resolver loaded %d addresses", len(self._addresses))

    def use_saved_address(self, address_id: str | None = None) -> Address:
        if not self._addresses:
            raise ValidationError({"selected_address_id": "No saved addresses available"})
        address = self.find(address_id) if address_id else self.default_address()
        if address is None:
            raise ValidationError({"selected_address_id": "Please select an address"})
        self._form.use_existing_address = True
        self._form.selected_address_id = address.id
        if address.phone:
            self._form.phone = address.phone
        return address

    def use_new_address(self) -> None:
        """Switch to manual entry. Typed manual fields are kept."""
        self._form.use_existing_address = False
        self._form.selected_address_id = None

    def select(self, address_id: str) -> Address:
        return self.use_saved_address(address_id)

    def resolve(self) -> ResolvedAddress:
        """Return the single authoritative address, or raise ValidationError."""
        form = self._form
        if form.use_existing_address:
            address = self.find(form.selected_address_id)
            if address is None:
                raise ValidationError({"selected_address_id": "Please select an address"})
            return ResolvedAddress(address_id=address.id, saved=address)

        missing = {
            name: message
            for name, message in ADDRESS_FIELDS.items()
            if not str(getattr(form, name)).strip()
        }
        if missing:
            raise ValidationError(missing)

        return ResolvedAddress(shipping=ShippingAddress(
            name=form.full_name,
            email=form.email,
            phone=form.phone,
            street=form.address,
            city=form.city,
            state=form.state,
            pincode=form.zip_code,
            country=form.country,
        ))

    def new_address_for_profile(self) -> Address:
        """The manually entered address in profile form, for save-to-account."""
        form = self._form
        return Address(
            type="Home",
            name=form.full_name,
            phone=form.phone,
            street=form.address,
            city=form.city,
            state=form.state,
            pincode=form.zip_code,
            country=form.country,
            is_default=False,
        )

    def prefill_from(self, address: Address) -> None:
        """Copy an address into the manual fields (used when resuming an order)."""
        form = self._form
        if address.name:
            form.first_name, form.last_name = _split_name(address.name)
        if address.phone:
            form.phone = address.phone
        form.address = address.street
        form.city = address.city
        form.state = address.state
        form.zip_code = address.pincode
        form.country = address.country or "India"
