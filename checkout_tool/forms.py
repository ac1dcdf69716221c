"""Checkout form state and field validation."""
import re

from pydantic import BaseModel

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Manual address fields and their "required" messages
ADDRESS_FIELDS = {
    "first_name": "First name is required",
    "last_name": "Last name is required",
    "phone": "Phone number is required",
    "address": "Address is required",
    "city": "City is required",
    "state": "State/Province is required",
    "zip_code": "ZIP/Postal code is required",
    "country": "Country is required",
}

PAYMENT_METHODS = ("cashfree", "cod")


class CheckoutFormState(BaseModel):
    """Transient, form-scoped checkout data."""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "India"
    use_existing_address: bool = False
    selected_address_id: str | None = None
    save_address: bool = False
    payment_method: str = "cashfree"
    terms_accepted: bool = False

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email or ""))


def validate_form(form: CheckoutFormState) -> dict[str, str]:
    """Return field -> message for every invalid field (empty dict when valid)."""
    errors: dict[str, str] = {}

    if not form.email:
        errors["email"] = "Email is required"
    elif not is_valid_email(form.email):
        errors["email"] = "Invalid email"

    if form.use_existing_address:
        if not form.selected_address_id:
            errors["selected_address_id"] = "Please select an address"
    else:
        for name, message in ADDRESS_FIELDS.items():
            if not str(getattr(form, name)).strip():
                errors[name] = message

    if not form.payment_method:
        errors["payment_method"] = "Payment method is required"

    if not form.terms_accepted:
        errors["terms_accepted"] = "You must accept the terms and conditions"

    return errors
