"""Exception hierarchy for the checkout workflow."""
from typing import Any


class CheckoutError(Exception):
    """Base error for anything that stops a checkout step."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class APIError(CheckoutError):
    """Backend call failed with an HTTP error status or a transport failure."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}

    @property
    def is_network_error(self) -> bool:
        return self.status_code is None


class ValidationError(CheckoutError):
    """Form data failed validation before any network call."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        first = next(iter(errors.values()), "Invalid form data")
        super().__init__(first)


class VerificationRequired(CheckoutError):
    """Guest checkout attempted before the email was verified."""

    def __init__(self, message: str = "Please verify your email before proceeding with checkout"):
        super().__init__(message)
