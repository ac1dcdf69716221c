"""
Guest identity verifier.

Guests must prove ownership of their email with an OTP round trip before an
order can be submitted. A previously verified email is recognized through the
check endpoint without sending a new OTP.
"""
import logging
from dataclasses import dataclass
from enum import Enum

from .api import StorefrontAPI
from .errors import APIError

logger = logging.getLogger(__name__)


class VerificationState(str, Enum):
    UNVERIFIED = "unverified"
    OTP_SENT = "otp_sent"
    VERIFIED = "verified"


@dataclass
class VerificationResult:
    success: bool
    message: str = ""
    verified: bool = False


class GuestVerifier:
    """Tracks verification state for the email currently entered at checkout."""

    def __init__(self, api: StorefrontAPI):
        self._api = api
        self.email: str = ""
        self.state = VerificationState.UNVERIFIED

    @property
    def is_verified(self) -> bool:
        return self.state is VerificationState.VERIFIED

    def is_verified_for(self, email: str) -> bool:
        """Verified, and for this exact email."""
        return self.is_verified and bool(email) and self.email == email

    @property
    def show_otp_form(self) -> bool:
        return self.state is VerificationState.OTP_SENT

    async def send_otp(self, email: str) -> VerificationResult:
        if not email:
            return VerificationResult(success=False, message="Please enter your email address")
        self._set_email(email)

        try:
            response = await self._api.send_guest_otp(email)
        except APIError as e:
            logger.warning("send-otp failed for guest: %s", e.message)
            return VerificationResult(success=False, message="Failed to send OTP. Please try again.")

        if not response.get("success"):
            return VerificationResult(success=False, message=response.get("message") or "Failed to send OTP")

        if not self.is_verified:
            self.state = VerificationState.OTP_SENT
        logger.info("OTP sent for guest checkout")
        return VerificationResult(success=True, message="OTP sent to your email")

    async def verify_otp(self, otp: str, email: str | None = None) -> VerificationResult:
        if not otp:
            return VerificationResult(success=False, message="Please enter the OTP")
        if email:
            self._set_email(email)
        if not self.email:
            return VerificationResult(success=False, message="Please enter your email address")

        try:
            response = await self._api.verify_guest_otp(self.email, otp)
        except APIError as e:
            logger.warning("verify-otp failed for guest: %s", e.message)
            return VerificationResult(success=False, message="Failed to verify OTP. Please try again.")

        if not response.get("success"):
            return VerificationResult(success=False, message=response.get("message") or "Invalid OTP")

        self.state = VerificationState.VERIFIED
        logger.info("Guest email verified")
        return VerificationResult(success=True, message="Email verified successfully", verified=True)

    async def check_verification(self, email: str) -> VerificationResult:
        """Ask the backend whether this email is already verified."""
        self._set_email(email)
        try:
            response = await self._api.check_guest_verification(email)
        except APIError as e:
            logger.debug("Verification check failed: %s", e.message)
            self._mark_unverified()
            return VerificationResult(success=False, message="Failed to check email verification")

        data = response.get("data") or {}
        verified = bool(response.get("success") and data.get("verified"))
        if verified:
            self.state = VerificationState.VERIFIED
        else:
            self._mark_unverified()
        return VerificationResult(success=bool(response.get("success")), verified=verified)

    async def on_email_changed(self, email: str, is_guest: bool) -> None:
        """Reset on a new email and, for guests, re-check the backend."""
        self._set_email(email)
        if is_guest and email and not self.is_verified:
            await self.check_verification(email)

    def _set_email(self, email: str) -> None:
        if email != self.email:
            self.email = email
            self.state = VerificationState.UNVERIFIED

    def _mark_unverified(self) -> None:
        # An outstanding OTP stays pending; only a verified flag is withdrawn
        if self.state is VerificationState.VERIFIED:
            self.state = VerificationState.UNVERIFIED

    def reset(self) -> None:
        """Forget the email and any verification, e.g. on sign-in or sign-out."""
        self.email = ""
        self.state = VerificationState.UNVERIFIED
