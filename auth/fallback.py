"""Primary/secondary backend composition.

Each call makes at most one attempt on the primary and, only if that attempt
raises, one attempt on the secondary. Failed results (wrong OTP, duplicate
email, ...) are answers, not failures, and are returned as-is.

The session-scoped calls also consult the secondary when the primary has no
session, since a sign-in that fell back leaves its session there.
"""

import logging
from typing import Any

from auth.backend import AuthBackend
from auth.exceptions import NoActiveSessionError
from auth.notifier import AuthStateCallback, Subscription
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.types import ActionResult, AuthResult, UserProfile

logger = logging.getLogger(__name__)


class FallbackAuthBackend(AuthBackend):
    """Run every operation on primary, falling back to secondary on error."""

    name = "fallback"

    def __init__(self, primary: AuthBackend, secondary: AuthBackend, security_logger: SecurityLogger):
        self.primary = primary
        self.secondary = secondary
        self._security_logger = security_logger

    @property
    def verifies_credentials(self) -> bool:
        return self.primary.verifies_credentials and self.secondary.verifies_credentials

    def _attempt(self, operation: str, *args: Any) -> tuple[Any, bool]:
        """Run operation; returns (result, served_by_primary)."""
        try:
            return getattr(self.primary, operation)(*args), True
        except Exception as e:
            logger.warning(
                f"{self.primary.name} {operation} failed, falling back to {self.secondary.name}: {e}"
            )
            self._security_logger.log(
                SecurityEvent.BACKEND_FALLBACK,
                backend=self.secondary.name,
                details={"operation": operation, "primary": self.primary.name, "error": str(e)},
            )
            return getattr(self.secondary, operation)(*args), False

    def _call(self, operation: str, *args: Any) -> Any:
        result, _ = self._attempt(operation, *args)
        return result

    def sign_up(self, email: str, password: str, profile_fields: dict[str, Any]) -> AuthResult:
        return self._call("sign_up", email, password, profile_fields)

    def sign_in(self, email: str, password: str) -> AuthResult:
        return self._call("sign_in", email, password)

    def sign_out(self) -> ActionResult:
        """Sign out of both backends; either may hold the device's session."""
        result, by_primary = self._attempt("sign_out")
        if result.success and by_primary:
            self.secondary.sign_out()
        return result

    def get_current_user(self) -> UserProfile | None:
        """The primary's user, else one signed in on the secondary."""
        user, by_primary = self._attempt("get_current_user")
        if user is None and by_primary:
            return self.secondary.get_current_user()
        return user

    def update_profile(self, fields: dict[str, Any]) -> AuthResult:
        result, by_primary = self._attempt("update_profile", fields)
        if by_primary and result.error_code == NoActiveSessionError.code:
            return self.secondary.update_profile(fields)
        return result

    def send_otp(self, phone: str) -> ActionResult:
        return self._call("send_otp", phone)

    def verify_otp(self, phone: str, otp: str) -> ActionResult:
        return self._call("verify_otp", phone, otp)

    def sign_up_with_phone(self, phone: str, otp: str, profile_fields: dict[str, Any]) -> AuthResult:
        return self._call("sign_up_with_phone", phone, otp, profile_fields)

    def sign_in_with_phone(self, phone: str, otp: str) -> AuthResult:
        return self._call("sign_in_with_phone", phone, otp)

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        return self._call("on_auth_state_change", callback)
