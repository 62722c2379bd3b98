"""Typed exceptions for auth failures.

Backends raise these internally and convert them into result objects at
their boundary; the message is what the user sees, the code is what the
HTTP layer maps to a status.
"""


class AuthError(Exception):
    """Base class for authentication/authorization errors."""

    code = "AUTH_ERROR"


class UserNotFoundError(AuthError):
    """No account matches the given email or phone."""

    code = "NOT_FOUND"

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class DuplicateAccountError(AuthError):
    """Email or phone is already registered."""

    code = "ALREADY_EXISTS"


class OtpNotFoundError(AuthError):
    """No outstanding OTP for this phone."""

    code = "OTP_NOT_FOUND"

    def __init__(self, message: str = "OTP not found"):
        super().__init__(message)


class OtpExpiredError(AuthError):
    """OTP is past its validity window. A new one must be issued."""

    code = "OTP_EXPIRED"

    def __init__(self, message: str = "OTP expired"):
        super().__init__(message)


class OtpMismatchError(AuthError):
    """Wrong code. The OTP is still outstanding and may be retried."""

    code = "INVALID_OTP"

    def __init__(self, message: str = "Invalid OTP"):
        super().__init__(message)


class InvalidProfileError(AuthError):
    """A profile field has a value of the wrong type or shape."""

    code = "VALIDATION_ERROR"


class NoActiveSessionError(AuthError):
    """Mutating operation attempted while signed out."""

    code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "No active session"):
        super().__init__(message)


class DeliveryFailureError(AuthError):
    """SMS transmission failed. User can request a new code."""

    code = "DELIVERY_FAILED"

    def __init__(self, message: str = "Failed to send SMS"):
        super().__init__(message)


class BackendUnavailableError(AuthError):
    """
    Remote backend could not serve the call.

    Triggers the fallback to the local backend; never shown to users.
    """

    code = "SERVICE_UNAVAILABLE"
