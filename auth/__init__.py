"""Authentication: unified façade over the hosted and on-device backends."""

from auth.exceptions import (
    AuthError,
    UserNotFoundError,
    DuplicateAccountError,
    OtpNotFoundError,
    OtpExpiredError,
    OtpMismatchError,
    InvalidProfileError,
    NoActiveSessionError,
    DeliveryFailureError,
    BackendUnavailableError,
)
from auth.types import (
    UserProfile,
    Session,
    OtpRecord,
    OtpOutcome,
    AuthResult,
    ActionResult,
    UnifiedAuthResult,
)
from auth.config import AuthConfig, SmsConfig, SupabaseConfig
from auth.notifier import AuthStateNotifier, Subscription
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.session import SessionStore
from auth.otp_store import OtpStore
from auth.database import LocalUserDirectory
from auth.backend import AuthBackend
from auth.local_backend import LocalAuthBackend
from auth.remote_backend import RemoteAuthBackend
from auth.fallback import FallbackAuthBackend
from auth.service import AuthService, create_auth_service
from auth.api import create_auth_router
