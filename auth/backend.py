"""Auth backend interface.

Two implementations exist: RemoteAuthBackend (hosted identity service, the
trusted path) and LocalAuthBackend (an on-device stand-in that does not
check passwords). FallbackAuthBackend composes them. Every operation returns
a result object; a backend raises only when it cannot serve the call at all.
"""

import functools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable

from auth.exceptions import AuthError
from auth.notifier import AuthStateCallback, Subscription
from auth.types import ActionResult, AuthResult, UserProfile

logger = logging.getLogger(__name__)


class AuthBackend(ABC):
    """Operation set shared by every auth backend."""

    name: str = "backend"

    # False for stand-ins that accept any password. Never treat such a
    # backend's sessions as proof of identity.
    verifies_credentials: bool = True

    @abstractmethod
    def sign_up(self, email: str, password: str, profile_fields: dict[str, Any]) -> AuthResult: ...

    @abstractmethod
    def sign_in(self, email: str, password: str) -> AuthResult: ...

    @abstractmethod
    def sign_out(self) -> ActionResult: ...

    @abstractmethod
    def get_current_user(self) -> UserProfile | None: ...

    @abstractmethod
    def update_profile(self, fields: dict[str, Any]) -> AuthResult: ...

    @abstractmethod
    def send_otp(self, phone: str) -> ActionResult: ...

    @abstractmethod
    def verify_otp(self, phone: str, otp: str) -> ActionResult: ...

    @abstractmethod
    def sign_up_with_phone(self, phone: str, otp: str, profile_fields: dict[str, Any]) -> AuthResult: ...

    @abstractmethod
    def sign_in_with_phone(self, phone: str, otp: str) -> AuthResult: ...

    @abstractmethod
    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription: ...


def result_boundary(default_message: str, result_type: type = AuthResult) -> Callable:
    """
    Convert exceptions raised inside a backend operation into a failed result.

    AuthError keeps its own message and code. Anything else is logged with
    its traceback and reported as default_message.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except AuthError as e:
                return result_type.failed(e)
            except Exception:
                logger.exception("%s raised unexpectedly", func.__qualname__)
                return result_type.failed(default_message, "INTERNAL_ERROR")

        return wrapper

    return decorator
