"""Unified auth façade - the single entry point the web client uses."""

import logging
from pathlib import Path
from typing import Any, Callable

from auth.backend import AuthBackend
from auth.config import AuthConfig
from auth.fallback import FallbackAuthBackend
from auth.local_backend import LocalAuthBackend
from auth.notifier import AuthStateNotifier, Subscription
from auth.remote_backend import RemoteAuthBackend
from auth.security_logger import SecurityLogger
from auth.serializers import to_unified
from auth.session import SessionStore
from auth.types import ActionResult, AuthResult, UnifiedAuthResult, UserProfile
from clients.local_store import JsonFileStore, KeyValueStore
from clients.sms_client import DevOtpDisplay, SmsClient
from clients.supabase_client import SupabaseClient
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)

REMOTE_SESSION_KEY = "agrisathi_remote_auth"


class AuthService:
    """Orchestrates sign-up, sign-in and profile calls over one backend.

    Handles:
    - Accepting profile fields in either spelling
    - Returning users as unified dicts (both spellings)
    - Auth-state subscriptions with unified payloads

    Which backend (local, or remote with local fallback) is decided once,
    in create_auth_service().
    """

    def __init__(self, backend: AuthBackend, dev_display: DevOtpDisplay | None = None):
        self._backend = backend
        self.dev_display = dev_display

    @property
    def backend(self) -> AuthBackend:
        return self._backend

    @property
    def verifies_credentials(self) -> bool:
        return self._backend.verifies_credentials

    @staticmethod
    def _unify(result: AuthResult) -> UnifiedAuthResult:
        return UnifiedAuthResult(
            user=to_unified(result.user) if result.user else None,
            session=result.session,
            error=result.error,
            error_code=result.error_code,
        )

    def sign_up(self, email: str, password: str, profile_fields: dict[str, Any] | None = None) -> UnifiedAuthResult:
        return self._unify(self._backend.sign_up(email, password, profile_fields or {}))

    def sign_in(self, email: str, password: str) -> UnifiedAuthResult:
        return self._unify(self._backend.sign_in(email, password))

    def sign_out(self) -> ActionResult:
        return self._backend.sign_out()

    def get_current_user(self) -> dict[str, Any] | None:
        user = self._backend.get_current_user()
        return to_unified(user) if user else None

    def update_profile(self, fields: dict[str, Any]) -> UnifiedAuthResult:
        """Shallow-merge fields (either spelling) into the signed-in profile."""
        return self._unify(self._backend.update_profile(fields))

    def send_otp(self, phone: str) -> ActionResult:
        return self._backend.send_otp(phone)

    def verify_otp(self, phone: str, otp: str) -> ActionResult:
        """Check a code without consuming it; the sign-up/sign-in call consumes."""
        return self._backend.verify_otp(phone, otp)

    def sign_up_with_phone(
        self, phone: str, otp: str, profile_fields: dict[str, Any] | None = None
    ) -> UnifiedAuthResult:
        return self._unify(self._backend.sign_up_with_phone(phone, otp, profile_fields or {}))

    def sign_in_with_phone(self, phone: str, otp: str) -> UnifiedAuthResult:
        return self._unify(self._backend.sign_in_with_phone(phone, otp))

    def on_auth_state_change(self, callback: Callable[[dict[str, Any] | None], None]) -> Subscription:
        """Subscribe to sign-in/sign-out/profile changes.

        The callback receives the unified user dict, or None on sign-out.
        """

        def _forward(user: UserProfile | None) -> None:
            callback(to_unified(user) if user else None)

        return self._backend.on_auth_state_change(_forward)


def _default_store(config: AuthConfig) -> KeyValueStore:
    if config.valkey_url:
        return ValkeyClient(config.valkey_url)
    return JsonFileStore(Path(config.storage_path))


def create_auth_service(
    config: AuthConfig,
    store: KeyValueStore | None = None,
    sms_client: SmsClient | None = None,
    security_logger: SecurityLogger | None = None,
    supabase_client: SupabaseClient | None = None,
) -> AuthService:
    """
    Wire up the façade.

    The local backend is used alone when mock APIs are forced or the hosted
    service is not configured (missing or placeholder URL/key). Otherwise
    the remote backend is primary with the local backend as fallback.
    Both share one notifier so subscribers hear events from either.
    """
    store = store if store is not None else _default_store(config)
    security_logger = security_logger or SecurityLogger(config.audit_log_path)
    sms_client = sms_client or SmsClient(
        provider=config.sms.provider,
        api_key=config.sms.api_key,
        sender_id=config.sms.sender_id,
        api_url=config.sms.api_url,
        dev_mode=config.sms.dev_mode,
        timeout_seconds=config.request_timeout_seconds,
        valid_minutes=config.otp_expiry_minutes,
        app_name=config.app_name,
        dev_display=DevOtpDisplay(display_seconds=config.dev_notice_seconds),
    )
    notifier = AuthStateNotifier()

    local = LocalAuthBackend(config, store, sms_client, security_logger, notifier=notifier)

    if config.use_mock_apis or (supabase_client is None and not config.supabase.is_configured):
        logger.info("Using local auth backend")
        return AuthService(local, sms_client.dev_display)

    client = supabase_client or SupabaseClient(
        config.supabase.url,
        config.supabase.anon_key,
        service_role_key=config.supabase.service_role_key,
        timeout_seconds=config.request_timeout_seconds,
    )
    remote = RemoteAuthBackend(
        config,
        client,
        sms_client,
        security_logger,
        sessions=SessionStore(
            store, config, key=REMOTE_SESSION_KEY, security_logger=security_logger
        ),
        notifier=notifier,
    )
    logger.info("Using remote auth backend with local fallback")
    return AuthService(FallbackAuthBackend(remote, local, security_logger), sms_client.dev_display)
