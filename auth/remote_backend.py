"""Hosted auth backend (Supabase).

Accounts live in the hosted identity service and the `users` table; phone
OTPs live in the `otp_verifications` table. The device keeps only the
access token, in its own session slot.

Refusals from the service (bad credentials, duplicate account) come back as
failed results. When the service cannot answer at all, operations raise
BackendUnavailableError so the caller can switch to the local backend.
"""

import functools
import logging
import secrets
from datetime import timedelta
from typing import Any, Callable

from clients.sms_client import SmsClient
from clients.supabase_client import SupabaseClient, SupabaseError, SupabaseUnavailableError
from auth.backend import AuthBackend
from auth.config import AuthConfig
from auth.exceptions import (
    AuthError,
    BackendUnavailableError,
    DeliveryFailureError,
    DuplicateAccountError,
    NoActiveSessionError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
    UserNotFoundError,
)
from auth.notifier import AuthStateCallback, AuthStateNotifier, Subscription
from auth.otp_store import generate_otp
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.serializers import (
    normalize_profile_fields,
    profile_from_remote_row,
    profile_to_remote_row,
    validated_profile,
)
from auth.session import SessionStore
from auth.types import ActionResult, AuthResult, OtpOutcome, UserProfile
from utils.timezone import now_utc, parse_iso

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
OTP_TABLE = "otp_verifications"


def _error_code(error: SupabaseError) -> str:
    message = str(error).lower()
    if error.status_code == 409 or "already" in message:
        return DuplicateAccountError.code
    if error.status_code == 404:
        return UserNotFoundError.code
    return AuthError.code


def remote_boundary(result_type: type = AuthResult) -> Callable:
    """
    Map service errors onto results; escalate unavailability.

    - SupabaseUnavailableError -> BackendUnavailableError (raised)
    - SupabaseError            -> failed result with the service's message
    - AuthError                -> failed result
    Any other exception propagates.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except BackendUnavailableError:
                raise
            except SupabaseUnavailableError as e:
                raise BackendUnavailableError(str(e)) from e
            except SupabaseError as e:
                return result_type.failed(str(e), _error_code(e))
            except AuthError as e:
                return result_type.failed(e)

        return wrapper

    return decorator


class RemoteAuthBackend(AuthBackend):
    """Auth against the hosted identity service and its tables."""

    name = "remote"
    verifies_credentials = True

    def __init__(
        self,
        config: AuthConfig,
        client: SupabaseClient,
        sms_client: SmsClient,
        security_logger: SecurityLogger,
        sessions: SessionStore,
        notifier: AuthStateNotifier | None = None,
    ):
        self._config = config
        self._client = client
        self._sms = sms_client
        self._security_logger = security_logger
        self._sessions = sessions
        self._notifier = notifier or AuthStateNotifier()

    def _require_phone_auth(self) -> None:
        # Phone flows need the admin API; without it the whole flow (send,
        # verify, sign-up, sign-in) has to run on one other backend.
        if not self._client.has_admin_access:
            raise BackendUnavailableError("Phone authentication requires a service role key")

    def _fetch_profile(self, user_id: str, access_token: str) -> UserProfile | None:
        rows = self._client.select(USERS_TABLE, {"id": f"eq.{user_id}"}, access_token=access_token)
        return profile_from_remote_row(rows[0]) if rows else None

    def _new_profile(self, user_id: str, email: str, profile_fields: dict[str, Any]) -> UserProfile:
        fields = normalize_profile_fields(profile_fields)
        fields.setdefault("language", self._config.default_language)
        fields.setdefault("avatar_url", self._config.default_avatar_url)
        fields["agri_creds"] = 0
        return validated_profile({**fields, "id": user_id, "email": email, "join_date": now_utc()})

    def _insert_profile(self, profile: UserProfile, access_token: str | None) -> UserProfile:
        rows = self._client.insert(
            USERS_TABLE,
            profile_to_remote_row(profile),
            access_token=access_token,
            admin=access_token is None,
        )
        return profile_from_remote_row(rows[0]) if rows else profile

    def _start_session(self, user: UserProfile, access_token: str) -> AuthResult:
        session = self._sessions.create(user, token=access_token)
        self._notifier.publish(user)
        return AuthResult.ok(user, session)

    @remote_boundary()
    def sign_up(self, email: str, password: str, profile_fields: dict[str, Any]) -> AuthResult:
        """Create the auth user, then its `users` row.

        If the row cannot be written the account still counts as created and
        the row is written at first sign-in.
        """
        # Checked before the auth user exists
        profile = self._new_profile("", email, profile_fields)
        fields = normalize_profile_fields(profile_fields)
        data = self._client.sign_up(
            email,
            password,
            {"name": fields.get("name", ""), "phone": fields.get("phone", "")},
        )

        auth_user = data.get("user") or data
        if not auth_user.get("id"):
            return AuthResult.failed("Failed to create user account")

        access_token = data.get("access_token")
        profile = profile.model_copy(
            update={"id": auth_user["id"], "email": auth_user.get("email") or email}
        )
        try:
            user = self._insert_profile(profile, access_token)
        except SupabaseUnavailableError as e:
            # The auth user already exists, so this must not fall back to a
            # second local account. The row is written at first sign-in.
            logger.warning(f"Profile row for {profile.id} not saved, deferring to first sign-in: {e}")
            self._security_logger.log(
                SecurityEvent.SIGNUP,
                email=profile.email,
                user_id=profile.id,
                backend=self.name,
                details={"profile_row": "deferred"},
            )
            return AuthResult.ok(profile, None)

        self._security_logger.log(SecurityEvent.SIGNUP, email=user.email, user_id=user.id, backend=self.name)
        if access_token is None:
            # Email confirmation pending: account exists, no session yet
            return AuthResult.ok(user, None)
        return self._start_session(user, access_token)

    @remote_boundary()
    def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            data = self._client.sign_in_with_password(email, password)
        except SupabaseUnavailableError:
            raise
        except SupabaseError:
            self._security_logger.log(
                SecurityEvent.SIGNIN_FAILED,
                email=email,
                backend=self.name,
                details={"reason": "rejected"},
            )
            raise

        access_token = data["access_token"]
        auth_user = data["user"]
        user = self._fetch_profile(auth_user["id"], access_token)
        if user is None:
            logger.info(f"Creating deferred profile row for {auth_user['id']}")
            profile = self._new_profile(
                auth_user["id"],
                auth_user.get("email") or email,
                auth_user.get("user_metadata") or {},
            )
            user = self._insert_profile(profile, access_token)

        self._security_logger.log(SecurityEvent.SIGNIN, email=user.email, user_id=user.id, backend=self.name)
        return self._start_session(user, access_token)

    @remote_boundary(ActionResult)
    def sign_out(self) -> ActionResult:
        session = self._sessions.current()
        try:
            if session is not None:
                self._client.sign_out(session.token)
        finally:
            self._sessions.clear()
            self._notifier.publish(None)

        if session is not None:
            self._security_logger.log(SecurityEvent.SIGNOUT, user_id=session.user.id, backend=self.name)
        return ActionResult.ok()

    def get_current_user(self) -> UserProfile | None:
        """Resolve the stored access token to a profile.

        A token the service rejects clears the slot. Raises
        BackendUnavailableError when the service is unreachable.
        """
        session = self._sessions.current()
        if session is None:
            return None

        try:
            auth_user = self._client.get_user(session.token)
            return self._fetch_profile(auth_user["id"], session.token)
        except SupabaseUnavailableError as e:
            raise BackendUnavailableError(str(e)) from e
        except SupabaseError:
            logger.info("Stored remote session rejected; clearing it")
            self._sessions.clear()
            return None

    @remote_boundary()
    def update_profile(self, fields: dict[str, Any]) -> AuthResult:
        session = self._sessions.current()
        if session is None:
            raise NoActiveSessionError()

        changes = normalize_profile_fields(fields)
        validated_profile({**session.user.model_dump(), **changes})
        rows = self._client.update(
            USERS_TABLE,
            {"id": f"eq.{session.user.id}"},
            {**changes, "updated_at": now_utc().isoformat()},
            access_token=session.token,
        )
        if not rows:
            raise UserNotFoundError()

        user = profile_from_remote_row(rows[0])
        session = self._sessions.refresh_user(session, user)
        self._security_logger.log(
            SecurityEvent.PROFILE_UPDATED,
            user_id=user.id,
            backend=self.name,
            details={"fields": sorted(changes)},
        )
        self._notifier.publish(user)
        return AuthResult.ok(user, session)

    # -- Phone OTP ---------------------------------------------------------

    def _otp_outcome(self, phone: str, otp: str) -> OtpOutcome:
        rows = self._client.select(OTP_TABLE, {"phone": f"eq.{phone}", "used": "is.false"}, admin=True)
        if not rows:
            return OtpOutcome.NOT_FOUND

        record = rows[0]
        if now_utc() > parse_iso(record["expires_at"]):
            self._client.delete(OTP_TABLE, {"phone": f"eq.{phone}"}, admin=True)
            return OtpOutcome.EXPIRED
        if not secrets.compare_digest(str(record["otp"]).encode(), otp.strip().encode()):
            return OtpOutcome.MISMATCH
        return OtpOutcome.VALID

    def _check_otp(self, phone: str, otp: str) -> None:
        outcome = self._otp_outcome(phone, otp)
        if outcome is OtpOutcome.VALID:
            return

        event = SecurityEvent.OTP_EXPIRED if outcome is OtpOutcome.EXPIRED else SecurityEvent.OTP_REJECTED
        self._security_logger.log(event, phone=phone, backend=self.name, details={"reason": outcome.value})
        if outcome is OtpOutcome.EXPIRED:
            raise OtpExpiredError()
        if outcome is OtpOutcome.MISMATCH:
            raise OtpMismatchError()
        raise OtpNotFoundError()

    def _consume_otp(self, phone: str) -> None:
        self._client.update(OTP_TABLE, {"phone": f"eq.{phone}"}, {"used": True}, admin=True)
        self._security_logger.log(SecurityEvent.OTP_CONSUMED, phone=phone, backend=self.name)

    @remote_boundary(ActionResult)
    def send_otp(self, phone: str) -> ActionResult:
        """Upsert a fresh OTP row for phone and deliver the code."""
        self._require_phone_auth()

        now = now_utc()
        # Range filter purges every stale row, not just this phone's
        self._client.delete(OTP_TABLE, {"expires_at": f"lt.{now.isoformat()}"}, admin=True)

        otp = generate_otp()
        self._client.upsert(
            OTP_TABLE,
            {
                "phone": phone,
                "otp": otp,
                "expires_at": (now + timedelta(minutes=self._config.otp_expiry_minutes)).isoformat(),
                "used": False,
                "created_at": now.isoformat(),
            },
            on_conflict="phone",
            admin=True,
        )
        self._security_logger.log(SecurityEvent.OTP_ISSUED, phone=phone, backend=self.name)

        delivery = self._sms.send(phone, otp)
        if not delivery.delivered:
            self._security_logger.log(
                SecurityEvent.OTP_DELIVERY_FAILED,
                phone=phone,
                backend=self.name,
                details={"error": delivery.error},
            )
            raise DeliveryFailureError(delivery.error or "Failed to send SMS")
        return ActionResult.ok()

    @remote_boundary(ActionResult)
    def verify_otp(self, phone: str, otp: str) -> ActionResult:
        self._require_phone_auth()
        self._check_otp(phone, otp)
        self._security_logger.log(SecurityEvent.OTP_VERIFIED, phone=phone, backend=self.name)
        return ActionResult.ok()

    @remote_boundary()
    def sign_up_with_phone(self, phone: str, otp: str, profile_fields: dict[str, Any]) -> AuthResult:
        self._require_phone_auth()
        self._check_otp(phone, otp)

        if self._client.select(USERS_TABLE, {"phone": f"eq.{phone}"}, admin=True):
            raise DuplicateAccountError("User with this phone number already exists")

        email = f"{phone}@{self._config.local_email_domain}"
        fields = normalize_profile_fields(profile_fields)
        auth_user = self._client.admin_create_user(email, phone, {"name": fields.get("name", "")})
        session_data = self._client.admin_create_session(email)

        profile = self._new_profile(auth_user["id"], email, {**profile_fields, "phone": phone})
        user = self._insert_profile(profile, None)
        result = self._start_session(user, session_data["access_token"])

        self._consume_otp(phone)
        self._security_logger.log(SecurityEvent.SIGNUP, phone=phone, user_id=user.id, backend=self.name)
        return result

    @remote_boundary()
    def sign_in_with_phone(self, phone: str, otp: str) -> AuthResult:
        self._require_phone_auth()
        self._check_otp(phone, otp)

        rows = self._client.select(USERS_TABLE, {"phone": f"eq.{phone}"}, admin=True)
        if not rows:
            raise UserNotFoundError()

        user = profile_from_remote_row(rows[0])
        session_data = self._client.admin_create_session(user.email)
        result = self._start_session(user, session_data["access_token"])

        self._consume_otp(phone)
        self._security_logger.log(SecurityEvent.SIGNIN, phone=phone, user_id=user.id, backend=self.name)
        return result

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        return self._notifier.subscribe(callback)
