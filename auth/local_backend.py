"""On-device auth backend.

A self-contained stand-in for the hosted identity service: accounts,
the session slot and OTP records all live in a local key-value store, so the
app keeps working with no network.

Passwords are accepted and NOT checked. This backend exists for offline and
development use; it carries no security guarantee (verifies_credentials is
False) and its sessions must not be trusted as proof of identity.
"""

import logging
import uuid
from typing import Any

from clients.local_store import KeyValueStore
from clients.sms_client import SmsClient
from auth.backend import AuthBackend, result_boundary
from auth.config import AuthConfig
from auth.database import LocalUserDirectory
from auth.exceptions import (
    DeliveryFailureError,
    DuplicateAccountError,
    NoActiveSessionError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
    UserNotFoundError,
)
from auth.notifier import AuthStateCallback, AuthStateNotifier, Subscription
from auth.otp_store import OtpStore
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.serializers import normalize_profile_fields, validated_profile
from auth.session import SessionStore
from auth.types import ActionResult, AuthResult, OtpOutcome, UserProfile
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class LocalAuthBackend(AuthBackend):
    """Network-free auth backed by durable local storage.

    Handles:
    - Email sign-up / sign-in (passwords not verified)
    - Phone OTP issue, verify, and consume
    - The single device session slot
    - Auth-state notifications
    """

    name = "local"
    verifies_credentials = False

    def __init__(
        self,
        config: AuthConfig,
        store: KeyValueStore,
        sms_client: SmsClient,
        security_logger: SecurityLogger,
        sessions: SessionStore | None = None,
        notifier: AuthStateNotifier | None = None,
    ):
        self._config = config
        self._sms = sms_client
        self._security_logger = security_logger
        self._directory = LocalUserDirectory(store)
        self._otp = OtpStore(store, config)
        self._sessions = sessions or SessionStore(store, config, security_logger=security_logger)
        self._notifier = notifier or AuthStateNotifier()

    @property
    def otp_store(self) -> OtpStore:
        return self._otp

    def _new_profile(self, email: str, phone: str | None, profile_fields: dict[str, Any]) -> UserProfile:
        fields = normalize_profile_fields(profile_fields)
        if phone is not None:
            fields["phone"] = phone
        fields.setdefault("language", self._config.default_language)
        fields.setdefault("avatar_url", self._config.default_avatar_url)
        fields["agri_creds"] = 0
        return validated_profile({
            **fields,
            "id": uuid.uuid4().hex,
            "email": email,
            "join_date": now_utc(),
        })

    def _start_session(self, user: UserProfile, otp_phone: str | None = None) -> AuthResult:
        """Open user's session, consuming otp_phone's code in the same step.

        If consuming fails the slot is cleared again and nothing is published.
        """
        session = self._sessions.create(user)
        if otp_phone is not None:
            try:
                self._consume_otp(otp_phone)
            except Exception:
                self._sessions.clear()
                raise
        self._notifier.publish(user)
        return AuthResult.ok(user, session)

    def _create_account(self, user: UserProfile, otp_phone: str | None = None) -> AuthResult:
        """Store user and sign it in. The record is removed again if sign-in fails."""
        self._directory.add_user(user)
        try:
            return self._start_session(user, otp_phone)
        except Exception:
            self._directory.remove_user(user.id)
            raise

    def _check_otp(self, phone: str, otp: str) -> None:
        """Raise unless otp is VALID for phone. Does not consume."""
        outcome = self._otp.verify(phone, otp)
        if outcome is OtpOutcome.VALID:
            return

        if outcome is OtpOutcome.EXPIRED:
            self._security_logger.log(SecurityEvent.OTP_EXPIRED, phone=phone, backend=self.name)
            raise OtpExpiredError()

        self._security_logger.log(
            SecurityEvent.OTP_REJECTED,
            phone=phone,
            backend=self.name,
            details={"reason": outcome.value},
        )
        if outcome is OtpOutcome.MISMATCH:
            raise OtpMismatchError()
        raise OtpNotFoundError()

    def _consume_otp(self, phone: str) -> None:
        self._otp.consume(phone)
        self._security_logger.log(SecurityEvent.OTP_CONSUMED, phone=phone, backend=self.name)

    @result_boundary("Signup failed")
    def sign_up(self, email: str, password: str, profile_fields: dict[str, Any]) -> AuthResult:
        """Create an account and sign it in.

        Fails if the email is already registered.
        """
        email = email.strip().lower()
        if self._directory.get_user_by_email(email) is not None:
            self._security_logger.log(
                SecurityEvent.SIGNUP_FAILED,
                email=email,
                backend=self.name,
                details={"reason": "duplicate_email"},
            )
            raise DuplicateAccountError("User with this email already exists")

        user = self._new_profile(email, None, profile_fields)
        result = self._create_account(user)
        self._security_logger.log(SecurityEvent.SIGNUP, email=email, user_id=user.id, backend=self.name)
        return result

    @result_boundary("Login failed")
    def sign_in(self, email: str, password: str) -> AuthResult:
        """Start a new session for an existing account (password not checked)."""
        user = self._directory.get_user_by_email(email)
        if user is None:
            self._security_logger.log(
                SecurityEvent.SIGNIN_FAILED,
                email=email,
                backend=self.name,
                details={"reason": "user_not_found"},
            )
            raise UserNotFoundError()

        result = self._start_session(user)
        self._security_logger.log(SecurityEvent.SIGNIN, email=user.email, user_id=user.id, backend=self.name)
        return result

    @result_boundary("Logout failed", ActionResult)
    def sign_out(self) -> ActionResult:
        """Clear the session slot. Signing out twice is not an error."""
        session = self._sessions.current()
        self._sessions.clear()
        if session is not None:
            self._security_logger.log(SecurityEvent.SIGNOUT, user_id=session.user.id, backend=self.name)
        self._notifier.publish(None)
        return ActionResult.ok()

    def get_current_user(self) -> UserProfile | None:
        try:
            session = self._sessions.current()
        except Exception:
            logger.exception("Could not read local session")
            return None
        return session.user if session else None

    @result_boundary("Profile update failed")
    def update_profile(self, fields: dict[str, Any]) -> AuthResult:
        """Shallow-merge fields into the signed-in user's record.

        Whole fields are replaced. The session keeps its token and gets the
        new user snapshot.
        """
        session = self._sessions.current()
        if session is None:
            raise NoActiveSessionError()

        stored = self._directory.get_user_by_id(session.user.id)
        if stored is None:
            raise UserNotFoundError()

        changes = normalize_profile_fields(fields)
        updated = validated_profile({**stored.model_dump(), **changes})
        self._directory.replace_user(updated)
        try:
            session = self._sessions.refresh_user(session, updated)
        except Exception:
            self._directory.replace_user(stored)
            raise

        self._security_logger.log(
            SecurityEvent.PROFILE_UPDATED,
            user_id=updated.id,
            backend=self.name,
            details={"fields": sorted(changes)},
        )
        self._notifier.publish(updated)
        return AuthResult.ok(updated, session)

    @result_boundary("Failed to send OTP", ActionResult)
    def send_otp(self, phone: str) -> ActionResult:
        """Issue a fresh OTP for phone and deliver it by SMS."""
        otp = self._otp.issue(phone)
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

    @result_boundary("OTP verification failed", ActionResult)
    def verify_otp(self, phone: str, otp: str) -> ActionResult:
        """Check the code without consuming it."""
        self._check_otp(phone, otp)
        self._security_logger.log(SecurityEvent.OTP_VERIFIED, phone=phone, backend=self.name)
        return ActionResult.ok()

    @result_boundary("Phone signup failed")
    def sign_up_with_phone(self, phone: str, otp: str, profile_fields: dict[str, Any]) -> AuthResult:
        """Create a phone account after OTP verification.

        The account's email is the placeholder <phone>@<local_email_domain>.
        """
        self._check_otp(phone, otp)

        if self._directory.get_user_by_phone(phone) is not None:
            self._security_logger.log(
                SecurityEvent.SIGNUP_FAILED,
                phone=phone,
                backend=self.name,
                details={"reason": "duplicate_phone"},
            )
            raise DuplicateAccountError("User with this phone number already exists")

        email = f"{phone}@{self._config.local_email_domain}"
        user = self._new_profile(email, phone, profile_fields)
        result = self._create_account(user, otp_phone=phone)
        self._security_logger.log(SecurityEvent.SIGNUP, phone=phone, user_id=user.id, backend=self.name)
        return result

    @result_boundary("Phone login failed")
    def sign_in_with_phone(self, phone: str, otp: str) -> AuthResult:
        """Start a session for the account owning phone after OTP verification."""
        self._check_otp(phone, otp)

        user = self._directory.get_user_by_phone(phone)
        if user is None:
            self._security_logger.log(
                SecurityEvent.SIGNIN_FAILED,
                phone=phone,
                backend=self.name,
                details={"reason": "user_not_found"},
            )
            raise UserNotFoundError()

        result = self._start_session(user, otp_phone=phone)
        self._security_logger.log(SecurityEvent.SIGNIN, phone=phone, user_id=user.id, backend=self.name)
        return result

    def on_auth_state_change(self, callback: AuthStateCallback) -> Subscription:
        return self._notifier.subscribe(callback)
