"""Persisted session slot for a single-device client.

One slot per SessionStore (one signed-in account per device). The slot is an
injected object rather than ambient storage so tests and the two backends
can each hold their own.
"""

import logging
import secrets
from datetime import timedelta

from clients.local_store import KeyValueStore
from auth.config import AuthConfig
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.serializers import profile_from_local, profile_to_local
from auth.types import Session, UserProfile
from utils.timezone import now_utc, parse_iso

logger = logging.getLogger(__name__)


class SessionStore:
    """Create, read, refresh and clear the device's session slot.

    Usage:
        sessions = SessionStore(store, config)
        session = sessions.create(user)
        sessions.current()  # None once expired or cleared
    """

    DEFAULT_KEY = "agrisathi_mock_auth"

    def __init__(
        self,
        store: KeyValueStore,
        config: AuthConfig,
        key: str = DEFAULT_KEY,
        security_logger: SecurityLogger | None = None,
    ):
        self._store = store
        self._config = config
        self._key = key
        self._security_logger = security_logger

    def create(self, user: UserProfile, token: str | None = None) -> Session:
        """Start a new session with a fresh token (or a provided one)."""
        now = now_utc()
        session = Session(
            user=user,
            token=token or secrets.token_urlsafe(32),
            created_at=now,
            expires_at=now + timedelta(hours=self._config.session_expiry_hours),
        )
        self._save(session)
        return session

    def refresh_user(self, session: Session, user: UserProfile) -> Session:
        """Overwrite the slot with a new user snapshot, keeping token and expiry."""
        updated = Session(
            user=user,
            token=session.token,
            created_at=session.created_at,
            expires_at=session.expires_at,
        )
        self._save(updated)
        return updated

    def current(self) -> Session | None:
        """The stored session, or None if absent or expired (expired is purged)."""
        data = self._store.get_json(self._key)
        if data is None:
            return None

        session = Session(
            user=profile_from_local(data["user"]),
            token=data["token"],
            created_at=parse_iso(data["created_at"]),
            expires_at=parse_iso(data["expires_at"]),
        )
        if session.is_expired(now_utc()):
            self._store.delete(self._key)
            logger.info("Session expired for user %s", session.user.id)
            if self._security_logger:
                self._security_logger.log(
                    SecurityEvent.SESSION_EXPIRED,
                    user_id=session.user.id,
                    details={"slot": self._key},
                )
            return None
        return session

    def clear(self) -> None:
        """Drop the slot. Safe to call when empty."""
        self._store.delete(self._key)

    def _save(self, session: Session) -> None:
        self._store.set_json(
            self._key,
            {
                "user": profile_to_local(session.user),
                "token": session.token,
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
            },
        )
