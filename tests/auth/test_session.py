"""Tests for SessionStore - the device's single session slot."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from auth.config import AuthConfig
from auth.security_logger import SecurityEvent
from auth.session import SessionStore
from utils.timezone import now_utc


@pytest.fixture
def sessions(store, config):
    return SessionStore(store, config)


class TestCreate:
    """Session creation."""

    def test_returns_session_with_token(self, sessions, make_profile):
        session = sessions.create(make_profile())

        assert session.token
        assert len(session.token) > 20

    def test_expires_after_configured_hours(self, store, make_profile):
        sessions = SessionStore(store, AuthConfig(session_expiry_hours=24))
        session = sessions.create(make_profile())

        assert session.expires_at - session.created_at == timedelta(hours=24)

    def test_provided_token_is_kept(self, sessions, make_profile):
        session = sessions.create(make_profile(), token="remote-access-token")
        assert session.token == "remote-access-token"

    def test_new_session_replaces_old(self, sessions, make_profile):
        sessions.create(make_profile(id="a"))
        sessions.create(make_profile(id="b"))

        assert sessions.current().user.id == "b"


class TestCurrent:
    """Reading the slot."""

    def test_empty_slot(self, sessions):
        assert sessions.current() is None

    def test_round_trips_user(self, sessions, make_profile):
        user = make_profile()
        created = sessions.create(user)

        current = sessions.current()
        assert current.user == user
        assert current.token == created.token
        assert current.expires_at == created.expires_at

    def test_stored_in_local_spelling(self, store, sessions, make_profile):
        sessions.create(make_profile())

        raw = store.get_json(SessionStore.DEFAULT_KEY)
        assert raw["user"]["landSize"] == "2 acres"
        assert raw["user"]["avatar"] == "https://example.com/a.png"
        assert "land_size" not in raw["user"]

    def test_expired_session_is_purged(self, store, sessions, make_profile):
        sessions.create(make_profile())
        later = now_utc() + timedelta(hours=24, seconds=1)

        with patch("auth.session.now_utc", return_value=later):
            assert sessions.current() is None
        assert store.get_json(SessionStore.DEFAULT_KEY) is None

    def test_expiry_is_audited(self, store, config, security_logger, make_profile):
        sessions = SessionStore(store, config, key="agrisathi_remote_auth", security_logger=security_logger)
        sessions.create(make_profile(id="u7"))
        later = now_utc() + timedelta(hours=24, seconds=1)

        with patch("auth.session.now_utc", return_value=later):
            sessions.current()

        [event] = security_logger.get_recent_events(event_type=SecurityEvent.SESSION_EXPIRED)
        assert event["user_id"] == "u7"
        assert event["details"] == {"slot": "agrisathi_remote_auth"}

    def test_separate_keys_are_independent(self, store, config, make_profile):
        local = SessionStore(store, config)
        remote = SessionStore(store, config, key="agrisathi_remote_auth")
        remote.create(make_profile())

        assert local.current() is None
        assert remote.current() is not None


class TestRefreshAndClear:

    def test_refresh_keeps_token_and_expiry(self, sessions, make_profile):
        session = sessions.create(make_profile())

        refreshed = sessions.refresh_user(session, make_profile(name="Asha Patil"))

        assert refreshed.token == session.token
        assert refreshed.expires_at == session.expires_at
        assert sessions.current().user.name == "Asha Patil"

    def test_clear(self, sessions, make_profile):
        sessions.create(make_profile())
        sessions.clear()
        assert sessions.current() is None

    def test_clear_when_empty(self, sessions):
        sessions.clear()
        assert sessions.current() is None
