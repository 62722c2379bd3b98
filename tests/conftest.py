"""Shared test fixtures for the auth test suite."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from auth.config import AuthConfig
from auth.local_backend import LocalAuthBackend
from auth.notifier import AuthStateNotifier
from auth.security_logger import SecurityLogger
from auth.types import UserProfile
from clients.local_store import JsonFileStore
from clients.sms_client import DevOtpDisplay, SmsClient, SmsDeliveryResult


# =============================================================================
# TEST CONSTANTS
# =============================================================================

TEST_PHONE = "+919876500001"
TEST_PHONE_B = "+919876500002"
TEST_EMAIL = "farmer@test.local"
FIXED_NOW = datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc)


# =============================================================================
# CONFIG / STORAGE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    """Default auth config (5 minute OTPs, 24 hour sessions)."""
    return AuthConfig()


@pytest.fixture
def store(tmp_path) -> JsonFileStore:
    """Fresh on-disk JSON store per test."""
    return JsonFileStore(tmp_path / "auth_store.json")


@pytest.fixture
def security_logger(tmp_path) -> SecurityLogger:
    return SecurityLogger(tmp_path / "audit.jsonl")


# =============================================================================
# SMS FIXTURES
# =============================================================================


@pytest.fixture
def dev_sms() -> SmsClient:
    """Development-mode SMS client: codes land on its notice board."""
    return SmsClient(dev_mode=True, dev_display=DevOtpDisplay(display_seconds=10))


@pytest.fixture
def failing_sms() -> Mock:
    """SMS client whose every delivery fails."""
    mock = Mock(spec=SmsClient)
    mock.send.return_value = SmsDeliveryResult(delivered=False, error="Fast2SMS API error: 500")
    mock.dev_display = DevOtpDisplay()
    return mock


# =============================================================================
# BACKEND FIXTURES
# =============================================================================


@pytest.fixture
def notifier() -> AuthStateNotifier:
    return AuthStateNotifier()


@pytest.fixture
def local_backend(config, store, dev_sms, security_logger, notifier) -> LocalAuthBackend:
    """Real local backend over a temp store with dev-mode SMS."""
    return LocalAuthBackend(config, store, dev_sms, security_logger, notifier=notifier)


@pytest.fixture
def read_otp(dev_sms):
    """Read the last code shown on the dev notice board for a phone."""

    def _read(phone: str) -> str:
        notice = dev_sms.dev_display.latest_for(phone)
        assert notice is not None, f"no OTP was shown for {phone}"
        return notice.otp

    return _read


@pytest.fixture
def make_profile():
    """Factory for canonical UserProfile objects."""

    def _make(**overrides) -> UserProfile:
        data = {
            "id": "user-1",
            "email": TEST_EMAIL,
            "name": "Asha",
            "phone": TEST_PHONE,
            "location": "Nashik",
            "land_size": "2 acres",
            "experience": "10 years",
            "crops": ["onion", "grape"],
            "avatar_url": "https://example.com/a.png",
            "agri_creds": 5,
            "join_date": FIXED_NOW,
        }
        data.update(overrides)
        return UserProfile(**data)

    return _make
