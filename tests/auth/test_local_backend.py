"""Tests for LocalAuthBackend - network-free accounts, sessions and phone OTP."""

from datetime import timedelta
from unittest.mock import Mock, patch

import pytest

from auth.local_backend import LocalAuthBackend
from auth.otp_store import OtpStore
from auth.security_logger import SecurityEvent, SecurityLogger
from auth.session import SessionStore
from auth.types import OtpOutcome
from clients.local_store import JsonFileStore
from utils.timezone import now_utc

PHONE = "+919876500000"
EMAIL = "ramesh@example.com"


class TestCredentialTrust:

    def test_local_backend_does_not_verify_credentials(self, local_backend):
        assert local_backend.verifies_credentials is False
        assert local_backend.name == "local"


class TestSignUp:
    """Email sign-up."""

    def test_creates_user_and_session(self, local_backend):
        result = local_backend.sign_up(EMAIL, "pw", {"name": "Ramesh", "location": "Pune"})

        assert result.error is None
        assert result.user.email == EMAIL
        assert result.user.name == "Ramesh"
        assert result.user.location == "Pune"
        assert result.user.agri_creds == 0
        assert result.user.language == "hindi"
        assert result.session.token

    def test_join_date_is_now(self, local_backend):
        before = now_utc()
        result = local_backend.sign_up(EMAIL, "pw", {})
        assert before <= result.user.join_date <= now_utc()

    def test_accepts_camel_case_fields(self, local_backend):
        result = local_backend.sign_up(EMAIL, "pw", {"landSize": "3 acres"})
        assert result.user.land_size == "3 acres"

    def test_caller_cannot_set_identity_or_creds(self, local_backend):
        result = local_backend.sign_up(EMAIL, "pw", {"id": "mine", "agriCreds": 500})

        assert result.user.id != "mine"
        assert result.user.agri_creds == 0

    def test_duplicate_email_fails(self, local_backend):
        local_backend.sign_up(EMAIL, "pw", {})

        result = local_backend.sign_up(EMAIL.upper(), "other", {})

        assert result.user is None
        assert result.error == "User with this email already exists"
        assert result.error_code == "ALREADY_EXISTS"

    def test_wrong_typed_field_is_rejected(self, local_backend, store):
        result = local_backend.sign_up(EMAIL, "pw", {"crops": "wheat"})

        assert result.user is None
        assert result.error_code == "VALIDATION_ERROR"
        assert "crops" in result.error
        assert store.get_json("agrisathi_mock_users") is None

    def test_unwritable_audit_log_does_not_fail(self, config, store, dev_sms, tmp_path):
        backend = LocalAuthBackend(config, store, dev_sms, SecurityLogger(tmp_path))

        result = backend.sign_up(EMAIL, "pw", {})

        assert result.error is None
        assert result.session is not None

    def test_failed_session_start_leaves_no_account(self, local_backend):
        with patch.object(SessionStore, "create", side_effect=OSError("disk full")):
            failed = local_backend.sign_up(EMAIL, "pw", {})

        retry = local_backend.sign_up(EMAIL, "pw", {})

        assert failed.error == "Signup failed"
        assert retry.error is None
        assert retry.user.email == EMAIL

    def test_users_persist_across_instances(self, config, store, dev_sms, security_logger):
        LocalAuthBackend(config, store, dev_sms, security_logger).sign_up(EMAIL, "pw", {})

        reopened = LocalAuthBackend(config, JsonFileStore(store.path), dev_sms, security_logger)
        assert reopened.sign_in(EMAIL, "pw").user is not None


class TestSignIn:

    def test_sign_up_then_sign_in_same_id(self, local_backend):
        created = local_backend.sign_up(EMAIL, "pw", {})
        signed_in = local_backend.sign_in(EMAIL, "pw")

        assert signed_in.user.id == created.user.id

    def test_sign_in_issues_fresh_token(self, local_backend):
        created = local_backend.sign_up(EMAIL, "pw", {})
        signed_in = local_backend.sign_in(EMAIL, "pw")

        assert signed_in.session.token != created.session.token

    def test_password_is_not_checked(self, local_backend):
        local_backend.sign_up(EMAIL, "pw", {})
        assert local_backend.sign_in(EMAIL, "anything").error is None

    def test_unknown_email(self, local_backend):
        result = local_backend.sign_in("nobody@example.com", "pw")

        assert result.user is None
        assert result.error == "User not found"
        assert result.error_code == "NOT_FOUND"


class TestSignOutAndCurrentUser:

    def test_current_user_after_sign_up(self, local_backend):
        created = local_backend.sign_up(EMAIL, "pw", {})
        assert local_backend.get_current_user().id == created.user.id

    def test_sign_out_clears_session(self, local_backend):
        local_backend.sign_up(EMAIL, "pw", {})

        assert local_backend.sign_out().success is True
        assert local_backend.get_current_user() is None

    def test_sign_out_twice_is_not_an_error(self, local_backend):
        assert local_backend.sign_out().success is True
        assert local_backend.sign_out().success is True

    def test_expired_session_reads_as_signed_out(self, local_backend):
        local_backend.sign_up(EMAIL, "pw", {})
        later = now_utc() + timedelta(hours=25)

        with patch("auth.session.now_utc", return_value=later):
            assert local_backend.get_current_user() is None

    def test_expired_session_is_audited(self, local_backend, security_logger):
        local_backend.sign_up(EMAIL, "pw", {})
        later = now_utc() + timedelta(hours=25)

        with patch("auth.session.now_utc", return_value=later):
            local_backend.get_current_user()

        events = security_logger.get_recent_events(event_type=SecurityEvent.SESSION_EXPIRED)
        assert len(events) == 1
        assert events[0]["details"] == {"slot": "agrisathi_mock_auth"}

    def test_unreadable_session_reads_as_signed_out(self, config, dev_sms, security_logger):
        broken = Mock()
        broken.get_json.side_effect = ValueError("corrupt")
        backend = LocalAuthBackend(config, broken, dev_sms, security_logger)

        assert backend.get_current_user() is None


class TestUpdateProfile:

    def test_requires_session(self, local_backend):
        result = local_backend.update_profile({"name": "X"})

        assert result.error == "No active session"
        assert result.error_code == "NOT_AUTHENTICATED"

    def test_shallow_merge(self, local_backend):
        created = local_backend.sign_up(
            EMAIL, "pw", {"name": "Ramesh", "location": "Pune", "crops": ["wheat", "rice"]}
        )

        local_backend.update_profile({"name": "X", "crops": ["cotton"]})
        current = local_backend.get_current_user()

        assert current.name == "X"
        assert current.crops == ["cotton"]
        assert current.location == "Pune"
        assert current.id == created.user.id
        assert current.email == created.user.email
        assert current.join_date == created.user.join_date

    def test_keeps_session_token(self, local_backend):
        created = local_backend.sign_up(EMAIL, "pw", {})

        updated = local_backend.update_profile({"name": "X"})

        assert updated.session.token == created.session.token
        assert updated.session.user.name == "X"

    def test_directory_is_updated(self, local_backend):
        local_backend.sign_up(EMAIL, "pw", {})
        local_backend.update_profile({"location": "Nagpur"})
        local_backend.sign_out()

        assert local_backend.sign_in(EMAIL, "pw").user.location == "Nagpur"

    def test_immutable_fields_ignored(self, local_backend):
        created = local_backend.sign_up(EMAIL, "pw", {})

        result = local_backend.update_profile({"id": "other", "email": "x@example.com"})

        assert result.user.id == created.user.id
        assert result.user.email == EMAIL

    def test_wrong_typed_value_is_rejected_and_not_stored(self, local_backend):
        created = local_backend.sign_up(EMAIL, "pw", {"landSize": "2 acres"})

        result = local_backend.update_profile({"landSize": 5})

        assert result.user is None
        assert result.error_code == "VALIDATION_ERROR"
        assert "land_size" in result.error
        assert local_backend.get_current_user().land_size == "2 acres"
        local_backend.sign_out()
        assert local_backend.sign_in(EMAIL, "pw").user.id == created.user.id
        assert local_backend.sign_up("other@example.com", "pw", {}).error is None

    def test_failed_session_refresh_restores_record(self, local_backend):
        local_backend.sign_up(EMAIL, "pw", {"location": "Pune"})

        with patch.object(SessionStore, "refresh_user", side_effect=OSError("disk full")):
            result = local_backend.update_profile({"location": "Nagpur"})

        assert result.error == "Profile update failed"
        local_backend.sign_out()
        assert local_backend.sign_in(EMAIL, "pw").user.location == "Pune"


class TestSendOtp:

    def test_send_shows_code_on_dev_board(self, local_backend, dev_sms):
        result = local_backend.send_otp(PHONE)

        assert result.success is True
        notice = dev_sms.dev_display.latest_for(PHONE)
        assert notice.otp == local_backend.otp_store.get(PHONE).otp
        assert notice.valid_for == "Valid for 5 minutes"

    def test_delivery_failure(self, config, store, failing_sms, security_logger):
        backend = LocalAuthBackend(config, store, failing_sms, security_logger)

        result = backend.send_otp(PHONE)

        assert result.success is False
        assert result.error_code == "DELIVERY_FAILED"
        assert "Fast2SMS" in result.error

    def test_delivery_failure_is_audited(self, config, store, failing_sms, security_logger):
        LocalAuthBackend(config, store, failing_sms, security_logger).send_otp(PHONE)

        events = security_logger.get_recent_events(event_type=SecurityEvent.OTP_DELIVERY_FAILED)
        assert len(events) == 1
        assert events[0]["phone"] == "*********0000"


class TestVerifyOtp:

    def test_not_found(self, local_backend):
        result = local_backend.verify_otp(PHONE, "123456")
        assert result.success is False
        assert result.error == "OTP not found"

    def test_wrong_code_then_right_code(self, local_backend):
        with patch("auth.otp_store.generate_otp", return_value="123456"):
            local_backend.send_otp(PHONE)

        wrong = local_backend.verify_otp(PHONE, "000000")
        right = local_backend.verify_otp(PHONE, "123456")

        assert wrong.success is False
        assert "Invalid" in wrong.error
        assert right.success is True

    def test_many_wrong_guesses_do_not_burn_code(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)
        wrong = "000000" if code != "000000" else "111111"

        for _ in range(10):
            assert local_backend.verify_otp(PHONE, wrong).error_code == "INVALID_OTP"
        assert local_backend.verify_otp(PHONE, code).success is True

    def test_verify_does_not_consume(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)

        local_backend.verify_otp(PHONE, code)

        assert local_backend.otp_store.verify(PHONE, code) is OtpOutcome.VALID

    def test_expired(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)
        later = now_utc() + timedelta(minutes=5, seconds=1)

        with patch("auth.otp_store.now_utc", return_value=later):
            result = local_backend.verify_otp(PHONE, code)

        assert result.success is False
        assert result.error == "OTP expired"
        assert result.error_code == "OTP_EXPIRED"

    def test_resend_invalidates_previous_code(self, local_backend):
        with patch("auth.otp_store.generate_otp", side_effect=["111111", "222222"]):
            local_backend.send_otp(PHONE)
            local_backend.send_otp(PHONE)

        assert local_backend.verify_otp(PHONE, "111111").success is False
        assert local_backend.verify_otp(PHONE, "222222").success is True


class TestPhoneSignUp:

    def test_asha_end_to_end(self, local_backend, read_otp):
        """Send, read the code from the dev board, verify, then sign up."""
        assert local_backend.send_otp(PHONE).success is True
        code = read_otp(PHONE)

        assert local_backend.verify_otp(PHONE, code).success is True
        result = local_backend.sign_up_with_phone(PHONE, code, {"name": "Asha"})

        assert result.error is None
        assert result.user.name == "Asha"
        assert result.user.phone == PHONE
        assert result.user.email == f"{PHONE}@agrisathi.local"
        assert result.session.token

    def test_code_is_consumed_after_sign_up(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)
        local_backend.sign_up_with_phone(PHONE, code, {"name": "Asha"})

        replay = local_backend.sign_up_with_phone(PHONE, code, {"name": "Asha"})

        assert replay.error == "OTP not found"

    def test_wrong_code(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)
        wrong = "000000" if code != "000000" else "111111"

        result = local_backend.sign_up_with_phone(PHONE, wrong, {})

        assert result.user is None
        assert result.error_code == "INVALID_OTP"

    def test_duplicate_phone_keeps_code_usable(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        local_backend.sign_up_with_phone(PHONE, read_otp(PHONE), {"name": "Asha"})
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)

        duplicate = local_backend.sign_up_with_phone(PHONE, code, {"name": "Asha 2"})

        assert duplicate.error == "User with this phone number already exists"
        assert duplicate.error_code == "ALREADY_EXISTS"
        # The failed sign-up did not burn the code
        assert local_backend.sign_in_with_phone(PHONE, code).user.name == "Asha"

    def test_failed_consume_leaves_no_account_or_session(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)

        with patch.object(OtpStore, "consume", side_effect=OSError("disk full")):
            failed = local_backend.sign_up_with_phone(PHONE, code, {"name": "Asha"})

        assert failed.error == "Phone signup failed"
        assert local_backend.get_current_user() is None
        retry = local_backend.sign_up_with_phone(PHONE, code, {"name": "Asha"})
        assert retry.user.name == "Asha"

    def test_profile_exposes_both_spellings_via_store(self, local_backend, store, read_otp):
        local_backend.send_otp(PHONE)
        local_backend.sign_up_with_phone(PHONE, read_otp(PHONE), {"land_size": "1 acre"})

        record = store.get_json("agrisathi_mock_users")[0]
        assert record["landSize"] == "1 acre"
        assert record["agriCreds"] == 0


class TestPhoneSignIn:

    def test_sign_in_existing_phone(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        created = local_backend.sign_up_with_phone(PHONE, read_otp(PHONE), {"name": "Asha"})
        local_backend.sign_out()

        local_backend.send_otp(PHONE)
        result = local_backend.sign_in_with_phone(PHONE, read_otp(PHONE))

        assert result.user.id == created.user.id
        assert result.session.token != created.session.token

    def test_unknown_phone_keeps_code(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)

        result = local_backend.sign_in_with_phone(PHONE, code)

        assert result.error == "User not found"
        assert local_backend.otp_store.get(PHONE) is not None

    def test_consumed_after_sign_in(self, local_backend, read_otp):
        local_backend.send_otp(PHONE)
        local_backend.sign_up_with_phone(PHONE, read_otp(PHONE), {})
        local_backend.send_otp(PHONE)
        code = read_otp(PHONE)

        local_backend.sign_in_with_phone(PHONE, code)

        assert local_backend.otp_store.get(PHONE) is None


class TestNotifications:

    def test_sign_in_and_out_are_published(self, local_backend):
        seen = []
        local_backend.on_auth_state_change(seen.append)

        local_backend.sign_up(EMAIL, "pw", {"name": "Ramesh"})
        local_backend.sign_out()

        assert seen[0].name == "Ramesh"
        assert seen[1] is None

    def test_unsubscribe_stops_updates(self, local_backend):
        seen = []
        subscription = local_backend.on_auth_state_change(seen.append)
        subscription.unsubscribe()

        local_backend.sign_up(EMAIL, "pw", {})

        assert seen == []


class TestBoundary:

    def test_unexpected_error_becomes_result(self, config, dev_sms, security_logger):
        store = Mock()
        store.get_json.side_effect = OSError("disk gone")
        backend = LocalAuthBackend(
            config, store, dev_sms, security_logger, sessions=Mock(spec=SessionStore)
        )

        result = backend.sign_up(EMAIL, "pw", {})

        assert result.user is None
        assert result.error == "Signup failed"
        assert result.error_code == "INTERNAL_ERROR"
