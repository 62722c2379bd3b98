"""
SMS delivery for OTP codes.

One of four interchangeable providers executes per send. Delivery failure
is an expected, recoverable condition: every send returns an
SmsDeliveryResult and never raises past this module.

In development mode codes are not transmitted; they are posted to the
DevOtpDisplay notice board, which the web client renders as a
self-dismissing banner.
"""

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import requests

from utils.masking import mask_phone
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

PROVIDERS = ("twilio", "messagebird", "textlocal", "fast2sms")

TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{account}/Messages.json"
MESSAGEBIRD_URL = "https://rest.messagebird.com/messages"
TEXTLOCAL_URL = "https://api.textlocal.in/send/"
FAST2SMS_URL = "https://www.fast2sms.com/dev/bulkV2"


@dataclass
class SmsDeliveryResult:
    """Outcome of a single OTP delivery attempt."""

    delivered: bool
    provider_message_id: str | None = None
    error: str | None = None


class SmsProviderError(Exception):
    """Provider rejected the message or could not be reached."""


@dataclass
class DevOtpNotice:
    """An on-screen OTP notice shown in development mode."""

    phone: str
    otp: str
    valid_for: str
    created_at: datetime
    dismiss_at: datetime
    dismissed: bool = False

    @property
    def is_visible(self) -> bool:
        return not self.dismissed and now_utc() < self.dismiss_at

    def dismiss(self) -> None:
        """Manual dismissal (the notice's Dismiss button)."""
        self.dismissed = True


@dataclass
class DevOtpDisplay:
    """Notice board for development OTPs.

    Notices disappear on their own after display_seconds or when dismissed.
    """

    display_seconds: int = 10
    _notices: list[DevOtpNotice] = field(default_factory=list)

    def show(self, phone: str, otp: str, valid_minutes: int) -> DevOtpNotice:
        now = now_utc()
        notice = DevOtpNotice(
            phone=phone,
            otp=otp,
            valid_for=f"Valid for {valid_minutes} minutes",
            created_at=now,
            dismiss_at=now + timedelta(seconds=self.display_seconds),
        )
        self._notices = [n for n in self._notices if n.is_visible]
        self._notices.append(notice)
        logger.info("Development OTP for %s: %s", mask_phone(phone), otp)
        return notice

    def visible_notices(self) -> list[DevOtpNotice]:
        return [n for n in self._notices if n.is_visible]

    def latest_for(self, phone: str) -> DevOtpNotice | None:
        """Most recent notice for phone, visible or not."""
        for notice in reversed(self._notices):
            if notice.phone == phone:
                return notice
        return None


class SmsClient:
    """Send OTP text messages through the configured provider."""

    def __init__(
        self,
        provider: str = "fast2sms",
        api_key: str | None = None,
        sender_id: str = "AGRISATH",
        api_url: str | None = None,
        dev_mode: bool = False,
        timeout_seconds: float = 10,
        valid_minutes: int = 5,
        app_name: str = "AgriSathi",
        dev_display: DevOtpDisplay | None = None,
    ):
        """
        Initialize with provider credentials.

        Args:
            provider: twilio, messagebird, textlocal or fast2sms (unknown names use fast2sms)
            api_key: Provider credential; Twilio expects 'ACCOUNT_SID:AUTH_TOKEN'
            sender_id: Sender ID / originator number
            api_url: Endpoint override for the selected provider
            dev_mode: Post codes to the notice board instead of sending
            timeout_seconds: Timeout for each provider request
            valid_minutes: OTP validity shown in the message text
        """
        self._provider = provider
        self._api_key = api_key
        self._sender_id = sender_id
        self._api_url = api_url
        self._dev_mode = dev_mode
        self._timeout = timeout_seconds
        self._valid_minutes = valid_minutes
        self._app_name = app_name
        self.dev_display = dev_display or DevOtpDisplay()

        self._senders = {
            "twilio": self._send_via_twilio,
            "messagebird": self._send_via_messagebird,
            "textlocal": self._send_via_textlocal,
            "fast2sms": self._send_via_fast2sms,
        }

    @property
    def provider(self) -> str:
        return self._provider if self._provider in PROVIDERS else "fast2sms"

    def _message(self, otp: str) -> str:
        return f"Your {self._app_name} OTP is: {otp}. Valid for {self._valid_minutes} minutes."

    def send(self, phone: str, otp: str) -> SmsDeliveryResult:
        """
        Deliver otp to phone.

        Returns:
            SmsDeliveryResult. delivered=False carries a short error message.
        """
        if self._dev_mode:
            self.dev_display.show(phone, otp, self._valid_minutes)
            return SmsDeliveryResult(delivered=True, provider_message_id="dev-mode")

        sender = self._senders[self.provider]
        try:
            message_id = sender(phone, self._message(otp))
        except SmsProviderError as e:
            logger.error(f"SMS via {self.provider} failed for {mask_phone(phone)}: {e}")
            return SmsDeliveryResult(delivered=False, error=str(e))
        except Exception:
            logger.exception(f"Unexpected error sending SMS via {self.provider} to {mask_phone(phone)}")
            return SmsDeliveryResult(delivered=False, error=f"{self.provider} SMS failed")

        logger.info(f"OTP SMS sent to {mask_phone(phone)} via {self.provider}")
        return SmsDeliveryResult(delivered=True, provider_message_id=message_id)

    def available_providers(self) -> list[str]:
        return list(PROVIDERS)

    def is_configured(self) -> bool:
        """True if an API key is set or messages stay on the dev notice board."""
        return bool(self._api_key) or self._dev_mode

    def _require_key(self, label: str) -> str:
        if not self._api_key:
            raise SmsProviderError(f"{label} API key not configured")
        return self._api_key

    def _post(self, label: str, url: str, **kwargs) -> dict:
        try:
            response = requests.post(url, timeout=self._timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise SmsProviderError(f"{label} connection failed: {e}")

        if not response.ok:
            raise SmsProviderError(f"{label} API error: {response.status_code} {response.reason}")

        try:
            data = response.json()
        except ValueError:
            raise SmsProviderError(f"{label} returned invalid JSON")

        if not isinstance(data, dict):
            raise SmsProviderError(f"{label} returned an unexpected response")
        return data

    def _send_via_twilio(self, phone: str, message: str) -> str | None:
        """Twilio api_key is 'ACCOUNT_SID:AUTH_TOKEN'."""
        api_key = self._require_key("Twilio")
        account, _, _ = api_key.partition(":")
        credentials = base64.b64encode(api_key.encode("utf-8")).decode("ascii")

        data = self._post(
            "Twilio",
            self._api_url or TWILIO_URL.format(account=account),
            headers={"Authorization": f"Basic {credentials}"},
            data={"To": phone, "From": self._sender_id, "Body": message},
        )
        return data.get("sid")

    def _send_via_messagebird(self, phone: str, message: str) -> str | None:
        api_key = self._require_key("MessageBird")
        data = self._post(
            "MessageBird",
            self._api_url or MESSAGEBIRD_URL,
            headers={"Authorization": f"AccessKey {api_key}"},
            json={
                "recipients": [phone],
                "originator": self._sender_id,
                "body": message,
            },
        )
        return data.get("id")

    def _send_via_textlocal(self, phone: str, message: str) -> str | None:
        api_key = self._require_key("TextLocal")
        data = self._post(
            "TextLocal",
            self._api_url or TEXTLOCAL_URL,
            data={
                "apikey": api_key,
                "numbers": phone,
                "sender": self._sender_id,
                "message": message,
            },
        )
        if data.get("status") != "success":
            errors = data.get("errors") or [{}]
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else first
            raise SmsProviderError(str(message or "TextLocal SMS failed"))
        return data.get("message_id")

    def _send_via_fast2sms(self, phone: str, message: str) -> str | None:
        headers = {}
        if self._api_key:
            headers["authorization"] = self._api_key

        data = self._post(
            "Fast2SMS",
            self._api_url or FAST2SMS_URL,
            headers=headers,
            json={
                "route": "dlt",
                "sender_id": self._sender_id,
                "message": message,
                "language": "english",
                "flash": 0,
                "numbers": phone,
            },
        )
        if data.get("return") is False:
            raise SmsProviderError(data.get("message") or "Fast2SMS failed")
        return data.get("request_id") or data.get("message_id")
