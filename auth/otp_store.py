"""One-time password lifecycle for phone authentication.

Records live in the key-value store under otp_<phone>, one per phone.
Verification and consumption are separate steps: a VALID verify leaves the
record in place until the caller's dependent operation has finished, so a
sign-up that fails afterwards (duplicate phone, storage error) does not burn
the code.
"""

import logging
import secrets
from datetime import timedelta

from clients.local_store import KeyValueStore
from auth.config import AuthConfig
from auth.types import OtpOutcome, OtpRecord
from utils.masking import mask_phone
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def generate_otp() -> str:
    """Uniformly random 6-digit code in 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


class OtpStore:
    """Issue, verify and consume phone OTPs."""

    KEY_PREFIX = "otp_"

    def __init__(self, store: KeyValueStore, config: AuthConfig):
        self._store = store
        self._config = config

    def _key(self, phone: str) -> str:
        return f"{self.KEY_PREFIX}{phone}"

    def issue(self, phone: str) -> str:
        """Generate and store a fresh OTP for phone, replacing any prior one.

        Returns the code; delivering it is the caller's job.
        """
        now = now_utc()
        window = timedelta(minutes=self._config.otp_expiry_minutes)
        record = OtpRecord(
            phone=phone,
            otp=generate_otp(),
            created_at=now,
            expires_at=now + window,
            used=False,
        )
        self._store.set_json(
            self._key(phone),
            record.model_dump(mode="json"),
            # Store-level TTL outlives the window so late attempts still read EXPIRED
            expire_seconds=int(window.total_seconds()) * 2,
        )
        logger.info("OTP issued for %s", mask_phone(phone))
        return record.otp

    def get(self, phone: str) -> OtpRecord | None:
        data = self._store.get_json(self._key(phone))
        if data is None:
            return None
        return OtpRecord.model_validate(data)

    def verify(self, phone: str, candidate: str) -> OtpOutcome:
        """Check candidate against the stored OTP.

        Expired records are purged. Mismatches leave the record untouched so
        the user can retry until expiry. VALID does not consume.
        """
        record = self.get(phone)
        if record is None or record.used:
            return OtpOutcome.NOT_FOUND

        if now_utc() > record.expires_at:
            self._store.delete(self._key(phone))
            logger.info("OTP expired for %s", mask_phone(phone))
            return OtpOutcome.EXPIRED

        if not secrets.compare_digest(record.otp.encode(), candidate.strip().encode()):
            logger.info("OTP mismatch for %s", mask_phone(phone))
            return OtpOutcome.MISMATCH

        return OtpOutcome.VALID

    def consume(self, phone: str) -> None:
        """Invalidate the OTP after the dependent operation succeeded.

        Safe to call when no record exists.
        """
        if self._store.delete(self._key(phone)):
            logger.info("OTP consumed for %s", mask_phone(phone))
