"""Security event logging for auth audit trail.

Events go to the agrisathi.security logger and, when an audit path is set,
are appended to a JSON-lines file on the device. Phone numbers are masked
before they are written anywhere. Includes rotation to archive old events.
"""

import json
import logging
import threading
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from utils.masking import mask_phone
from utils.timezone import now_utc, parse_iso

logger = logging.getLogger("agrisathi.security")


class SecurityEvent(Enum):
    """Auth security event types."""

    SIGNUP = "signup"
    SIGNUP_FAILED = "signup_failed"
    SIGNIN = "signin"
    SIGNIN_FAILED = "signin_failed"
    SIGNOUT = "signout"
    PROFILE_UPDATED = "profile_updated"
    OTP_ISSUED = "otp_issued"
    OTP_DELIVERY_FAILED = "otp_delivery_failed"
    OTP_VERIFIED = "otp_verified"
    OTP_REJECTED = "otp_rejected"
    OTP_EXPIRED = "otp_expired"
    OTP_CONSUMED = "otp_consumed"
    SESSION_EXPIRED = "session_expired"
    BACKEND_FALLBACK = "backend_fallback"


class SecurityLogger:
    """Append-only security event logger with rotation."""

    def __init__(self, audit_path: Path | None = None):
        self._audit_path = Path(audit_path) if audit_path else None
        self._lock = threading.Lock()

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: str | None = None,
        phone: str | None = None,
        backend: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record a security event."""
        record = {
            "event_type": event.value,
            "email": email,
            "user_id": user_id,
            "phone": mask_phone(phone) if phone else None,
            "backend": backend,
            "details": details,
            "created_at": now_utc().isoformat(),
        }
        logger.info(
            "%s user_id=%s phone=%s backend=%s details=%s",
            event.value,
            user_id,
            record["phone"],
            backend,
            details,
        )

        if self._audit_path is None:
            return
        # An unwritable audit file must never fail the auth operation
        try:
            with self._lock:
                self._audit_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._audit_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record) + "\n")
        except (OSError, TypeError, ValueError):
            logger.exception(f"Failed to write audit event {event.value} to {self._audit_path}")

    def _read_events(self) -> list[dict]:
        if self._audit_path is None or not self._audit_path.exists():
            return []
        with open(self._audit_path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    def get_recent_events(
        self,
        email: str | None = None,
        user_id: str | None = None,
        event_type: SecurityEvent | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Query recent audit events (newest first) with optional filters."""
        events = self._read_events()

        if email:
            events = [e for e in events if e["email"] == email]
        if user_id:
            events = [e for e in events if e["user_id"] == user_id]
        if event_type:
            events = [e for e in events if e["event_type"] == event_type.value]

        events.reverse()
        return events[:limit]

    def rotate_logs(self, older_than_days: int, output_path: Path) -> int:
        """Archive old events to another file and drop them from the audit log.

        Args:
            older_than_days: Archive events older than this many days
            output_path: Path to append JSON lines to

        Returns:
            Number of events archived
        """
        cutoff = now_utc() - timedelta(days=older_than_days)

        with self._lock:
            events = self._read_events()
            old = [e for e in events if parse_iso(e["created_at"]) < cutoff]
            if not old:
                return 0
            keep = [e for e in events if parse_iso(e["created_at"]) >= cutoff]

            with open(output_path, "a", encoding="utf-8") as f:
                for event in old:
                    f.write(json.dumps(event) + "\n")

            with open(self._audit_path, "w", encoding="utf-8") as f:
                for event in keep:
                    f.write(json.dumps(event) + "\n")

        return len(old)
