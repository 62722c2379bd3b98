"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from auth.exceptions import AuthError


class UserProfile(BaseModel):
    """
    A farmer's account profile (canonical shape).

    Backends translate to and from their own storage spellings in
    auth/serializers.py; this model is the only shape used in between.
    """

    id: str
    email: str
    name: str = ""
    phone: str = ""
    location: str = ""
    land_size: str = ""
    experience: str = ""
    language: str = "hindi"
    crops: list[str] = Field(default_factory=list)
    avatar_url: str = ""
    agri_creds: int = 0
    join_date: datetime


class Session(BaseModel):
    """An active sign-in. Carries a snapshot of the user at creation/update."""

    user: UserProfile
    token: str = Field(..., description="Session token (opaque string)")
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class OtpRecord(BaseModel):
    """An issued one-time password awaiting verification."""

    phone: str
    otp: str = Field(..., min_length=6, max_length=6)
    created_at: datetime
    expires_at: datetime
    used: bool  # Required - fail closed, no default


class OtpOutcome(Enum):
    """Result of checking a candidate code against the stored OTP."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    VALID = "valid"


class AuthResult(BaseModel):
    """Outcome of an account operation: a user and session, or an error."""

    user: UserProfile | None = None
    session: Session | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, user: UserProfile, session: Session | None) -> "AuthResult":
        return cls(user=user, session=session)

    @classmethod
    def failed(cls, error: AuthError | str, code: str | None = None) -> "AuthResult":
        if isinstance(error, AuthError):
            return cls(error=str(error), error_code=error.code)
        return cls(error=error, error_code=code)


class ActionResult(BaseModel):
    """Outcome of an operation with no payload (sign-out, OTP send/verify)."""

    success: bool
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls) -> "ActionResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: AuthError | str, code: str | None = None) -> "ActionResult":
        if isinstance(error, AuthError):
            return cls(success=False, error=str(error), error_code=error.code)
        return cls(success=False, error=error, error_code=code)


class UnifiedAuthResult(BaseModel):
    """Façade output: the user is the UI-facing dict with both field spellings."""

    user: dict[str, Any] | None = None
    session: Session | None = None
    error: str | None = None
    error_code: str | None = None


# Request payloads for the HTTP surface


class ProfileFields(BaseModel):
    """Optional profile fields accepted at sign-up (either spelling)."""

    model_config = {"extra": "allow"}

    name: str | None = None
    phone: str | None = None
    location: str | None = None
    experience: str | None = None
    language: str | None = None
    crops: list[str] | None = None


class SignUpRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)
    profile: ProfileFields = Field(default_factory=ProfileFields)


class SignInRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class PhoneRequest(BaseModel):
    phone: str = Field(..., min_length=4)


class PhoneOtpRequest(BaseModel):
    phone: str = Field(..., min_length=4)
    otp: str = Field(..., min_length=1)


class PhoneSignUpRequest(PhoneOtpRequest):
    profile: ProfileFields = Field(default_factory=ProfileFields)
