"""Authentication configuration."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

SUPABASE_PLACEHOLDER_URL = "https://your-project-id.supabase.co"

DEFAULT_AVATAR_URL = (
    "https://images.unsplash.com/photo-1607990281513-2c110a25bd8c"
    "?w=150&h=150&fit=crop&crop=face"
)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


class SmsConfig(BaseModel):
    """SMS provider selection and credentials."""

    provider: str = Field(
        default="fast2sms",
        description="One of twilio, messagebird, textlocal, fast2sms",
    )
    api_key: str | None = None
    sender_id: str = Field(default="AGRISATH", description="Sender ID / originator")
    api_url: str | None = Field(
        default=None,
        description="Override for the provider endpoint (gateways, proxies)",
    )
    dev_mode: bool = Field(
        default=False,
        description="Show OTPs on the development notice board instead of sending",
    )


class SupabaseConfig(BaseModel):
    """Connection parameters for the hosted identity + database service."""

    url: str | None = None
    anon_key: str | None = None
    service_role_key: str | None = Field(
        default=None,
        description="Needed only for phone sign-up/sign-in against the hosted service",
    )

    @property
    def is_configured(self) -> bool:
        """True when URL and anon key are present and not template placeholders."""
        return bool(
            self.url
            and self.anon_key
            and self.url != SUPABASE_PLACEHOLDER_URL
            and "your_" not in self.anon_key
        )


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short durations,
    hours for longer ones) to make configuration intuitive.
    """

    # OTP settings
    otp_expiry_minutes: int = Field(
        default=5,
        description="How long an issued OTP remains valid",
        ge=1,
        le=30,
    )

    # Session settings
    session_expiry_hours: int = Field(
        default=24,
        description="Local session lifetime in hours",
        ge=1,
        le=720,
    )

    # Outbound HTTP (hosted backend and SMS providers)
    request_timeout_seconds: float = Field(
        default=10,
        description="Timeout applied to every outbound HTTP request",
        ge=1,
        le=120,
    )

    # Development notice board
    dev_notice_seconds: int = Field(
        default=10,
        description="How long a development OTP notice stays visible",
        ge=1,
        le=120,
    )

    # Backend selection
    use_mock_apis: bool = Field(
        default=False,
        description="Force the local backend regardless of remote configuration",
    )

    # Device storage
    storage_path: str = Field(
        default=".agrisathi/auth_store.json",
        description="JSON file backing the local store (users, session, OTPs)",
    )
    valkey_url: str | None = Field(
        default=None,
        description="Use a Valkey/Redis server as the local store instead of the JSON file",
    )
    audit_log_path: str | None = Field(
        default=None,
        description="Append security events to this JSON-lines file",
    )

    # Profile defaults
    local_email_domain: str = Field(
        default="agrisathi.local",
        description="Domain of the placeholder email used for phone-only accounts",
    )
    default_language: str = "hindi"
    default_avatar_url: str = DEFAULT_AVATAR_URL

    # Application
    app_name: str = Field(
        default="AgriSathi",
        description="Application name for SMS text",
    )

    sms: SmsConfig = Field(default_factory=SmsConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """
        Build config from environment variables.

        Loads a .env file first if present; real environment variables win.
        """
        load_dotenv()

        app_env = os.getenv("APP_ENV", "development").strip().lower()
        overrides = {}
        timeout = os.getenv("AUTH_REQUEST_TIMEOUT_SECONDS")
        if timeout:
            overrides["request_timeout_seconds"] = float(timeout)

        for name, env in (
            ("storage_path", "AUTH_STORAGE_PATH"),
            ("valkey_url", "VALKEY_URL"),
            ("audit_log_path", "AUTH_AUDIT_LOG"),
        ):
            if os.getenv(env):
                overrides[name] = os.getenv(env)

        return cls(
            use_mock_apis=_env_flag("USE_MOCK_APIS"),
            sms=SmsConfig(
                provider=os.getenv("SMS_PROVIDER") or "fast2sms",
                api_key=os.getenv("SMS_API_KEY") or None,
                sender_id=os.getenv("SMS_SENDER_ID") or "AGRISATH",
                api_url=os.getenv("SMS_API_URL") or None,
                dev_mode=app_env == "development",
            ),
            supabase=SupabaseConfig(
                url=os.getenv("SUPABASE_URL") or None,
                anon_key=os.getenv("SUPABASE_ANON_KEY") or None,
                service_role_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None,
            ),
            **overrides,
        )
