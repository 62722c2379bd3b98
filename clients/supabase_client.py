"""
HTTP client for the hosted identity + database service (Supabase).

Speaks the GoTrue auth API (/auth/v1) and the PostgREST table API (/rest/v1)
directly over requests. Every request carries an explicit timeout.

Error contract:
- SupabaseError: the service answered and refused (4xx). The message is the
  service's own human-readable text.
- SupabaseUnavailableError: the service could not be reached, timed out, or
  failed (5xx). Callers treat this as "backend unavailable".
"""

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)


class SupabaseError(Exception):
    """Service rejected the request."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class SupabaseUnavailableError(SupabaseError):
    """Service unreachable, timed out, or returned a server error."""


class SupabaseClient:
    """Thin REST wrapper around Supabase auth and table endpoints."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        service_role_key: str | None = None,
        timeout_seconds: float = 10,
    ):
        """
        Initialize with project credentials.

        Args:
            url: Project URL (https://<project>.supabase.co)
            anon_key: Public anon key, sent as apikey on every request
            service_role_key: Admin key, required only for admin_* calls
            timeout_seconds: Timeout for each request

        Raises:
            ValueError: If url or anon_key is empty
        """
        if not url:
            raise ValueError("url is required")
        if not anon_key:
            raise ValueError("anon_key is required")

        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.service_role_key = service_role_key
        self.timeout_seconds = timeout_seconds

    @property
    def has_admin_access(self) -> bool:
        return bool(self.service_role_key)

    def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        admin: bool = False,
        params: dict | None = None,
        json: Any = None,
        headers: dict | None = None,
    ) -> Any:
        if admin and not self.service_role_key:
            raise SupabaseUnavailableError("Service role key not configured")

        key = self.service_role_key if admin else self.anon_key
        request_headers = {
            "apikey": key,
            "Authorization": f"Bearer {access_token or key}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        try:
            response = requests.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json,
                headers=request_headers,
                timeout=self.timeout_seconds,
            )
        except requests.exceptions.RequestException as e:
            logger.error(f"Supabase {method} {path} connection failed: {e}")
            raise SupabaseUnavailableError(f"Connection failed: {e}")

        if response.status_code >= 500:
            logger.error(f"Supabase {method} {path} server error: {response.status_code}")
            raise SupabaseUnavailableError(
                f"Server error: {response.status_code}", response.status_code
            )

        if not response.content:
            data = None
        else:
            try:
                data = response.json()
            except ValueError:
                raise SupabaseUnavailableError("Invalid JSON from service", response.status_code)

        if response.status_code >= 400:
            message = _error_message(data) or f"Request failed: {response.status_code}"
            logger.warning(f"Supabase {method} {path} rejected: {message}")
            raise SupabaseError(message, response.status_code)

        return data

    # -- Auth (GoTrue) ---------------------------------------------------

    def sign_up(self, email: str, password: str, metadata: dict | None = None) -> dict:
        """Create an auth user. Returns the GoTrue response (user and maybe session)."""
        return self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )

    def sign_in_with_password(self, email: str, password: str) -> dict:
        """Exchange credentials for a session (access_token, user, ...)."""
        return self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    def sign_out(self, access_token: str) -> None:
        self._request("POST", "/auth/v1/logout", access_token=access_token)

    def get_user(self, access_token: str) -> dict:
        return self._request("GET", "/auth/v1/user", access_token=access_token)

    def admin_create_user(self, email: str, phone: str, metadata: dict | None = None) -> dict:
        """Create a pre-confirmed auth user (no password) for phone sign-up."""
        return self._request(
            "POST",
            "/auth/v1/admin/users",
            admin=True,
            json={
                "email": email,
                "email_confirm": True,
                "user_metadata": {"phone": phone, **(metadata or {})},
            },
        )

    def admin_create_session(self, email: str) -> dict:
        """Mint a session for an existing user via a one-shot magic link."""
        link = self._request(
            "POST",
            "/auth/v1/admin/generate_link",
            admin=True,
            json={"type": "magiclink", "email": email},
        )
        token_hash = (link.get("properties") or {}).get("hashed_token") or link.get("hashed_token")
        if not token_hash:
            raise SupabaseUnavailableError("generate_link returned no token")
        return self._request(
            "POST",
            "/auth/v1/verify",
            json={"type": "magiclink", "token_hash": token_hash},
        )

    # -- Tables (PostgREST) ----------------------------------------------

    def select(
        self,
        table: str,
        filters: dict[str, str],
        access_token: str | None = None,
        admin: bool = False,
    ) -> list[dict]:
        """Rows matching PostgREST filters, e.g. {"phone": "eq.+91..."}."""
        return self._request(
            "GET",
            f"/rest/v1/{table}",
            access_token=access_token,
            admin=admin,
            params={"select": "*", **filters},
        ) or []

    def insert(
        self,
        table: str,
        row: dict,
        access_token: str | None = None,
        admin: bool = False,
    ) -> list[dict]:
        return self._request(
            "POST",
            f"/rest/v1/{table}",
            access_token=access_token,
            admin=admin,
            json=row,
            headers={"Prefer": "return=representation"},
        ) or []

    def upsert(
        self,
        table: str,
        row: dict,
        on_conflict: str,
        access_token: str | None = None,
        admin: bool = False,
    ) -> list[dict]:
        return self._request(
            "POST",
            f"/rest/v1/{table}",
            access_token=access_token,
            admin=admin,
            params={"on_conflict": on_conflict},
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        ) or []

    def update(
        self,
        table: str,
        filters: dict[str, str],
        values: dict,
        access_token: str | None = None,
        admin: bool = False,
    ) -> list[dict]:
        return self._request(
            "PATCH",
            f"/rest/v1/{table}",
            access_token=access_token,
            admin=admin,
            params=filters,
            json=values,
            headers={"Prefer": "return=representation"},
        ) or []

    def delete(
        self,
        table: str,
        filters: dict[str, str],
        access_token: str | None = None,
        admin: bool = False,
    ) -> None:
        self._request(
            "DELETE", f"/rest/v1/{table}", access_token=access_token, admin=admin, params=filters
        )


def _error_message(data: Any) -> str | None:
    """Pull the human-readable message out of a GoTrue or PostgREST error body."""
    if not isinstance(data, dict):
        return None
    for field in ("msg", "error_description", "message", "error"):
        value = data.get(field)
        if isinstance(value, str) and value:
            return value
    return None
