"""Local user directory for the on-device auth backend.

All accounts are stored as one list under agrisathi_mock_users, in the
camelCase record shape the device already holds.
"""

from clients.local_store import KeyValueStore
from auth.serializers import profile_from_local, profile_to_local
from auth.types import UserProfile


class LocalUserDirectory:
    """Lookup and persistence of local accounts."""

    KEY = "agrisathi_mock_users"

    def __init__(self, store: KeyValueStore):
        self._store = store

    def list_users(self) -> list[UserProfile]:
        records = self._store.get_json(self.KEY) or []
        return [profile_from_local(record) for record in records]

    def _save_all(self, users: list[UserProfile]) -> None:
        self._store.set_json(self.KEY, [profile_to_local(u) for u in users])

    def get_user_by_email(self, email: str) -> UserProfile | None:
        """Find user by email (case-insensitive)."""
        email = email.strip().lower()
        for user in self.list_users():
            if user.email.lower() == email:
                return user
        return None

    def get_user_by_phone(self, phone: str) -> UserProfile | None:
        for user in self.list_users():
            if user.phone and user.phone == phone:
                return user
        return None

    def get_user_by_id(self, user_id: str) -> UserProfile | None:
        for user in self.list_users():
            if user.id == user_id:
                return user
        return None

    def add_user(self, user: UserProfile) -> None:
        users = self.list_users()
        users.append(user)
        self._save_all(users)

    def replace_user(self, user: UserProfile) -> bool:
        """Overwrite the stored record with the same id.

        Returns:
            True if the user was found and replaced, False if not found.
        """
        users = self.list_users()
        for index, existing in enumerate(users):
            if existing.id == user.id:
                users[index] = user
                self._save_all(users)
                return True
        return False

    def remove_user(self, user_id: str) -> bool:
        users = self.list_users()
        remaining = [u for u in users if u.id != user_id]
        if len(remaining) == len(users):
            return False
        self._save_all(remaining)
        return True
