"""
Auth-state change notifications.

Synchronous in-process pub/sub. Listeners run immediately in the caller's
thread, in subscription order. Listener errors are logged but never
propagate; the sign-in or sign-out has already been persisted.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from auth.types import UserProfile

logger = logging.getLogger(__name__)

AuthStateCallback = Callable[[UserProfile | None], None]


@dataclass
class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop updates."""

    _unsubscribe: Callable[[], None]
    active: bool = True

    def unsubscribe(self) -> None:
        if self.active:
            self._unsubscribe()
            self.active = False


class AuthStateNotifier:
    """Fan out the current user (or None) to every listener."""

    def __init__(self):
        self._listeners: list[AuthStateCallback] = []

    def subscribe(self, callback: AuthStateCallback) -> Subscription:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return Subscription(_unsubscribe=_remove)

    def publish(self, user: UserProfile | None) -> None:
        for callback in list(self._listeners):
            try:
                callback(user)
            except Exception:
                logger.exception(
                    "Auth state listener %s failed",
                    getattr(callback, "__name__", repr(callback)),
                )

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
