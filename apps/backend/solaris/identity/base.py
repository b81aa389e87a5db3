from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from solaris.errors import AuthError
from solaris.util.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class UserIdentity:
    id: str
    email: str


SessionListener = Callable[[UserIdentity | None], None]


class IdentityProvider(ABC):
    def __init__(self) -> None:
        self._listeners: list[SessionListener] = []
        self._listeners_lock = threading.Lock()

    @abstractmethod
    def current_user(self) -> UserIdentity | None:
        raise NotImplementedError

    @abstractmethod
    def access_token(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def sign_in(self, email: str, password: str) -> UserIdentity:
        raise NotImplementedError

    @abstractmethod
    def sign_up(self, email: str, password: str) -> UserIdentity | None:
        """Create an account. Returns ``None`` when the provider requires email confirmation first."""
        raise NotImplementedError

    @abstractmethod
    def sign_out(self) -> None:
        raise NotImplementedError

    def restore(self) -> UserIdentity | None:
        return self.current_user()

    def close(self) -> None:
        return None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        with self._listeners_lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, user: UserIdentity | None) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(user)
            except Exception:
                logger.exception("session listener failed")


class StaticIdentityProvider(IdentityProvider):
    """Single fixed account used with the local SQLite backend."""

    def __init__(self, user_id: str, email: str) -> None:
        super().__init__()
        self._user = UserIdentity(id=user_id, email=email)
        self._signed_in = True

    def current_user(self) -> UserIdentity | None:
        return self._user if self._signed_in else None

    def access_token(self) -> str | None:
        return None

    def sign_in(self, email: str, password: str) -> UserIdentity:
        if email.strip().lower() != self._user.email.lower():
            raise AuthError("Unknown account")
        self._signed_in = True
        self._notify(self._user)
        return self._user

    def sign_up(self, email: str, password: str) -> UserIdentity | None:
        raise AuthError("Sign up is not available with the local backend")

    def sign_out(self) -> None:
        if not self._signed_in:
            return
        self._signed_in = False
        self._notify(None)
