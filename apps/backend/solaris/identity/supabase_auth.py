from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from solaris.errors import AuthError
from solaris.util.logging import get_logger
from solaris.util.security import SecretStore

from .base import IdentityProvider, UserIdentity

logger = get_logger(__name__)

REFRESH_SECRET_NAME = "supabase:refresh_token"
EXPIRY_SKEW_SECONDS = 30.0


@dataclass
class _AuthSession:
    user: UserIdentity
    access_token: str
    refresh_token: str
    expires_at: float


class SupabaseAuthProvider(IdentityProvider):
    def __init__(
        self,
        base_url: str,
        anon_key: str,
        secret_store: SecretStore,
        session_ref: dict[str, str] | None = None,
        on_session_ref: Callable[[dict[str, str] | None], None] | None = None,
        timeout: float = 10.0,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__()
        self.base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._secret_store = secret_store
        self._session_ref = session_ref
        self._on_session_ref = on_session_ref
        self._clock = clock
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))
        self._session: _AuthSession | None = None
        self._lock = threading.RLock()

    def current_user(self) -> UserIdentity | None:
        with self._lock:
            return self._session.user if self._session else None

    def access_token(self) -> str | None:
        with self._lock:
            session = self._session
            if session is None:
                return None
            if session.expires_at - EXPIRY_SKEW_SECONDS > self._clock():
                return session.access_token
            try:
                self._refresh(session.refresh_token)
            except AuthError:
                logger.warning("access token refresh failed; signing out locally")
                self._clear_session()
                return None
            return self._session.access_token if self._session else None

    def sign_in(self, email: str, password: str) -> UserIdentity:
        payload = self._post("/auth/v1/token", {"email": email, "password": password}, params={"grant_type": "password"})
        user = self._accept_session(payload)
        logger.info("signed in as %s", user.id)
        return user

    def sign_up(self, email: str, password: str) -> UserIdentity | None:
        payload = self._post("/auth/v1/signup", {"email": email, "password": password})
        if not payload.get("access_token"):
            logger.info("sign up accepted; email confirmation pending")
            return None
        return self._accept_session(payload)

    def sign_out(self) -> None:
        with self._lock:
            session = self._session
        if session is not None:
            try:
                self._post("/auth/v1/logout", {}, bearer=session.access_token)
            except AuthError as exc:
                logger.warning("remote sign out failed: %s", exc)
        self._clear_session()

    def restore(self) -> UserIdentity | None:
        refresh_token = self._secret_store.get(self._session_ref)
        if not refresh_token:
            return None
        try:
            with self._lock:
                self._refresh(refresh_token)
        except AuthError as exc:
            logger.info("stored session could not be restored: %s", exc)
            self._clear_session()
            return None
        return self.current_user()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _refresh(self, refresh_token: str) -> None:
        payload = self._post("/auth/v1/token", {"refresh_token": refresh_token}, params={"grant_type": "refresh_token"})
        self._accept_session(payload)

    def _accept_session(self, payload: dict[str, Any]) -> UserIdentity:
        raw_user = payload.get("user")
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        if not isinstance(raw_user, dict) or not access_token or not refresh_token:
            raise AuthError("Malformed session payload")

        user = UserIdentity(id=str(raw_user.get("id", "")), email=str(raw_user.get("email", "")))
        if not user.id:
            raise AuthError("Malformed session payload")
        expires_in = float(payload.get("expires_in") or 3600)

        with self._lock:
            previous = self._session.user if self._session else None
            self._session = _AuthSession(
                user=user,
                access_token=str(access_token),
                refresh_token=str(refresh_token),
                expires_at=self._clock() + expires_in,
            )
            ref = self._secret_store.store(REFRESH_SECRET_NAME, str(refresh_token)).as_dict()
            self._session_ref = ref
        if self._on_session_ref is not None:
            self._on_session_ref(ref)
        if previous != user:
            self._notify(user)
        return user

    def _clear_session(self) -> None:
        with self._lock:
            had_session = self._session is not None
            self._session = None
            self._secret_store.delete(self._session_ref)
            self._session_ref = None
        if self._on_session_ref is not None:
            self._on_session_ref(None)
        if had_session:
            self._notify(None)

    def _post(
        self,
        path: str,
        body: dict[str, Any],
        params: dict[str, str] | None = None,
        bearer: str | None = None,
    ) -> dict[str, Any]:
        headers = {"apikey": self._anon_key, "Content-Type": "application/json"}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        try:
            response = self._client.post(f"{self.base_url}{path}", json=body, params=params, headers=headers)
        except httpx.HTTPError as exc:
            raise AuthError(f"Identity provider unreachable: {type(exc).__name__}") from exc

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = {}
        if response.status_code >= 400:
            message = ""
            if isinstance(payload, dict):
                message = str(payload.get("error_description") or payload.get("msg") or payload.get("message") or "")
            raise AuthError(message or f"Identity provider returned {response.status_code}")
        return payload if isinstance(payload, dict) else {}
