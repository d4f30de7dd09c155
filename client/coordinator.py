"""
Client side of the token lifecycle.

RefreshCoordinator attaches the access token to outgoing calls, refreshes
proactively shortly before the access token expires, and on a 401 runs a
single shared refresh and retries the call once. Concurrent callers never
send the same refresh token twice: the server would treat the second
request as reuse and revoke the whole session.

Any refresh failure (rejection, timeout, bad response) clears the stored
tokens and raises ReauthenticationRequired. It is never retried, since the
server-side effect of a failed call is unknown.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
import requests

from client.single_flight import SingleFlight

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_THRESHOLD = timedelta(seconds=60)
DEFAULT_TIMEOUT = 10.0


class AuthenticationError(Exception):
    pass


class ReauthenticationRequired(AuthenticationError):
    """The session is over; the user has to log in again."""


class TokenStorage:
    """Thread-safe in-memory holder of the current access/refresh pair."""

    def __init__(self, access_token: str | None = None, refresh_token: str | None = None):
        self._lock = threading.Lock()
        self._access_token = access_token
        self._refresh_token = refresh_token

    def set(self, access_token: str, refresh_token: str) -> None:
        with self._lock:
            self._access_token = access_token
            self._refresh_token = refresh_token

    def replace(self, expected_refresh_token: str, access_token: str, refresh_token: str) -> bool:
        """Store a new pair only if the refresh token is still the one that was sent."""
        with self._lock:
            if self._refresh_token != expected_refresh_token:
                return False
            self._access_token = access_token
            self._refresh_token = refresh_token
            return True

    def clear(self) -> None:
        with self._lock:
            self._access_token = None
            self._refresh_token = None

    def snapshot(self) -> Tuple[Optional[str], Optional[str]]:
        with self._lock:
            return self._access_token, self._refresh_token

    @property
    def access_token(self) -> Optional[str]:
        return self.snapshot()[0]

    @property
    def refresh_token(self) -> Optional[str]:
        return self.snapshot()[1]


def token_expires_at(token: str) -> Optional[datetime]:
    """Read `exp` without verifying the signature; the client has no secret."""
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)


class RefreshCoordinator:

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        storage: TokenStorage | None = None,
        flight: SingleFlight | None = None,
        refresh_threshold: timedelta = DEFAULT_REFRESH_THRESHOLD,
        timeout: float = DEFAULT_TIMEOUT,
        auth_path: str = "/api/v1/auth",
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.storage = storage or TokenStorage()
        self.flight = flight or SingleFlight()
        self.refresh_threshold = refresh_threshold
        self.timeout = timeout
        self.auth_path = auth_path.rstrip("/")

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def login(self, username: str, password: str) -> dict:
        resp = self.session.request(
            "POST",
            self._url(f"{self.auth_path}/login"),
            json={"username": username, "password": password},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            raise AuthenticationError("Invalid credentials")
        data = resp.json()
        self.storage.set(data["accessToken"], data["refreshToken"])
        return data.get("user") or {}

    def logout(self) -> None:
        refresh_token = self.storage.refresh_token
        self.storage.clear()
        if not refresh_token:
            return
        try:
            self.session.request(
                "POST",
                self._url(f"{self.auth_path}/logout"),
                json={"refreshToken": refresh_token},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("logout_request_failed err=%s", exc)

    def logout_all(self) -> None:
        try:
            resp = self.request("POST", f"{self.auth_path}/logout-all")
        finally:
            self.storage.clear()
        if resp.status_code != 200:
            raise ReauthenticationRequired("Logout from all devices was rejected")

    def refresh(self, refresh_token: str | None = None) -> str:
        """Refresh once per refresh token, however many threads ask at the same time."""
        if refresh_token is None:
            refresh_token = self.storage.refresh_token
        if not refresh_token:
            self.storage.clear()
            raise ReauthenticationRequired("No refresh token")
        try:
            return self.flight.do(refresh_token, lambda: self._refresh(refresh_token), timeout=self.timeout * 2)
        except (FutureTimeoutError, CancelledError):
            return self._refresh_failed("shared refresh timed out or was cancelled")

    def _refresh(self, refresh_token: str) -> str:
        current_access, current_refresh = self.storage.snapshot()
        if current_refresh != refresh_token:
            # rotated by a flight that finished before this one started
            if current_access:
                return current_access
            raise ReauthenticationRequired("Session expired. Please log in again.")
        try:
            resp = self.session.request(
                "POST",
                self._url(f"{self.auth_path}/refresh"),
                json={"refreshToken": refresh_token},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            return self._refresh_failed(f"request error: {exc}")

        if resp.status_code != 200:
            return self._refresh_failed(f"status {resp.status_code}")
        try:
            data = resp.json()
            access_token, new_refresh_token = data["accessToken"], data["refreshToken"]
        except (ValueError, KeyError, TypeError):
            return self._refresh_failed("malformed response")

        if not self.storage.replace(refresh_token, access_token, new_refresh_token):
            # cleared or replaced while the call was in flight
            raise ReauthenticationRequired("Session ended while refreshing")
        return access_token

    def _refresh_failed(self, reason: str):
        logger.warning("token_refresh_failed reason=%s", reason)
        self.storage.clear()
        raise ReauthenticationRequired("Session expired. Please log in again.")

    def ensure_valid_token(self) -> Optional[str]:
        """Current access token, refreshed first if it expires within the threshold."""
        access_token = self.storage.access_token
        if not access_token:
            return None
        expires_at = token_expires_at(access_token)
        now = datetime.now(timezone.utc)
        if expires_at is None or expires_at - now < self.refresh_threshold:
            return self.refresh()
        return access_token

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        access_token = self.ensure_valid_token()
        resp = self._send(method, path, access_token, **kwargs)
        if resp.status_code != 401:
            return resp

        current_access, current_refresh = self.storage.snapshot()
        if current_access and current_access != access_token:
            # another caller already refreshed
            new_access_token = current_access
        else:
            new_access_token = self.refresh(current_refresh)
        return self._send(method, path, new_access_token, **kwargs)

    def _send(self, method: str, path: str, access_token: str | None, **kwargs) -> requests.Response:
        headers = dict(kwargs.pop("headers", None) or {})
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        kwargs.setdefault("timeout", self.timeout)
        return self.session.request(method, self._url(path), headers=headers, **kwargs)
