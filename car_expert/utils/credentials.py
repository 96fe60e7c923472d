"""
Credential providers - supply the bearer token for Authority calls

Credentials are injected into the protocol client explicitly; there is
no module-level token. Nothing here writes a token to disk.

Providers:
- StaticCredentials: token obtained elsewhere (e.g. forwarded by the web shell)
- PasswordCredentials: exchanges username/password at POST /token
"""

import logging
import threading
from typing import Optional

import httpx

from car_expert.errors import AuthenticationExpired, TransportFailure

logger = logging.getLogger(__name__)

TOKEN_PATH = "/token"


class CredentialProvider:
    """
    Interface for bearer token sources.

    bearer_token() returns the token or raises AuthenticationExpired.
    invalidate() is called after the Authority rejects the token.
    """

    def bearer_token(self) -> str:
        raise NotImplementedError

    def invalidate(self) -> None:
        pass


class StaticCredentials(CredentialProvider):
    """A token handed over by the caller. Once rejected it stays rejected."""

    def __init__(self, token: Optional[str]):
        self._token = token or None

    def bearer_token(self) -> str:
        if self._token is None:
            raise AuthenticationExpired("No credential available")
        return self._token

    def invalidate(self) -> None:
        self._token = None


class PasswordCredentials(CredentialProvider):
    """
    OAuth2 password grant against the identity provider.

    The token is fetched lazily on first use and cached in memory only.
    After invalidate() the next bearer_token() call logs in again.
    """

    def __init__(self, http: httpx.Client, username: str, password: str):
        """
        Args:
            http: httpx client whose base_url points at the identity provider
            username: Account email
            password: Account password (held in memory only)
        """
        self._http = http
        self._username = username
        self._password = password
        self._token: Optional[str] = None
        self._lock = threading.Lock()

    def bearer_token(self) -> str:
        with self._lock:
            if self._token is None:
                self._token = self._login()
            return self._token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None

    def _login(self) -> str:
        try:
            response = self._http.post(
                TOKEN_PATH,
                data={'username': self._username, 'password': self._password},
            )
        except httpx.TimeoutException as e:
            raise TransportFailure(f"Login timed out: {e}")
        except httpx.HTTPError as e:
            raise TransportFailure(f"Login failed: {e}")

        if response.status_code in (400, 401):
            logger.warning(f"Login rejected for {self._username} ({response.status_code})")
            raise AuthenticationExpired("Login rejected by identity provider")
        if response.status_code != 200:
            raise TransportFailure(
                f"Unexpected login status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            token = response.json().get('access_token')
        except (ValueError, AttributeError):
            token = None

        if not isinstance(token, str) or not token:
            raise AuthenticationExpired("Identity provider returned no access_token")

        logger.info(f"Obtained access token for {self._username}")
        return token
