"""
Access-token services for TigrisDB SDK.

Every outgoing call asks a token service for the current bearer token
through a client interceptor (see ``_grpc_client``). The OAuth2 service
caches the access token and refreshes it shortly before it expires.

Invariants:
    - At most one refresh request is in flight per service instance
    - A credential is replaced as a whole, never field by field
    - A failed refresh keeps the previous credential; the server reports
      the resulting auth failure on the decorated call
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import httpx

from .config import OAuth2Config

logger = logging.getLogger(__name__)

# Refresh one minute before the server-side expiry.
REFRESH_MARGIN_MS = 60_000

_GRANT_TYPE = "refresh_token"
_CLIENT_ID = "client_id"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class Credential:
    """Bearer token with its validity window (epoch milliseconds)."""

    token: str = ""
    issued_at: int = 0
    expires_at: int = 0


EMPTY_CREDENTIAL = Credential()


class TokenService(Protocol):
    """Supplies the bearer token attached to outgoing calls."""

    def get_access_token(self) -> str: ...


class StaticTokenService:
    """Token service returning a fixed token."""

    def __init__(self, token: str) -> None:
        self._token = token

    def get_access_token(self) -> str:
        return self._token


class OAuth2TokenService:
    """Caches an OAuth2 access token obtained with a refresh token.

    Concurrent callers that find the token stale serialize on one lock;
    the first one refreshes and the rest observe the new token.

    Example:
        >>> service = OAuth2TokenService(OAuth2Config(
        ...     token_url="https://auth.example/oauth/token",
        ...     client_id="my-client",
        ...     refresh_token="...",
        ... ))
        >>> service.get_access_token()
    """

    def __init__(
        self,
        oauth2_config: OAuth2Config,
        *,
        http_client: httpx.Client | None = None,
        clock: Callable[[], int] | None = None,
        timeout: float = 10.0,
    ) -> None:
        """Initialize the token service.

        Args:
            oauth2_config: Token endpoint and client settings
            http_client: Optional client used for refresh requests
            clock: Epoch-millisecond clock, defaults to wall time
            timeout: Timeout for refresh requests in seconds
        """
        self._config = oauth2_config
        self._http_client = http_client
        self._clock = clock or _now_ms
        self._timeout = timeout
        self._credential = EMPTY_CREDENTIAL
        self._last_refreshed = 0
        self._next_refresh_time = 0
        self._lock = threading.Lock()

    @property
    def credential(self) -> Credential:
        """Current credential snapshot."""
        return self._credential

    @property
    def last_refreshed(self) -> int:
        """Epoch ms of the last successful refresh, 0 if never."""
        return self._last_refreshed

    @property
    def next_refresh_time(self) -> int:
        """Epoch ms at which the next refresh is due, 0 if never scheduled."""
        return self._next_refresh_time

    def get_access_token(self) -> str:
        """Return the cached token, refreshing it first when due."""
        if self.should_refresh():
            self._refresh()
        return self._credential.token

    def should_refresh(self) -> bool:
        """Whether the token is absent or its refresh time has arrived."""
        if not self._credential.token:
            return True
        return self._next_refresh_time != 0 and self._clock() >= self._next_refresh_time

    def _refresh(self) -> None:
        with self._lock:
            if not self.should_refresh():
                return
            try:
                access_token, expires_in = self._request_token()
            except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
                logger.error("Failed to refresh access token", exc_info=e)
                return

            now = self._clock()
            expires_at = now + expires_in * 1000
            self._credential = Credential(
                token=access_token,
                issued_at=now,
                expires_at=expires_at,
            )
            self._last_refreshed = now
            self._next_refresh_time = expires_at - REFRESH_MARGIN_MS
            logger.debug(f"Access token refreshed, next refresh at {self._next_refresh_time}")

    def _request_token(self) -> tuple[str, int]:
        data = {
            "grant_type": _GRANT_TYPE,
            "refresh_token": self._config.refresh_token.get_secret_value(),
            _CLIENT_ID: self._config.client_id,
        }
        if self._http_client is not None:
            response = self._http_client.post(self._config.token_url, data=data)
        else:
            with httpx.Client(timeout=self._timeout) as client:
                response = client.post(self._config.token_url, data=data)

        response.raise_for_status()
        body = response.json()
        access_token = body["access_token"]
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("Token response carries no access_token")
        return access_token, int(body["expires_in"])
