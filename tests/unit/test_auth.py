"""
Unit tests for access-token services.

Tests cover:
- Refresh scheduling with the one-minute margin
- Single refresh under concurrent callers
- Failed refreshes keep the previous state
- Refresh request format
"""

import logging
import threading
import time
from urllib.parse import parse_qs

import httpx
import pytest

from tigrisdb_sdk.auth import (
    EMPTY_CREDENTIAL,
    REFRESH_MARGIN_MS,
    OAuth2TokenService,
    StaticTokenService,
)
from tigrisdb_sdk.config import OAuth2Config

TOKEN_URL = "https://auth.example.test/oauth/token"
T0 = 1_700_000_000_000


class FakeClock:
    """Settable epoch-millisecond clock."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class TokenEndpoint:
    """Token endpoint handing out numbered tokens."""

    def __init__(self, expires_in: int = 120, delay: float = 0.0, status: int = 200) -> None:
        self.expires_in = expires_in
        self.delay = delay
        self.status = status
        self.requests: list[httpx.Request] = []
        self._lock = threading.Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)
            count = len(self.requests)
        if self.delay:
            time.sleep(self.delay)
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "invalid_grant"})
        return httpx.Response(
            200,
            json={"access_token": f"token-{count}", "expires_in": self.expires_in},
        )

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def oauth2_config():
    return OAuth2Config(
        token_url=TOKEN_URL,
        client_id="test-client",
        refresh_token="refresh-secret",
    )


@pytest.fixture
def clock():
    return FakeClock()


def make_service(config, endpoint, clock):
    client = httpx.Client(transport=httpx.MockTransport(endpoint))
    return OAuth2TokenService(config, http_client=client, clock=clock)


class TestOAuth2TokenService:
    """Tests for OAuth2TokenService."""

    def test_initial_state_is_empty(self, oauth2_config, clock):
        """A new service holds no token and needs a refresh."""
        service = make_service(oauth2_config, TokenEndpoint(), clock)

        assert service.credential == EMPTY_CREDENTIAL
        assert service.next_refresh_time == 0
        assert service.should_refresh()

    def test_first_call_refreshes(self, oauth2_config, clock):
        """The first call fetches a token."""
        endpoint = TokenEndpoint(expires_in=120)
        service = make_service(oauth2_config, endpoint, clock)

        token = service.get_access_token()

        assert token == "token-1"
        assert endpoint.calls == 1
        assert service.last_refreshed == T0
        assert service.credential.issued_at == T0
        assert service.credential.expires_at == T0 + 120_000

    def test_refresh_schedule(self, oauth2_config, clock):
        """Next refresh is due one minute before expiry."""
        endpoint = TokenEndpoint(expires_in=120)
        service = make_service(oauth2_config, endpoint, clock)

        service.get_access_token()

        assert service.next_refresh_time == T0 + 120_000 - REFRESH_MARGIN_MS
        assert service.next_refresh_time == T0 + 60_000

    def test_cached_before_refresh_time(self, oauth2_config, clock):
        """At T+59s the cached token is returned without a refresh."""
        endpoint = TokenEndpoint(expires_in=120)
        service = make_service(oauth2_config, endpoint, clock)
        service.get_access_token()

        clock.now = T0 + 59_000
        token = service.get_access_token()

        assert token == "token-1"
        assert endpoint.calls == 1

    def test_refreshes_once_after_refresh_time(self, oauth2_config, clock):
        """At T+61s exactly one refresh happens."""
        endpoint = TokenEndpoint(expires_in=120)
        service = make_service(oauth2_config, endpoint, clock)
        service.get_access_token()

        clock.now = T0 + 61_000
        first = service.get_access_token()
        second = service.get_access_token()

        assert first == second == "token-2"
        assert endpoint.calls == 2
        assert service.next_refresh_time == T0 + 61_000 + 60_000

    def test_concurrent_callers_share_one_refresh(self, oauth2_config, clock):
        """N concurrent callers on a stale cache cause one refresh."""
        endpoint = TokenEndpoint(delay=0.05)
        service = make_service(oauth2_config, endpoint, clock)
        callers = 16
        barrier = threading.Barrier(callers)
        tokens: list[str] = []
        lock = threading.Lock()

        def call():
            barrier.wait()
            token = service.get_access_token()
            with lock:
                tokens.append(token)

        threads = [threading.Thread(target=call) for _ in range(callers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert endpoint.calls == 1
        assert tokens == ["token-1"] * callers

    def test_refresh_request_format(self, oauth2_config, clock):
        """Refresh posts the refresh-token grant as a form."""
        endpoint = TokenEndpoint()
        service = make_service(oauth2_config, endpoint, clock)

        service.get_access_token()

        request = endpoint.requests[0]
        assert request.method == "POST"
        assert str(request.url) == TOKEN_URL
        form = parse_qs(request.content.decode())
        assert form == {
            "grant_type": ["refresh_token"],
            "refresh_token": ["refresh-secret"],
            "client_id": ["test-client"],
        }

    def test_failed_first_refresh_returns_empty_token(self, oauth2_config, clock, caplog):
        """A failed refresh is logged and swallowed."""
        endpoint = TokenEndpoint(status=401)
        service = make_service(oauth2_config, endpoint, clock)

        with caplog.at_level(logging.ERROR, logger="tigrisdb_sdk.auth"):
            token = service.get_access_token()

        assert token == ""
        assert service.credential == EMPTY_CREDENTIAL
        assert "Failed to refresh access token" in caplog.text

    def test_failed_refresh_keeps_previous_token(self, oauth2_config, clock):
        """After a failure the stale token and schedule are kept."""
        endpoint = TokenEndpoint(expires_in=120)
        service = make_service(oauth2_config, endpoint, clock)
        service.get_access_token()
        scheduled = service.next_refresh_time

        endpoint.status = 503
        clock.now = T0 + 61_000
        token = service.get_access_token()

        assert token == "token-1"
        assert service.next_refresh_time == scheduled
        assert service.last_refreshed == T0

    def test_malformed_response_is_swallowed(self, oauth2_config, clock):
        """A response without access_token counts as a failure."""

        def handler(request):
            return httpx.Response(200, json={"expires_in": 10})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        service = OAuth2TokenService(oauth2_config, http_client=client, clock=clock)

        assert service.get_access_token() == ""

    def test_transport_failure_is_swallowed(self, oauth2_config, clock):
        """Network errors do not escape get_access_token."""

        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        service = OAuth2TokenService(oauth2_config, http_client=client, clock=clock)

        assert service.get_access_token() == ""


class TestStaticTokenService:
    """Tests for StaticTokenService."""

    def test_returns_fixed_token(self):
        service = StaticTokenService("fixed")

        assert service.get_access_token() == "fixed"
        assert service.get_access_token() == "fixed"
