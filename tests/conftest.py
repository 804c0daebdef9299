"""Shared test fixtures for the auth session core.

Provides:
  - MockTransport / GatedTransport for httpx (intercept every request)
  - MockStorage: in-memory StorageAdapter stand-in with failure injection
  - FakeIdentityProvider for Google sign-in
  - A make_manager factory that wires a SessionManager around all of them

Fixtures model realistic DisasterConnect accounts: a citizen whose server
role comes back as "civilian", a volunteer, and a relief organization.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest
from disasterconnect_auth.client import IdentityClient
from disasterconnect_auth.config import AuthSettings
from disasterconnect_auth.identity import FederatedIdentity, IdentityProvider
from disasterconnect_auth.navigation import RecordingNavigator
from disasterconnect_auth.profile_cache import ProfileCache
from disasterconnect_auth.session import SessionManager
from disasterconnect_auth.token_store import TokenStore

API_URL = "https://api.test/api"


# ============================================================================
# HTTP mocks
# ============================================================================


class MockTransport(httpx.AsyncBaseTransport):
    """Mock HTTP transport that returns preconfigured responses.

    Each call pops the next item from the list. An exception instance is
    raised instead of returned. When the list is exhausted, returns 500.
    """

    def __init__(self, responses: list[httpx.Response | Exception] | None = None) -> None:
        self.responses = list(responses or [])
        self.requests: list[httpx.Request] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            response.stream = httpx.ByteStream(response.content)
            return response
        return httpx.Response(500, json={"error": "No more mock responses"})


class GatedTransport(MockTransport):
    """MockTransport that holds responses until `release()` is called.

    With `gate_paths`, only requests whose URL path ends with one of them are
    held; the rest are answered straight away.
    """

    def __init__(
        self,
        responses: list[httpx.Response | Exception] | None = None,
        gate_paths: set[str] | None = None,
    ) -> None:
        super().__init__(responses)
        self.gate_paths = gate_paths
        self.received = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self.gate_paths is None or any(
            request.url.path.endswith(path) for path in self.gate_paths
        ):
            self.received.set()
            await self._gate.wait()
        return await super().handle_async_request(request)


# ============================================================================
# Storage mock
# ============================================================================


class MockStorage:
    """In-memory store mirroring StorageAdapter's async interface.

    Set `fail_writes` / `fail_reads` to make the corresponding calls raise.
    """

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.fail_writes = False
        self.fail_reads = False

    async def get(self, key: str) -> str | None:
        self.calls.append(("get", (key,)))
        if self.fail_reads:
            raise ConnectionError("storage unavailable")
        return self.store.get(key)

    async def set(self, key: str, value: str) -> None:
        self.calls.append(("set", (key, value)))
        if self.fail_writes:
            raise ConnectionError("storage unavailable")
        self.store[key] = value

    async def delete(self, *keys: str) -> None:
        self.calls.append(("delete", keys))
        if self.fail_writes:
            raise ConnectionError("storage unavailable")
        for key in keys:
            self.store.pop(key, None)


# ============================================================================
# Identity provider fake
# ============================================================================


class FakeIdentityProvider(IdentityProvider):
    def __init__(self, identity: FederatedIdentity | None = None, error: Exception | None = None):
        self.identity = identity or FederatedIdentity(
            id_token="google-id-token",
            email="maria@example.com",
            display_name="Maria Lopez",
            uid="g-uid-42",
        )
        self.error = error
        self.sign_in_calls = 0
        self.sign_out_calls = 0

    async def sign_in(self) -> FederatedIdentity:
        self.sign_in_calls += 1
        if self.error:
            raise self.error
        return self.identity

    async def sign_out(self) -> None:
        self.sign_out_calls += 1


# ============================================================================
# Payload helpers
# ============================================================================


def user_payload(
    user_id: str = "1",
    email: str = "a@b.com",
    role: str | None = "civilian",
    **extra: Any,
) -> dict[str, Any]:
    user: dict[str, Any] = {"id": user_id, "email": email, "displayName": "Ana Bell", **extra}
    if role is not None:
        user["role"] = role
    return user


def auth_response(token: str = "abc", status: int = 200, **user_kwargs: Any) -> httpx.Response:
    """A login-shaped success response."""
    return httpx.Response(
        status,
        json={
            "success": True,
            "message": "Login successful",
            "data": {"token": token, "user": user_payload(**user_kwargs)},
        },
    )


def profile_response(**user_kwargs: Any) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": {"user": user_payload(**user_kwargs)}})


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings() -> AuthSettings:
    """Fast settings: one attempt, no backoff."""
    return AuthSettings(api_url=API_URL, max_retries=1, retry_wait_max=0.0)


@pytest.fixture
def storage() -> MockStorage:
    return MockStorage()


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture
def google_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def make_manager(settings, storage, navigator):
    """Build a SessionManager whose HTTP calls go through `transport`."""

    def _make(
        transport: httpx.AsyncBaseTransport,
        identity_provider: IdentityProvider | None = None,
        store: Any = None,
    ) -> SessionManager:
        backing = store if store is not None else storage
        token_store = TokenStore(backing)
        profile_cache = ProfileCache(backing)
        http_client = httpx.AsyncClient(transport=transport, base_url=settings.api_url)
        client = IdentityClient(settings, token_store, http_client=http_client)
        return SessionManager(
            settings=settings,
            storage=backing,
            token_store=token_store,
            profile_cache=profile_cache,
            client=client,
            navigator=navigator,
            identity_provider=identity_provider,
        )

    return _make
