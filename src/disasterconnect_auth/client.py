"""Async client for the DisasterConnect identity API.

Wraps an httpx.AsyncClient and owns the cross-cutting HTTP concerns:

  - Bearer auth from the injected TokenStore on every request
  - Retry with exponential backoff via tenacity (transport errors, timeouts)
  - Mapping HTTP failures onto the auth error taxonomy
  - 401 handling: a 401 from login/register/google is a bad credential;
    a 401 anywhere else means the session is gone — the token is cleared,
    the session-expired handler runs, and SessionExpiredError is raised

The client returns the decoded JSON envelope ({success, message, data}) and
leaves interpretation of `data` to the SessionManager.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from disasterconnect_auth.config import AuthSettings
from disasterconnect_auth.errors import (
    AmbiguousGoogleUserError,
    CredentialError,
    NetworkError,
    SessionExpiredError,
)
from disasterconnect_auth.roles import Role, to_server_role
from disasterconnect_auth.token_store import TokenStore

logger = logging.getLogger(__name__)

SessionExpiredHandler = Callable[[], Awaitable[None]]

LOGIN_PATH = "/auth/login"
REGISTER_PATH = "/auth/register"
GOOGLE_PATH = "/auth/google"
PROFILE_PATH = "/auth/profile"
SWITCH_ROLE_PATH = "/auth/switch-role"

# A 401 from these means "wrong credentials", not "session expired".
AUTH_ENDPOINTS = (LOGIN_PATH, REGISTER_PATH, GOOGLE_PATH)

# Methods safe to resend after the request may have reached the server.
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE"})

# Failures raised before any bytes left the client.
UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)
TRANSIENT_ERRORS = (httpx.TransportError, httpx.TimeoutException)

# Phrases the API uses when a Google identity has no account yet.
UNREGISTERED_GOOGLE_MARKERS = (
    "not found",
    "user does not exist",
    "complete registration",
)


def _is_auth_endpoint(path: str) -> bool:
    return any(path.startswith(p) for p in AUTH_ENDPOINTS)


def _retryable_errors(method: str) -> tuple[type[Exception], ...]:
    if method.upper() in IDEMPOTENT_METHODS:
        return TRANSIENT_ERRORS
    return UNSENT_ERRORS


def _error_message(response: httpx.Response) -> str:
    """Best human-readable message from an error response."""
    fallback = f"Request failed with status {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or fallback
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        if message:
            return str(message)
    return fallback


class IdentityClient:
    """HTTP client for the /auth endpoints and any other authenticated call."""

    def __init__(
        self,
        settings: AuthSettings,
        token_store: TokenStore,
        on_session_expired: SessionExpiredHandler | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._token_store = token_store
        self._on_session_expired = on_session_expired
        self._client = http_client
        self.request_count: int = 0

    def set_session_expired_handler(self, handler: SessionExpiredHandler | None) -> None:
        self._on_session_expired = handler

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.api_url,
                headers={"Content-Type": "application/json"},
                timeout=self._settings.http_timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> IdentityClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _send(
        self, method: str, path: str, token: str | None, **kwargs: Any
    ) -> httpx.Response:
        """Send one request, retrying transient transport failures.

        Non-idempotent methods (POST, PATCH) are only retried when the request
        never left the client, so a timed-out registration is not sent twice.
        """
        client = await self._get_client()
        headers = dict(kwargs.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_retryable_errors(method)),
            wait=wait_exponential(multiplier=1, min=0, max=self._settings.retry_wait_max),
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    self.request_count += 1
                    return await client.request(method, path, headers=headers, **kwargs)
        except TRANSIENT_ERRORS as e:
            logger.warning(f"{method} {path} failed after retries: {e!r}")
            raise NetworkError(
                "Cannot connect to server. Please check your connection and try again."
            ) from e
        raise NetworkError(f"{method} {path} was not attempted")

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the decoded JSON envelope.

        Raises:
            CredentialError: 4xx, 401 on an auth endpoint, or success=false.
            SessionExpiredError: 401 on any other endpoint. The session is only
                expired when the rejected token is still the current one.
            NetworkError: transport failure, 5xx, or a non-JSON body.
        """
        sent_token = self._token_store.get_token()
        response = await self._send(method, path, sent_token, **kwargs)

        if response.status_code == 204:
            return {}

        if response.status_code == 401:
            if _is_auth_endpoint(path):
                raise CredentialError(_error_message(response), status_code=401)
            if self._token_store.get_token() == sent_token:
                await self._expire_session(path)
            else:
                logger.info(f"Ignoring 401 from {path}: credential changed while in flight")
            raise SessionExpiredError()

        if response.status_code >= 500:
            message = _error_message(response)
            logger.warning(f"{method} {path} returned {response.status_code}: {message}")
            raise NetworkError(f"Server error ({response.status_code}): {message}")

        if response.status_code >= 400:
            raise CredentialError(_error_message(response), status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise NetworkError(
                f"Unexpected non-JSON response from {path} (status {response.status_code})"
            ) from e
        if not isinstance(body, dict):
            raise NetworkError(f"Unexpected response shape from {path}")

        if body.get("success") is False:
            raise CredentialError(
                str(body.get("error") or body.get("message") or "Request was rejected"),
                status_code=response.status_code,
            )
        return body

    async def _expire_session(self, path: str) -> None:
        logger.info(f"401 from {path} — clearing credential and expiring session")
        await self._token_store.clear_token()
        if self._on_session_expired is not None:
            await self._on_session_expired()

    # ------------------------------------------------------------------
    # Identity API
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str, role: Role) -> dict[str, Any]:
        return await self._request(
            "POST",
            LOGIN_PATH,
            json={"email": email, "password": password, "role": to_server_role(role)},
        )

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        role: Role,
        profile_data: dict[str, Any],
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            REGISTER_PATH,
            json={
                "email": email,
                "password": password,
                "name": name,
                "role": to_server_role(role),
                "profileData": profile_data,
            },
        )

    async def google_login(
        self,
        id_token: str,
        role: Role | None = None,
        profile_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Exchange a Google ID token for an API session.

        Raises:
            AmbiguousGoogleUserError: the Google identity has no account yet.
        """
        payload: dict[str, Any] = {"token": id_token}
        if role is not None:
            payload["role"] = to_server_role(role)
        if profile_data is not None:
            payload["profileData"] = profile_data

        try:
            body = await self._request("POST", GOOGLE_PATH, json=payload)
        except CredentialError as e:
            message = str(e).lower()
            if any(marker in message for marker in UNREGISTERED_GOOGLE_MARKERS):
                raise AmbiguousGoogleUserError(str(e)) from e
            raise

        data = body.get("data") or {}
        if isinstance(data, dict) and data.get("isNewUser"):
            raise AmbiguousGoogleUserError("Google account is not registered yet")
        return body

    async def get_profile(self) -> dict[str, Any]:
        return await self._request("GET", PROFILE_PATH)

    async def switch_role(self, role: Role) -> dict[str, Any]:
        return await self._request(
            "POST", SWITCH_ROLE_PATH, json={"activeRole": to_server_role(role)}
        )

    async def request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Call any other API endpoint with the session's bearer token."""
        return await self._request(method, path, **kwargs)
