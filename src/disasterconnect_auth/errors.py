"""Auth error taxonomy.

Every failure the session core can surface is one of these. The SessionManager
converts the expected ones (credential, network) into result objects at its
boundary; the UI never sees them raised. SessionExpiredError is the only one
allowed to cause an unsolicited state transition (forced logout).
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all auth failures."""


class CredentialError(AuthError):
    """Bad email/password/role combination, or any other rejected auth request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(AuthError):
    """The identity API could not be reached or answered with a server error."""


class SessionExpiredError(AuthError):
    """A 401 on an authenticated (non-auth) endpoint. Triggers forced logout."""

    def __init__(self, message: str = "Session expired. Please log in again.") -> None:
        super().__init__(message)


class RoleMappingError(AuthError):
    """The server returned a role outside the known vocabulary.

    Never recovered by falling back to a default role: the operation that
    received the role is rejected instead.
    """

    def __init__(self, role: object) -> None:
        super().__init__(f"Unknown role {role!r} returned by identity API")
        self.role = role


class AmbiguousGoogleUserError(AuthError):
    """Federated login for an identity the API has not registered yet.

    Not a user-facing error: the session routes to role selection instead.
    """
