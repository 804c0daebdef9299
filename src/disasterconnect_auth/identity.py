"""Federated identity provider seam (Google sign-in).

The popup/redirect flow belongs to whatever UI hosts the session core. It
implements IdentityProvider and hands back the provider's ID token; the
SessionManager does the rest.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from disasterconnect_auth.models import GoogleUserInfo


class FederatedIdentity(BaseModel):
    """What a provider sign-in yields."""

    id_token: str
    email: str | None = None
    display_name: str | None = None
    uid: str = ""

    def to_user_info(self) -> GoogleUserInfo:
        return GoogleUserInfo(
            idToken=self.id_token,
            email=self.email or "",
            name=self.display_name or "Google User",
            uid=self.uid,
        )


class IdentityProvider(ABC):
    """Obtains a federated ID token for the current user."""

    @abstractmethod
    async def sign_in(self) -> FederatedIdentity:
        """Run the provider's sign-in and return the resulting identity.

        Raises whatever the provider raises on cancellation or failure; the
        SessionManager reports it as a failed Google login.
        """

    async def sign_out(self) -> None:
        """Sign out of the provider. Default: nothing to do."""
