"""Client-side authentication and session core for DisasterConnect.

Wires a bearer-token store, a persisted profile cache and an async identity
API client behind one SessionManager, plus a pure RoleGate for role-scoped
views. Build the manager once at process start and pass it around.
"""

from disasterconnect_auth.client import IdentityClient
from disasterconnect_auth.config import AuthSettings
from disasterconnect_auth.errors import (
    AmbiguousGoogleUserError,
    AuthError,
    CredentialError,
    NetworkError,
    RoleMappingError,
    SessionExpiredError,
)
from disasterconnect_auth.identity import FederatedIdentity, IdentityProvider
from disasterconnect_auth.models import (
    AuthResult,
    GoogleLoginResult,
    GoogleOutcome,
    GoogleUserInfo,
    Session,
    SessionState,
    UserProfile,
)
from disasterconnect_auth.profile_cache import ProfileCache
from disasterconnect_auth.role_gate import can_access, public_redirect, redirect_for
from disasterconnect_auth.roles import Role, normalize_role
from disasterconnect_auth.session import SessionManager
from disasterconnect_auth.storage import StorageAdapter, create_storage
from disasterconnect_auth.token_store import TokenStore

__all__ = [
    "AmbiguousGoogleUserError",
    "AuthError",
    "AuthResult",
    "AuthSettings",
    "CredentialError",
    "FederatedIdentity",
    "GoogleLoginResult",
    "GoogleOutcome",
    "GoogleUserInfo",
    "IdentityClient",
    "IdentityProvider",
    "NetworkError",
    "ProfileCache",
    "Role",
    "RoleMappingError",
    "Session",
    "SessionExpiredError",
    "SessionManager",
    "SessionState",
    "StorageAdapter",
    "TokenStore",
    "UserProfile",
    "can_access",
    "create_storage",
    "normalize_role",
    "public_redirect",
    "redirect_for",
]
