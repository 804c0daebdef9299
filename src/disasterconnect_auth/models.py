"""Pydantic models for the auth session core.

These are the contract types that flow between the SessionManager, the
identity client and the UI. Server payloads are camelCase JSON; models keep
snake_case attributes and accept the server's names through aliases.

Design choices:
  - UserProfile can only be built with a role from the closed Role enum.
    Validation goes through normalize_role(), so a profile holding an
    unmapped role cannot exist.
  - Session is frozen. The SessionManager replaces it on every transition,
    so listeners always receive a consistent snapshot.
  - Result objects extend PlatformResult: expected failures come back as
    {success: False, message} rather than exceptions.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from disasterconnect_auth.errors import RoleMappingError
from disasterconnect_auth.roles import Role, normalize_role

logger = logging.getLogger(__name__)


# ============================================================================
# Result envelopes
# ============================================================================


class PlatformResult(BaseModel):
    """Standard result envelope returned by SessionManager operations.

    Callers check `success` instead of catching exceptions for expected
    business failures (bad password, server unreachable).
    """

    success: bool
    message: str
    data: dict[str, str | int | float | bool | None] | None = None


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    AUTH_ERROR = "auth_error"
    AWAITING_ROLE_SELECTION = "awaiting_role_selection"


class GoogleOutcome(str, Enum):
    SUCCESS = "success"
    NEEDS_ROLE_SELECTION = "needs_role_selection"
    FAILED = "failed"


# ============================================================================
# Domain objects
# ============================================================================


class UserProfile(BaseModel):
    """The signed-in user as the client sees it."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    display_name: str = Field(alias="name")
    role: Role
    roles: list[Role] = []
    organizations: list[str] = []
    is_verified: bool = False
    profile_picture: str | None = None
    phone_number: str | None = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Role:
        return normalize_role(value)

    @field_validator("roles", mode="before")
    @classmethod
    def _normalize_roles(cls, value: Any) -> list[Role]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise RoleMappingError(value)
        return [normalize_role(r) for r in value]

    @model_validator(mode="after")
    def _active_role_is_held(self) -> UserProfile:
        if self.role not in self.roles:
            self.roles = [self.role, *self.roles]
        return self

    def to_storage_json(self) -> str:
        """Serialize the persisted subset: {id, email, name, role, roles}."""
        return json.dumps(
            {
                "id": self.id,
                "email": self.email,
                "name": self.display_name,
                "role": self.role.value,
                "roles": [r.value for r in self.roles],
            }
        )

    @classmethod
    def from_storage_json(cls, raw: str) -> UserProfile:
        return cls.model_validate(json.loads(raw))


class GoogleUserInfo(BaseModel):
    """A federated identity that still needs a role before the API accepts it.

    Persisted as {idToken, email, name, uid} while role selection is pending.
    """

    model_config = ConfigDict(populate_by_name=True)

    id_token: str = Field(alias="idToken")
    email: str = ""
    name: str = "Google User"
    uid: str = ""


class Session(BaseModel):
    """Immutable snapshot of the session lifecycle.

    `profile` is only ever set in the AUTHENTICATED state.
    """

    model_config = ConfigDict(frozen=True)

    state: SessionState = SessionState.UNAUTHENTICATED
    profile: UserProfile | None = None
    error: str | None = None
    pending_google_user: GoogleUserInfo | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED and self.profile is not None


class AuthResult(PlatformResult):
    """Returned by login, register, complete_google_profile and switch_role."""

    session: Session | None = None
    error_code: str | None = None


class GoogleLoginResult(AuthResult):
    """Returned by login_with_google — three outcomes, not a boolean."""

    outcome: GoogleOutcome = GoogleOutcome.FAILED
    pending_user: GoogleUserInfo | None = None


# ============================================================================
# Server payload → UserProfile
# ============================================================================


def profile_from_server(user: dict[str, Any], requested_role: Role | None = None) -> UserProfile:
    """Build a UserProfile from an identity API `user` object.

    The active role is taken from `role`, then `activeRole`, then the first
    entry of `roles`. When the server sends none of them, the role the user
    explicitly asked for (login/register/Google completion) is used; with no
    requested role either, the profile is rejected.

    Raises:
        RoleMappingError: missing or unknown role anywhere in the payload.
    """
    roles_raw = user.get("roles") or []
    active_raw = user.get("role") or user.get("activeRole")
    if active_raw is None and isinstance(roles_raw, list) and roles_raw:
        active_raw = roles_raw[0]
    if active_raw is None:
        if requested_role is None:
            raise RoleMappingError(None)
        active_raw = requested_role

    email = user.get("email") or ""
    display_name = user.get("displayName") or user.get("name") or email.split("@")[0]

    return UserProfile(
        id=str(user.get("id") or user.get("uid") or ""),
        email=email,
        name=display_name,
        role=active_raw,
        roles=roles_raw,
        organizations=user.get("organizations") or [],
        is_verified=bool(user.get("isVerified") or user.get("emailVerified") or False),
        profile_picture=user.get("profilePicture") or user.get("photoURL"),
        phone_number=user.get("phoneNumber"),
    )


# ============================================================================
# Role-specific registration data
# ============================================================================


class Location(BaseModel):
    lat: float | None = None
    lng: float | None = None
    address: str = ""


class CitizenProfileData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location: Location | None = None


class VolunteerProfileData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    skills: list[str] = []
    availability: str | None = None


class OrganizationProfileData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    organization_name: str | None = Field(default=None, alias="organizationName")
    organization_type: str | None = Field(default=None, alias="organizationType")
    contact_information: str | None = Field(default=None, alias="contactInformation")


PROFILE_DATA_MODELS: dict[Role, type[BaseModel]] = {
    Role.CITIZEN: CitizenProfileData,
    Role.VOLUNTEER: VolunteerProfileData,
    Role.ORGANIZATION: OrganizationProfileData,
}


def build_profile_data(role: Role, data: dict[str, Any] | BaseModel | None) -> dict[str, Any]:
    """Flatten role-specific registration fields into the `profileData` payload.

    Only the fields that belong to `role` survive; everything else (another
    role's fields, form-internal state) is dropped.
    """
    if data is None:
        return {}
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True, exclude_none=True)

    model_cls = PROFILE_DATA_MODELS[role]
    allowed: set[str] = set()
    for name, info in model_cls.model_fields.items():
        allowed.add(name)
        if info.alias:
            allowed.add(info.alias)

    dropped = sorted(k for k in data if k not in allowed)
    if dropped:
        logger.debug(f"Dropping profile fields not used by {role.value}: {dropped}")

    model = model_cls.model_validate({k: v for k, v in data.items() if k in allowed})
    return model.model_dump(by_alias=True, exclude_none=True)
