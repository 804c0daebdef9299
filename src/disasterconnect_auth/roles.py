"""Role normalization — the one place server role strings become client roles.

The identity API does not share the client's vocabulary (it has been seen to
send "civilian" for a citizen account). Every ingress path — login, register,
Google login, profile fetch, role switch, persisted profile reload — goes
through normalize_role(). Unknown roles raise RoleMappingError; nothing is
ever coerced to a default.

Outgoing payloads use to_server_role(), which gives the lowercase names the
API accepts on its write endpoints.
"""

from __future__ import annotations

from enum import Enum

from disasterconnect_auth.errors import RoleMappingError


class Role(str, Enum):
    """Closed set of client-facing roles."""

    CITIZEN = "Citizen"
    ORGANIZATION = "Organization"
    VOLUNTEER = "Volunteer"


# Server vocabulary → client role. Keys are lowercase.
ROLE_SYNONYMS: dict[str, Role] = {
    "citizen": Role.CITIZEN,
    "civilian": Role.CITIZEN,
    "organization": Role.ORGANIZATION,
    "organisation": Role.ORGANIZATION,
    "org": Role.ORGANIZATION,
    "volunteer": Role.VOLUNTEER,
}

_SERVER_NAMES: dict[Role, str] = {
    Role.CITIZEN: "citizen",
    Role.ORGANIZATION: "organization",
    Role.VOLUNTEER: "volunteer",
}


def normalize_role(value: object) -> Role:
    """Map a server (or client) role value onto the closed Role enum.

    Accepts Role members, their values ("Citizen"), their names ("CITIZEN"),
    and any synonym in ROLE_SYNONYMS, case-insensitively.

    Raises:
        RoleMappingError: value is not a string or is not a known role.
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        raise RoleMappingError(value)

    role = ROLE_SYNONYMS.get(value.strip().lower())
    if role is None:
        raise RoleMappingError(value)
    return role


def to_server_role(role: Role | str) -> str:
    """Return the wire name the identity API expects for a role."""
    return _SERVER_NAMES[normalize_role(role)]
