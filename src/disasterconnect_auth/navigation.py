"""Routes the session core navigates to, and the Navigator seam.

The SessionManager never knows how navigation happens (browser router,
desktop shell, test recorder); it only calls Navigator.navigate(path).
"""

from __future__ import annotations

from typing import Protocol

from disasterconnect_auth.roles import Role

LOGIN = "/login"
REGISTER = "/register"
SELECT_ROLE = "/select-role"
SESSION_EXPIRED = "/login?expired=1"

DASHBOARDS: dict[Role, str] = {
    Role.CITIZEN: "/citizen/dashboard",
    Role.ORGANIZATION: "/org/dashboard",
    Role.VOLUNTEER: "/volunteer/dashboard",
}

PUBLIC_AUTH_PAGES = frozenset({LOGIN, REGISTER})


def dashboard_path(role: Role | None) -> str:
    """Home view for a role; users without one go to role selection."""
    if role is None:
        return SELECT_ROLE
    return DASHBOARDS[role]


class Navigator(Protocol):
    def navigate(self, path: str) -> None: ...


class RecordingNavigator:
    """Navigator that only remembers where it was sent (headless runs)."""

    def __init__(self) -> None:
        self.history: list[str] = []

    def navigate(self, path: str) -> None:
        self.history.append(path)

    @property
    def current(self) -> str | None:
        return self.history[-1] if self.history else None
