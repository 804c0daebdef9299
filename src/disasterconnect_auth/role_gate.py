"""Route authorization for role-scoped views.

Pure functions of a Session snapshot: no I/O, no state. Denied access
redirects to the login view, not to an error page.
"""

from __future__ import annotations

from collections.abc import Iterable

from disasterconnect_auth.models import Session, SessionState
from disasterconnect_auth.navigation import LOGIN, PUBLIC_AUTH_PAGES, dashboard_path
from disasterconnect_auth.roles import Role


def can_access(session: Session, required_roles: Iterable[Role]) -> bool:
    """True iff the session is authenticated and its active role is allowed."""
    if session.state != SessionState.AUTHENTICATED or session.profile is None:
        return False
    return session.profile.role in frozenset(required_roles)


def redirect_for(session: Session, required_roles: Iterable[Role]) -> str | None:
    """Where to send a visitor of a role-scoped view; None when allowed."""
    if can_access(session, required_roles):
        return None
    return LOGIN


def public_redirect(session: Session, path: str = LOGIN) -> str | None:
    """Send signed-in users away from the login/register pages to their dashboard."""
    if path not in PUBLIC_AUTH_PAGES:
        return None
    if session.state != SessionState.AUTHENTICATED or session.profile is None:
        return None
    return dashboard_path(session.profile.role)
