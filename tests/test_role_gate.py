"""Tests for role-scoped route authorization."""

import pytest
from disasterconnect_auth.models import GoogleUserInfo, Session, SessionState, UserProfile
from disasterconnect_auth.navigation import LOGIN, REGISTER, dashboard_path
from disasterconnect_auth.role_gate import can_access, public_redirect, redirect_for
from disasterconnect_auth.roles import Role


def _signed_in(role: Role) -> Session:
    profile = UserProfile(id="1", email="a@b.com", name="Ana", role=role)
    return Session(state=SessionState.AUTHENTICATED, profile=profile)


class TestCanAccess:
    @pytest.mark.parametrize("role", list(Role))
    def test_own_role_allowed(self, role):
        assert can_access(_signed_in(role), {role})

    def test_other_role_denied(self):
        assert not can_access(_signed_in(Role.CITIZEN), {Role.VOLUNTEER, Role.ORGANIZATION})

    def test_any_iterable(self):
        session = _signed_in(Role.VOLUNTEER)
        assert can_access(session, [Role.CITIZEN, Role.VOLUNTEER])
        assert can_access(session, (r for r in Role))

    def test_empty_requirement_denies(self):
        assert not can_access(_signed_in(Role.CITIZEN), set())

    @pytest.mark.parametrize(
        "session",
        [
            Session(),
            Session(state=SessionState.AUTHENTICATING),
            Session(state=SessionState.AUTH_ERROR, error="Invalid email or password"),
            Session(
                state=SessionState.AWAITING_ROLE_SELECTION,
                pending_google_user=GoogleUserInfo(idToken="tok"),
            ),
        ],
    )
    def test_not_authenticated_denied_for_every_role(self, session):
        assert not can_access(session, set(Role))

    def test_is_pure(self):
        session = _signed_in(Role.ORGANIZATION)
        roles = {Role.ORGANIZATION}
        assert can_access(session, roles) == can_access(session, roles)
        assert roles == {Role.ORGANIZATION}
        assert session.state == SessionState.AUTHENTICATED


class TestRedirects:
    def test_allowed_stays(self):
        assert redirect_for(_signed_in(Role.VOLUNTEER), {Role.VOLUNTEER}) is None

    def test_denied_goes_to_login(self):
        assert redirect_for(Session(), {Role.CITIZEN}) == LOGIN
        assert redirect_for(_signed_in(Role.CITIZEN), {Role.ORGANIZATION}) == LOGIN

    @pytest.mark.parametrize("path", [LOGIN, REGISTER])
    @pytest.mark.parametrize("role", list(Role))
    def test_signed_in_user_leaves_public_pages(self, path, role):
        assert public_redirect(_signed_in(role), path) == dashboard_path(role)

    def test_visitor_stays_on_public_pages(self):
        assert public_redirect(Session(), LOGIN) is None
        assert public_redirect(Session(state=SessionState.AUTHENTICATING), REGISTER) is None

    def test_other_pages_untouched(self):
        assert public_redirect(_signed_in(Role.CITIZEN), "/citizen/report") is None


class TestDashboards:
    def test_paths(self):
        assert dashboard_path(Role.CITIZEN) == "/citizen/dashboard"
        assert dashboard_path(Role.ORGANIZATION) == "/org/dashboard"
        assert dashboard_path(Role.VOLUNTEER) == "/volunteer/dashboard"
        assert dashboard_path(None) == "/select-role"
