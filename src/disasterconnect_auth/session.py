"""SessionManager — the one authority over session state.

Every network login/registration call and every session transition goes
through here. UI code reads `session` (or subscribes to changes) and calls
the operations below; nothing else writes the TokenStore or ProfileCache.

State machine:

    unauthenticated --login/google/restore ok--> authenticated
    unauthenticated --login fails--> auth_error --retry()--> unauthenticated
    unauthenticated --google, no account--> awaiting_role_selection
    awaiting_role_selection --complete_google_profile--> authenticated
    authenticated --logout--> unauthenticated
    authenticated --401 on any authenticated request--> unauthenticated (forced)

Concurrency: one auth operation at a time. A call made while another is
pending is ignored (OperationInProgress). Logout and forced expiry bump the
session epoch; a response that resolves under an older epoch is discarded
so it cannot resurrect a cleared session (Superseded).

Error policy: credential and network failures come back as AuthResult
objects. RoleMappingError rejects the operation and propagates; it is never
papered over with a default role. A late response is Superseded even when it
carries an unknown role.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from disasterconnect_auth.client import IdentityClient
from disasterconnect_auth.config import AuthSettings
from disasterconnect_auth.errors import (
    AmbiguousGoogleUserError,
    CredentialError,
    NetworkError,
    RoleMappingError,
    SessionExpiredError,
)
from disasterconnect_auth.identity import IdentityProvider
from disasterconnect_auth.keys import pending_google_user_key
from disasterconnect_auth.models import (
    AuthResult,
    GoogleLoginResult,
    GoogleOutcome,
    GoogleUserInfo,
    Session,
    SessionState,
    UserProfile,
    build_profile_data,
    profile_from_server,
)
from disasterconnect_auth.navigation import (
    LOGIN,
    SELECT_ROLE,
    SESSION_EXPIRED,
    Navigator,
    RecordingNavigator,
    dashboard_path,
)
from disasterconnect_auth.profile_cache import ProfileCache
from disasterconnect_auth.roles import Role, normalize_role
from disasterconnect_auth.storage import StorageAdapter, create_storage
from disasterconnect_auth.token_store import TokenStore

logger = logging.getLogger(__name__)

SessionListener = Callable[[Session], None]

GOOGLE_FAILED_MESSAGE = "Google login failed. Please try again."


class SessionManager:
    """Orchestrates login, registration, Google sign-in, logout and restore.

    Example:
        manager = SessionManager.from_settings(navigator=router)
        session = await manager.restore_session()   # before rendering
        result = await manager.login("a@b.com", "pw", Role.CITIZEN)
        if not result.success:
            show_inline_error(result.message)
    """

    def __init__(
        self,
        settings: AuthSettings,
        storage: StorageAdapter,
        token_store: TokenStore,
        profile_cache: ProfileCache,
        client: IdentityClient,
        navigator: Navigator,
        identity_provider: IdentityProvider | None = None,
    ) -> None:
        self._settings = settings
        self._storage = storage
        self._token_store = token_store
        self._profile_cache = profile_cache
        self._client = client
        self._navigator = navigator
        self._identity_provider = identity_provider
        self._pending_key = pending_google_user_key(settings.storage_prefix)

        self._session = Session()
        self._epoch = 0
        self._in_flight: str | None = None
        self._listeners: list[SessionListener] = []

        client.set_session_expired_handler(self._handle_session_expired)

    @classmethod
    def from_settings(
        cls,
        settings: AuthSettings | None = None,
        navigator: Navigator | None = None,
        identity_provider: IdentityProvider | None = None,
        storage: StorageAdapter | None = None,
    ) -> SessionManager:
        """Wire a manager and its collaborators once, at process start."""
        settings = settings or AuthSettings.from_env()
        storage = storage or create_storage()
        token_store = TokenStore(storage, prefix=settings.storage_prefix)
        profile_cache = ProfileCache(storage, prefix=settings.storage_prefix)
        client = IdentityClient(settings, token_store)
        return cls(
            settings=settings,
            storage=storage,
            token_store=token_store,
            profile_cache=profile_cache,
            client=client,
            navigator=navigator or RecordingNavigator(),
            identity_provider=identity_provider,
        )

    # ------------------------------------------------------------------
    # Read-only projection
    # ------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def client(self) -> IdentityClient:
        return self._client

    @property
    def is_loading(self) -> bool:
        """True while an auth operation or session restore is in flight."""
        return self._in_flight is not None or self._session.state == SessionState.AUTHENTICATING

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Call `listener` with every new Session. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_session(self, session: Session) -> None:
        previous = self._session.state
        self._session = session
        if previous != session.state:
            logger.info(f"Session {previous.value} -> {session.state.value}")
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                logger.exception("Session listener failed")

    # ------------------------------------------------------------------
    # In-flight guard and epochs
    # ------------------------------------------------------------------

    def _begin(self, operation: str) -> int | None:
        if self._in_flight is not None:
            logger.warning(f"Ignoring {operation}: {self._in_flight} already in progress")
            return None
        self._in_flight = operation
        return self._epoch

    def _finish(self, epoch: int) -> None:
        if epoch == self._epoch:
            self._in_flight = None

    def _is_current(self, epoch: int) -> bool:
        return epoch == self._epoch

    def _invalidate(self) -> None:
        """Discard whatever is in flight."""
        self._epoch += 1
        self._in_flight = None

    def _busy(self, result_cls: type[AuthResult] = AuthResult) -> Any:
        return result_cls(
            success=False,
            message="Another sign-in request is already in progress",
            error_code="OperationInProgress",
            session=self._session,
        )

    def _superseded(self, result_cls: type[AuthResult] = AuthResult) -> Any:
        return result_cls(
            success=False,
            message="Sign-in was cancelled",
            error_code="Superseded",
            session=self._session,
        )

    def _start_authenticating(self) -> Session:
        previous = self._session
        if not previous.is_authenticated:
            self._set_session(Session(state=SessionState.AUTHENTICATING))
        return previous

    def _fail(self, previous: Session, message: str) -> None:
        """Record a failed auth attempt without touching stored credentials.

        A signed-in session, or one waiting on role selection, is kept as it was
        with the error attached.
        """
        if previous.is_authenticated or previous.state == SessionState.AWAITING_ROLE_SELECTION:
            self._set_session(previous.model_copy(update={"error": message}))
        else:
            self._set_session(Session(state=SessionState.AUTH_ERROR, error=message))

    # ------------------------------------------------------------------
    # Applying an authenticated response
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_auth(body: dict[str, Any], requested_role: Role | None) -> tuple[str, UserProfile]:
        """Pull (token, profile) out of a login-shaped response."""
        data = body.get("data") or {}
        token = data.get("token") if isinstance(data, dict) else None
        user = data.get("user") if isinstance(data, dict) else None
        if not token or not isinstance(user, dict):
            raise NetworkError("Unexpected authentication response from identity API")
        try:
            return str(token), profile_from_server(user, requested_role)
        except ValidationError as e:
            raise NetworkError(f"Invalid user in authentication response: {e}") from e

    async def _adopt(self, token: str, profile: UserProfile, epoch: int) -> bool:
        """Store credential and profile together, unless the epoch moved on."""
        if not self._is_current(epoch):
            return False
        await self._token_store.set_token(token)
        if not self._is_current(epoch):
            return False
        await self._profile_cache.set(profile)
        if not self._is_current(epoch):
            return False
        self._set_session(Session(state=SessionState.AUTHENTICATED, profile=profile))
        return True

    # ------------------------------------------------------------------
    # login / register
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str, role: Role | str) -> AuthResult:
        """Sign in with email and password.

        Raises:
            RoleMappingError: `role`, or the role the server returned, is unknown.
                Session moves to auth_error; stored credentials are untouched.
        """
        requested = normalize_role(role)
        epoch = self._begin("login")
        if epoch is None:
            return self._busy()

        try:
            previous = self._start_authenticating()
            try:
                body = await self._client.login(email, password, requested)
                token, profile = self._extract_auth(body, requested)
            except RoleMappingError as e:
                if not self._is_current(epoch):
                    return self._superseded()
                self._fail(previous, str(e))
                logger.warning(f"Login rejected: {e}")
                raise
            except (CredentialError, NetworkError) as e:
                if not self._is_current(epoch):
                    return self._superseded()
                logger.warning(f"Login failed for {email}: {e}")
                self._fail(previous, str(e))
                return AuthResult(
                    success=False,
                    message=str(e),
                    error_code=type(e).__name__,
                    session=self._session,
                )

            if not await self._adopt(token, profile, epoch):
                logger.info("Discarding login response for a cleared session")
                return self._superseded()

            logger.info(f"Signed in {profile.email} as {profile.role.value}")
            self._navigator.navigate(dashboard_path(profile.role))
            return AuthResult(
                success=True,
                message=f"Signed in as {profile.display_name}",
                session=self._session,
            )
        finally:
            self._finish(epoch)

    async def register(
        self,
        email: str,
        password: str,
        name: str,
        role: Role | str,
        profile_data: dict[str, Any] | Any = None,
    ) -> AuthResult:
        """Create an account. Does not sign in; sends the user to the login view."""
        requested = normalize_role(role)
        payload = build_profile_data(requested, profile_data)
        epoch = self._begin("register")
        if epoch is None:
            return self._busy()

        try:
            previous = self._session
            try:
                body = await self._client.register(email, password, name, requested, payload)
            except (CredentialError, NetworkError) as e:
                if not self._is_current(epoch):
                    return self._superseded()
                logger.warning(f"Registration failed for {email}: {e}")
                self._fail(previous, str(e))
                return AuthResult(
                    success=False,
                    message=str(e),
                    error_code=type(e).__name__,
                    session=self._session,
                )

            if not self._is_current(epoch):
                return self._superseded()

            logger.info(f"Registered {email} as {requested.value}")
            self._navigator.navigate(LOGIN)
            return AuthResult(
                success=True,
                message=str(body.get("message") or "Registration successful. Please sign in."),
                session=self._session,
            )
        finally:
            self._finish(epoch)

    # ------------------------------------------------------------------
    # Google sign-in
    # ------------------------------------------------------------------

    async def login_with_google(self) -> GoogleLoginResult:
        """Federated sign-in: success, needs-role-selection, or failure."""
        if self._identity_provider is None:
            return GoogleLoginResult(
                success=False,
                message="Google sign-in is not configured",
                error_code="NoIdentityProvider",
                session=self._session,
            )

        epoch = self._begin("google-login")
        if epoch is None:
            return self._busy(GoogleLoginResult)

        try:
            previous = self._start_authenticating()
            try:
                identity = await self._identity_provider.sign_in()
            except Exception as e:
                if not self._is_current(epoch):
                    return self._superseded(GoogleLoginResult)
                logger.warning(f"Google sign-in failed at the provider: {e}")
                self._fail(previous, GOOGLE_FAILED_MESSAGE)
                return GoogleLoginResult(
                    success=False,
                    message=GOOGLE_FAILED_MESSAGE,
                    error_code="CredentialError",
                    session=self._session,
                )

            user_info = identity.to_user_info()
            try:
                body = await self._client.google_login(user_info.id_token)
                token, profile = self._extract_auth(body, None)
            except AmbiguousGoogleUserError:
                return await self._await_role_selection(user_info, epoch)
            except RoleMappingError as e:
                if e.role is None:
                    # Account exists but holds no role yet.
                    return await self._await_role_selection(user_info, epoch)
                if not self._is_current(epoch):
                    return self._superseded(GoogleLoginResult)
                self._fail(previous, str(e))
                raise
            except (CredentialError, NetworkError) as e:
                if not self._is_current(epoch):
                    return self._superseded(GoogleLoginResult)
                logger.warning(f"Google login rejected by identity API: {e}")
                self._fail(previous, GOOGLE_FAILED_MESSAGE)
                return GoogleLoginResult(
                    success=False,
                    message=GOOGLE_FAILED_MESSAGE,
                    error_code=type(e).__name__,
                    session=self._session,
                )

            if not await self._adopt(token, profile, epoch):
                return self._superseded(GoogleLoginResult)

            logger.info(f"Signed in {profile.email} with Google as {profile.role.value}")
            self._navigator.navigate(dashboard_path(profile.role))
            return GoogleLoginResult(
                success=True,
                message=f"Signed in as {profile.display_name}",
                outcome=GoogleOutcome.SUCCESS,
                session=self._session,
            )
        finally:
            self._finish(epoch)

    async def _await_role_selection(
        self, user_info: GoogleUserInfo, epoch: int
    ) -> GoogleLoginResult:
        if not self._is_current(epoch):
            return self._superseded(GoogleLoginResult)
        try:
            await self._storage.set(self._pending_key, user_info.model_dump_json(by_alias=True))
        except Exception:
            logger.exception("Failed to persist pending Google sign-up")

        logger.info(f"Google identity {user_info.email or user_info.uid} needs a role")
        self._set_session(
            Session(state=SessionState.AWAITING_ROLE_SELECTION, pending_google_user=user_info)
        )
        self._navigator.navigate(SELECT_ROLE)
        return GoogleLoginResult(
            success=False,
            message="Select a role to finish signing up",
            outcome=GoogleOutcome.NEEDS_ROLE_SELECTION,
            pending_user=user_info,
            session=self._session,
        )

    async def pending_google_user(self) -> GoogleUserInfo | None:
        """The Google identity awaiting role selection, if any."""
        if self._session.pending_google_user is not None:
            return self._session.pending_google_user
        try:
            raw = await self._storage.get(self._pending_key)
        except Exception:
            logger.exception("Failed to read pending Google sign-up")
            return None
        if not raw:
            return None
        try:
            return GoogleUserInfo.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unusable pending Google sign-up: {e}")
            return None

    async def _clear_pending_google_user(self) -> None:
        try:
            await self._storage.delete(self._pending_key)
        except Exception:
            logger.exception("Failed to delete pending Google sign-up")

    async def complete_google_profile(
        self,
        user_info: GoogleUserInfo | dict[str, Any] | None,
        role: Role | str,
        profile_data: dict[str, Any] | Any = None,
    ) -> AuthResult:
        """Finish a federated sign-up after role selection. Signs the user in.

        `user_info` defaults to the pending identity saved by login_with_google().

        Raises:
            RoleMappingError: `role`, or the role the server returned, is unknown.
        """
        requested = normalize_role(role)
        payload = build_profile_data(requested, profile_data)
        if isinstance(user_info, dict):
            user_info = GoogleUserInfo.model_validate(user_info)
        if user_info is None:
            user_info = await self.pending_google_user()
        if user_info is None:
            return AuthResult(
                success=False,
                message="No pending Google sign-up to complete",
                error_code="CredentialError",
                session=self._session,
            )

        epoch = self._begin("google-signup")
        if epoch is None:
            return self._busy()

        try:
            previous = self._session
            try:
                body = await self._client.google_login(user_info.id_token, requested, payload)
                token, profile = self._extract_auth(body, requested)
            except RoleMappingError as e:
                if not self._is_current(epoch):
                    return self._superseded()
                self._fail(previous, str(e))
                raise
            except (CredentialError, NetworkError, AmbiguousGoogleUserError) as e:
                if not self._is_current(epoch):
                    return self._superseded()
                logger.warning(f"Completing Google sign-up failed: {e}")
                self._set_session(previous.model_copy(update={"error": str(e)}))
                return AuthResult(
                    success=False,
                    message=str(e),
                    error_code=type(e).__name__,
                    session=self._session,
                )

            if not await self._adopt(token, profile, epoch):
                return self._superseded()

            await self._clear_pending_google_user()
            logger.info(f"Completed Google sign-up for {profile.email} as {profile.role.value}")
            self._navigator.navigate(dashboard_path(profile.role))
            return AuthResult(
                success=True,
                message=f"Signed in as {profile.display_name}",
                session=self._session,
            )
        finally:
            self._finish(epoch)

    # ------------------------------------------------------------------
    # Role switch
    # ------------------------------------------------------------------

    async def switch_role(self, role: Role | str) -> AuthResult:
        """Make another of the user's roles the active one.

        Raises:
            RoleMappingError: the server answered with an unknown role.
        """
        target = normalize_role(role)
        current = self._session.profile
        if not self._session.is_authenticated or current is None:
            return AuthResult(
                success=False,
                message="Sign in before switching roles",
                error_code="CredentialError",
                session=self._session,
            )
        if target not in current.roles:
            return AuthResult(
                success=False,
                message=f"This account does not have the {target.value} role",
                error_code="CredentialError",
                session=self._session,
            )
        if target == current.role:
            return AuthResult(
                success=True, message=f"Already acting as {target.value}", session=self._session
            )

        epoch = self._begin("switch-role")
        if epoch is None:
            return self._busy()

        try:
            try:
                body = await self._client.switch_role(target)
            except SessionExpiredError as e:
                return AuthResult(
                    success=False,
                    message=str(e),
                    error_code="SessionExpiredError",
                    session=self._session,
                )
            except (CredentialError, NetworkError) as e:
                if not self._is_current(epoch):
                    return self._superseded()
                logger.warning(f"Role switch to {target.value} failed: {e}")
                return AuthResult(
                    success=False,
                    message=str(e),
                    error_code=type(e).__name__,
                    session=self._session,
                )

            if not self._is_current(epoch):
                return self._superseded()
            data = body.get("data") or {}
            user = data.get("user") if isinstance(data, dict) else None
            if isinstance(user, dict):
                profile = profile_from_server(user, target)
            else:
                profile = current.model_copy(update={"role": target})

            new_token = data.get("token") if isinstance(data, dict) else None
            if new_token:
                await self._token_store.set_token(str(new_token))
            await self._profile_cache.set(profile)
            if not self._is_current(epoch):
                return self._superseded()

            self._set_session(Session(state=SessionState.AUTHENTICATED, profile=profile))
            logger.info(f"Switched {profile.email} to {profile.role.value}")
            self._navigator.navigate(dashboard_path(profile.role))
            return AuthResult(
                success=True,
                message=f"Now acting as {profile.role.value}",
                session=self._session,
            )
        finally:
            self._finish(epoch)

    # ------------------------------------------------------------------
    # logout / expiry / restore
    # ------------------------------------------------------------------

    async def logout(self) -> None:
        """Sign out. Safe to call with no active session."""
        self._invalidate()
        await self._token_store.clear_token()
        await self._profile_cache.clear()
        await self._clear_pending_google_user()

        if self._identity_provider is not None:
            try:
                await self._identity_provider.sign_out()
            except Exception as e:
                logger.warning(f"Identity provider sign-out failed: {e}")

        self._set_session(Session())
        self._navigator.navigate(LOGIN)
        logger.info("Signed out")

    async def _handle_session_expired(self) -> None:
        """Forced logout after a 401 on an authenticated request."""
        was_authenticated = self._session.is_authenticated
        self._invalidate()
        await self._token_store.clear_token()
        await self._profile_cache.clear()
        self._set_session(Session(error="Session expired. Please log in again."))
        if was_authenticated:
            self._navigator.navigate(SESSION_EXPIRED)

    async def restore_session(self) -> Session:
        """Re-establish the session from storage at process start.

        Callers hold back role-gated content until this returns. Never raises
        for network, credential or role failures; they end unauthenticated.
        """
        epoch = self._begin("restore")
        if epoch is None:
            return self._session

        try:
            token = await self._token_store.load()
            await self._profile_cache.load()

            if not token:
                # A profile is never valid without its credential.
                await self._profile_cache.clear()
                pending = await self.pending_google_user()
                if pending is not None:
                    self._set_session(
                        Session(
                            state=SessionState.AWAITING_ROLE_SELECTION,
                            pending_google_user=pending,
                        )
                    )
                else:
                    self._set_session(Session())
                return self._session

            self._set_session(Session(state=SessionState.AUTHENTICATING))
            try:
                body = await self._client.get_profile()
                data = body.get("data") or {}
                user = data.get("user") if isinstance(data, dict) else None
                if not isinstance(user, dict):
                    raise NetworkError("Profile response did not include a user")
                profile = profile_from_server(user)
            except SessionExpiredError:
                logger.info("Stored credential was rejected; starting signed out")
                return self._session
            except (CredentialError, NetworkError, RoleMappingError, ValidationError) as e:
                logger.warning(f"Session restore failed: {e}")
                if self._is_current(epoch):
                    await self._token_store.clear_token()
                    await self._profile_cache.clear()
                    self._set_session(Session())
                return self._session

            if not self._is_current(epoch):
                return self._session
            await self._profile_cache.set(profile)
            if not self._is_current(epoch):
                return self._session
            self._set_session(Session(state=SessionState.AUTHENTICATED, profile=profile))
            logger.info(f"Restored session for {profile.email} as {profile.role.value}")
            return self._session
        finally:
            self._finish(epoch)

    def retry(self) -> Session:
        """Leave auth_error so the user can try again."""
        if self._session.state == SessionState.AUTH_ERROR:
            self._set_session(Session())
        return self._session

    async def aclose(self) -> None:
        await self._client.close()
