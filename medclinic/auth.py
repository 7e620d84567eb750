"""
Authentication & Session State.

Provides an injectable ``SessionManager``: the single source of truth for
who is logged in and with which role.  State is restored from durable
storage at start-up, validated against the bearer token's ``exp`` claim,
and re-derived whenever another client instance changes the storage.

State machine::

    LOADING --check_auth_status()--> AUTHENTICATED | UNAUTHENTICATED
    UNAUTHENTICATED --login()--> AUTHENTICATED
    AUTHENTICATED --logout() / 401 / stale storage--> UNAUTHENTICATED

Usage::

    session = SessionManager(storage, logger, navigator=router.navigate)
    session.bind_gateway(gateway)
    session.check_auth_status()
    if session.has_role(["admin"]):
        ...
"""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Callable, Iterable, Optional

import jwt

from medclinic.logger import StructuredLogger
from medclinic.models.auth_models import AuthContext, SessionState, StorageKey
from medclinic.models.enums import AuthStatus, UserRole
from medclinic.models.service_models import StorageEvent
from medclinic.storage import KeyValueStorage

if TYPE_CHECKING:
    from medclinic.gateway import RequestGateway

SessionListener = Callable[[SessionState], None]

SESSION_KEYS: tuple[str, ...] = (StorageKey.TOKEN, StorageKey.USER_ROLE, StorageKey.USER_ID)


def token_expiry(token: str) -> float:
    """Return the ``exp`` claim of *token* as a Unix timestamp.

    The signature is not verified; the backend that issued the token is
    trusted.  A token without ``exp`` counts as already expired.

    Raises:
        jwt.PyJWTError: If *token* is not a decodable JWT.
    """
    claims = jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return 0.0
    return float(exp)


class SessionManager:
    """Injectable holder for the authenticated session.

    Each instance keeps its own state, so tests can build isolated
    sessions.  Pass one ``SessionManager`` through the composition root
    so every component shares it.

    Parameters
    ----------
    storage:
        Durable storage for ``token`` / ``userRole`` / ``userId``.
    logger:
        Structured logger for state transitions.
    navigator:
        Called with *login_path* after a logout.  ``None`` disables
        navigation.
    login_path:
        Path handed to *navigator* on logout.
    clock:
        Wall-clock source (Unix seconds) used for token expiry checks.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        logger: StructuredLogger,
        navigator: Optional[Callable[[str], None]] = None,
        login_path: str = "/login",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage: KeyValueStorage = storage
        self._logger: StructuredLogger = logger
        self._navigator: Optional[Callable[[str], None]] = navigator
        self._login_path: str = login_path
        self._clock: Callable[[], float] = clock

        self._lock: threading.RLock = threading.RLock()
        self._state: SessionState = SessionState()
        self._logging_out: bool = False
        self._gateway: Optional["RequestGateway"] = None
        self._listeners: list[SessionListener] = []

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def status(self) -> AuthStatus:
        return self.state.status

    @property
    def is_authenticated(self) -> bool:
        return self.state.is_authenticated

    @property
    def role(self) -> Optional[UserRole]:
        return self.state.role

    @property
    def user_id(self) -> Optional[str]:
        return self.state.user_id

    @property
    def loading(self) -> bool:
        return self.state.loading

    def use_auth(self) -> AuthContext:
        """Snapshot of the session plus its operations, for screens."""
        state = self.state
        return AuthContext(
            is_authenticated=state.is_authenticated,
            role=state.role,
            user_id=state.user_id,
            loading=state.loading,
            login=self.login,
            logout=self.logout,
            has_role=self.has_role,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def login(self, token: str, role: str, user_id: str) -> None:
        """Persist the credentials issued by the login call and authenticate.

        The token is trusted as-is; the role is lower-cased.

        Raises:
            ValueError: If *role* is not a known ``UserRole``.
        """
        parsed_role = UserRole.parse(role)
        if parsed_role is None:
            raise ValueError(f"Unknown role: {role!r}")

        with self._lock:
            self._storage.set_items(
                {
                    StorageKey.TOKEN: token,
                    StorageKey.USER_ROLE: parsed_role.value,
                    StorageKey.USER_ID: str(user_id),
                }
            )
            self._clear_gateway_cache()
            self._set_state(
                SessionState(
                    is_authenticated=True,
                    role=parsed_role,
                    user_id=str(user_id),
                    loading=False,
                )
            )
        self._logger.info("User logged in.", extra={"role": parsed_role.value, "user_id": str(user_id)})

    def logout(self) -> None:
        """Clear durable storage, reset the state and go to the login path.

        Idempotent.  A nested call made while a logout is already running
        (e.g. a 401 raised by something a listener does) is ignored.
        """
        self._end_session(clear_storage=True)

    def _end_session(self, clear_storage: bool) -> None:
        with self._lock:
            if self._logging_out:
                return
            self._logging_out = True
            was_authenticated = self._state.is_authenticated
        try:
            if clear_storage:
                try:
                    self._storage.remove_items(SESSION_KEYS)
                except OSError as exc:
                    self._logger.error("Could not clear the stored session: %s", exc)
            self._clear_gateway_cache()
            self._set_state(SessionState(loading=False))
            if was_authenticated:
                self._logger.info("User logged out.")
            else:
                self._logger.debug("Logout on an unauthenticated session.")
            if self._navigator is not None:
                self._navigator(self._login_path)
        finally:
            with self._lock:
                self._logging_out = False

    def check_auth_status(self) -> SessionState:
        """Re-derive the session from durable storage.

        Authenticated only when token, role and user id are all stored,
        the role is known, and the token's ``exp`` lies in the future.
        Anything else, including unreadable storage or an undecodable
        token, ends in ``logout()``.
        """
        return self._check(clear_storage=True)

    def _check(self, clear_storage: bool) -> SessionState:
        with self._lock:
            if not self._state.loading:
                self._set_state(self._state.model_copy(update={"loading": True}))

        try:
            token = self._storage.get_item(StorageKey.TOKEN)
            stored_role = self._storage.get_item(StorageKey.USER_ROLE)
            stored_user_id = self._storage.get_item(StorageKey.USER_ID)

            if not (token and stored_role and stored_user_id):
                self._logger.info("No stored session or incomplete data; not authenticated.")
                self._end_session(clear_storage)
                return self.state

            role = UserRole.parse(stored_role)
            if role is None:
                self._logger.warning("Stored role %r is not recognised; clearing session.", stored_role)
                self._end_session(clear_storage)
                return self.state

            if token_expiry(token) <= self._clock():
                self._logger.info("Stored token has expired; clearing session.")
                self._end_session(clear_storage)
                return self.state

            self._set_state(
                SessionState(
                    is_authenticated=True,
                    role=role,
                    user_id=stored_user_id,
                    loading=False,
                )
            )
            self._logger.info("Session restored from storage.", extra={"role": role.value})
        except (jwt.PyJWTError, OSError, ValueError) as exc:
            self._logger.error("Failed to validate stored session; clearing: %s", exc)
            self._end_session(clear_storage)
        finally:
            with self._lock:
                if self._state.loading:
                    self._set_state(self._state.model_copy(update={"loading": False}))
        return self.state

    def handle_storage_event(self, event: StorageEvent) -> None:
        """Re-check the session when another instance touched a session key.

        The storage now reflects what the other instance wrote, and our
        view of it may already be behind the file.  An invalid session
        therefore only resets this instance; the stored keys are left to
        their owner.
        """
        if event.key not in StorageKey.ALL:
            return
        self._logger.info("Storage change detected for '%s'; re-checking session.", event.key)
        self._check(clear_storage=False)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def has_role(self, roles_to_check: Optional[Iterable[str]] = None) -> bool:
        """``True`` if no roles are required or the current role is listed.

        Comparison is case-insensitive.  Always ``False`` without a role.
        """
        current = self.state.role
        if current is None:
            return False
        wanted = [str(role).strip().lower() for role in (roles_to_check or [])]
        if not wanted:
            return True
        return current.value in wanted

    # ------------------------------------------------------------------
    # Gateway wiring
    # ------------------------------------------------------------------

    def bind_gateway(self, gateway: "RequestGateway") -> None:
        """Receive the gateway's 401 notifications and own its cache lifetime."""
        self._gateway = gateway
        gateway.set_on_unauthorized_callback(self._on_unauthorized)

    def unbind_gateway(self) -> None:
        if self._gateway is not None:
            self._gateway.set_on_unauthorized_callback(None)
            self._gateway = None

    def _on_unauthorized(self) -> None:
        self._logger.warning("Backend rejected the session (401); logging out.")
        self.logout()

    def _clear_gateway_cache(self) -> None:
        if self._gateway is not None:
            self._gateway.clear_cache()

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Call *listener* with every new state; returns an unsubscribe function."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _set_state(self, new_state: SessionState) -> None:
        with self._lock:
            if new_state == self._state:
                return
            self._state = new_state
        for listener in list(self._listeners):
            listener(new_state)
