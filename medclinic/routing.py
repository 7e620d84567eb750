"""
Route Registry, Guard and Navigator.

Central table of every screen the client offers, with the roles allowed
to open it.  ``RouteGuard`` is the one place where access is decided;
screens never check roles themselves.

Adding a screen = one ``register()`` call.  Navigation menus come from
``navigation_for(role)``, so a screen a role cannot open never shows up
in that role's menu.

Usage::

    registry = default_routes(logger)
    guard = RouteGuard(registry, session)
    decision = guard.resolve("/doctors/12/edit")
    if decision.outcome is GuardOutcome.ALLOW:
        ...
"""

from __future__ import annotations

from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from medclinic.auth import SessionManager
from medclinic.logger import StructuredLogger, get_logger
from medclinic.models.enums import GuardOutcome, UserRole

LOGIN_PATH: str = "/login"
HOME_PATH: str = "/dashboard"

_STAFF = frozenset({UserRole.ADMIN})
_SCHEDULING = frozenset(
    {UserRole.ADMIN, UserRole.DOCTOR, UserRole.RECEPTIONIST, UserRole.PATIENT}
)
_SCHEDULE_EDIT = frozenset({UserRole.ADMIN, UserRole.DOCTOR, UserRole.RECEPTIONIST})
_RECORDS = frozenset({UserRole.ADMIN, UserRole.DOCTOR, UserRole.PATIENT})


def _split(path: str) -> list[str]:
    return [segment for segment in path.split("?", 1)[0].strip().split("/") if segment]


class Route:
    """A single registered screen.

    Attributes
    ----------
    pattern:
        Path pattern; ``:name`` segments match any single segment.
    title:
        Human-readable name shown in menus.
    roles:
        Roles allowed to open the screen.  Empty means any
        authenticated user.
    nav:
        Whether the screen appears in navigation menus.
    public:
        Reachable without a session (the login screen).
    """

    __slots__ = ("pattern", "title", "roles", "nav", "public", "_segments")

    def __init__(
        self,
        pattern: str,
        title: str,
        roles: frozenset[UserRole] = frozenset(),
        nav: bool = False,
        public: bool = False,
    ) -> None:
        self.pattern = "/" + "/".join(_split(pattern))
        self.title = title
        self.roles = roles
        self.nav = nav
        self.public = public
        self._segments = _split(pattern)

    def match(self, path: str) -> Optional[dict[str, str]]:
        """Return the captured ``:name`` parameters, or ``None`` on mismatch."""
        segments = _split(path)
        if len(segments) != len(self._segments):
            return None
        params: dict[str, str] = {}
        for expected, actual in zip(self._segments, segments):
            if expected.startswith(":"):
                params[expected[1:]] = actual
            elif expected != actual:
                return None
        return params

    def allows(self, role: Optional[UserRole]) -> bool:
        if not self.roles:
            return role is not None
        return role in self.roles

    def __repr__(self) -> str:
        return f"Route({self.pattern!r})"


class GuardDecision(BaseModel):
    """What the guard decided for one navigation target."""

    model_config = ConfigDict(frozen=True)

    outcome: GuardOutcome
    path: str
    redirect_to: Optional[str] = None
    title: Optional[str] = None
    params: dict[str, str] = Field(default_factory=dict)
    allowed_roles: tuple[str, ...] = ()


class RouteRegistry:
    """Ordered collection of ``Route`` entries.

    Parameters
    ----------
    logger:
        Structured logger for registration events.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._routes: list[Route] = []
        self._logger = logger

    def register(
        self,
        pattern: str,
        title: str,
        roles: Iterable[UserRole] = (),
        *,
        nav: bool = False,
        public: bool = False,
    ) -> Route:
        route = Route(pattern, title, frozenset(roles), nav=nav, public=public)
        if any(existing.pattern == route.pattern for existing in self._routes):
            self._logger.warning("Route '%s' already registered; overwriting.", route.pattern)
            self._routes = [r for r in self._routes if r.pattern != route.pattern]
        self._routes.append(route)
        self._logger.debug("Route registered: %s (%s)", route.pattern, title)
        return route

    def match(self, path: str) -> Optional[tuple[Route, dict[str, str]]]:
        """First route matching *path*, with its captured parameters."""
        for route in self._routes:
            params = route.match(path)
            if params is not None:
                return route, params
        return None

    def navigation_for(self, role: Optional[UserRole]) -> list[Route]:
        """Menu entries visible to *role*, preserving registration order."""
        return [route for route in self._routes if route.nav and route.allows(role)]

    @property
    def routes(self) -> list[Route]:
        return list(self._routes)


class RouteGuard:
    """Decides whether the current session may open a path.

    Decision order: unknown path, login screen, loading, unauthenticated,
    role check.
    """

    def __init__(
        self,
        registry: RouteRegistry,
        session: SessionManager,
        home_path: str = HOME_PATH,
        login_path: str = LOGIN_PATH,
    ) -> None:
        self._registry = registry
        self._session = session
        self._home_path = home_path
        self._login_path = login_path

    def resolve(self, path: str) -> GuardDecision:
        state = self._session.state
        found = self._registry.match(path)

        if found is None:
            return GuardDecision(
                outcome=GuardOutcome.REDIRECT_HOME,
                path=path,
                redirect_to=self._home_path,
            )

        route, params = found
        if route.public:
            if state.loading:
                return GuardDecision(outcome=GuardOutcome.LOADING, path=path)
            if state.is_authenticated:
                return GuardDecision(
                    outcome=GuardOutcome.REDIRECT_HOME,
                    path=path,
                    redirect_to=self._home_path,
                )
            return GuardDecision(outcome=GuardOutcome.ALLOW, path=path, title=route.title)

        if state.loading:
            return GuardDecision(outcome=GuardOutcome.LOADING, path=path)
        if not state.is_authenticated:
            return GuardDecision(
                outcome=GuardOutcome.REDIRECT_LOGIN,
                path=path,
                redirect_to=self._login_path,
            )
        if route.roles and not self._session.has_role(route.roles):
            return GuardDecision(
                outcome=GuardOutcome.FORBIDDEN,
                path=path,
                title=route.title,
                allowed_roles=tuple(sorted(role.value for role in route.roles)),
            )
        return GuardDecision(
            outcome=GuardOutcome.ALLOW,
            path=path,
            title=route.title,
            params=params,
        )

    def navigation(self) -> list[Route]:
        """Menu entries for the current session's role."""
        if not self._session.is_authenticated:
            return []
        return self._registry.navigation_for(self._session.role)


class Navigator:
    """Records the current path and the history of visited paths.

    Passed to ``SessionManager`` as its navigator, so a logout lands the
    client on the login screen.
    """

    def __init__(self, logger: StructuredLogger, initial_path: str = HOME_PATH) -> None:
        self._logger = logger
        self._current: str = initial_path
        self._history: list[str] = [initial_path]

    def navigate(self, path: str) -> None:
        if path == self._current:
            return
        self._logger.debug("Navigating %s -> %s", self._current, path)
        self._current = path
        self._history.append(path)

    @property
    def current_path(self) -> str:
        return self._current

    @property
    def history(self) -> list[str]:
        return list(self._history)


def default_routes(
    logger: Optional[StructuredLogger] = None,
    login_path: str = LOGIN_PATH,
    home_path: str = HOME_PATH,
) -> RouteRegistry:
    """The clinic client's screen table."""
    registry = RouteRegistry(logger or get_logger("routing"))
    registry.register(login_path, "Login", public=True)
    registry.register(home_path, "Dashboard", nav=True)
    registry.register("/appointments", "Appointments", _SCHEDULING, nav=True)
    registry.register("/appointments/new", "New appointment", _SCHEDULING)
    registry.register("/appointments/edit/:id", "Edit appointment", _SCHEDULE_EDIT)
    registry.register("/patients", "Patients", _STAFF, nav=True)
    registry.register("/doctors", "Doctors", _STAFF, nav=True)
    registry.register("/doctors/new", "New doctor", _STAFF)
    registry.register("/doctors/:id/edit", "Edit doctor", _STAFF)
    registry.register("/clinics", "Clinics", _STAFF, nav=True)
    registry.register("/clinics/new", "New clinic", _STAFF)
    registry.register("/clinics/:id/edit", "Edit clinic", _STAFF)
    registry.register("/specialties", "Specialties", _STAFF, nav=True)
    registry.register("/users", "Users", _STAFF, nav=True)
    registry.register("/users/new", "New user", _STAFF)
    registry.register("/users/edit/:id", "Edit user", _STAFF)
    registry.register("/prontuarios", "Medical records", _RECORDS, nav=True)
    return registry


def navigation_for(
    role: Optional[UserRole],
    logger: Optional[StructuredLogger] = None,
) -> list[Route]:
    """Menu entries of the default table visible to *role*."""
    return default_routes(logger).navigation_for(role)
