"""
Authentication Guard Decorators.

Factories that produce decorators gating service-layer callables (plain
or ``async``) behind the session: ``require_auth`` needs any logged-in
user, ``require_roles`` additionally needs one of the listed roles.

Usage::

    session = SessionManager(storage, logger)
    admin_only = require_roles(session, [UserRole.ADMIN])

    @admin_only
    async def delete_clinic(clinic_id: str) -> None:
        ...
"""

from __future__ import annotations

import inspect
from functools import wraps
from typing import Any, Callable, Iterable, TypeVar

from medclinic.auth import SessionManager
from medclinic.errors import ApiError
from medclinic.models.enums import ErrorKind

F = TypeVar("F", bound=Callable[..., Any])


class AuthenticationError(ApiError):
    """Raised when a guarded function is called without an active session.

    Classified as ``unauthorized`` but raised client-side, so it never
    triggers the gateway's logout callback.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.UNAUTHORIZED)


class AuthorizationError(ApiError):
    """Raised when the session's role is not allowed to call a guarded function."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind=ErrorKind.FORBIDDEN)


def _guard(check: Callable[[], None]) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                check()
                return await func(*args, **kwargs)

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            check()
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def check_roles(session: SessionManager, roles: Iterable[str] = ()) -> None:
    """Raise unless *session* is authenticated with one of *roles*.

    An empty *roles* list admits any authenticated user.

    Raises:
        AuthenticationError: No active session.
        AuthorizationError: The session's role is not listed.
    """
    allowed = [str(role).lower() for role in roles]
    if not session.is_authenticated:
        raise AuthenticationError(
            "Authentication required. Please log in before "
            "performing this action."
        )
    if not session.has_role(allowed):
        raise AuthorizationError(
            f"Role '{session.role}' is not permitted; "
            f"allowed roles: {', '.join(allowed)}."
        )


def require_auth(session: SessionManager) -> Callable[[F], F]:
    """Return a decorator that enforces authentication via *session*.

    Args:
        session: The injectable ``SessionManager`` that holds the
            current user state.

    Returns:
        A decorator suitable for wrapping service-layer callables.
    """
    return _guard(lambda: check_roles(session))


def require_roles(session: SessionManager, roles: Iterable[str]) -> Callable[[F], F]:
    """Return a decorator that enforces authentication and a role allow-list."""
    allowed = list(roles)
    return _guard(lambda: check_roles(session, allowed))
