"""
Authentication Models.

Pydantic models for the session snapshot exposed to callers and for the
login contract with the backend (``POST users/login``).
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, field_validator

from medclinic.models.enums import AuthStatus, UserRole


class StorageKey:
    """Durable storage keys shared with other running instances."""

    TOKEN: str = "token"
    USER_ROLE: str = "userRole"
    USER_ID: str = "userId"

    ALL: frozenset[str] = frozenset({TOKEN, USER_ROLE, USER_ID})


class SessionState(BaseModel):
    """Immutable snapshot of the session.

    ``is_authenticated`` is only ever ``True`` together with a ``role``
    and a ``user_id``.
    """

    model_config = ConfigDict(frozen=True)

    is_authenticated: bool = False
    role: Optional[UserRole] = None
    user_id: Optional[str] = None
    loading: bool = True

    @property
    def status(self) -> AuthStatus:
        if self.loading:
            return AuthStatus.LOADING
        if self.is_authenticated:
            return AuthStatus.AUTHENTICATED
        return AuthStatus.UNAUTHENTICATED


class LoginRequest(BaseModel):
    """Credentials posted to ``users/login``."""

    email: str
    password: str


class LoginResponse(BaseModel):
    """Successful login payload returned by the backend.

    The backend sends ``id`` as a number or a string and ``role`` in
    whatever case it stores it; both are normalised here.
    """

    model_config = ConfigDict(extra="ignore")

    token: str
    role: UserRole
    id: str

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        return str(value) if isinstance(value, int) else value


class AuthContext(BaseModel):
    """What a screen receives from ``SessionManager.use_auth()``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    is_authenticated: bool
    role: Optional[UserRole]
    user_id: Optional[str]
    loading: bool
    login: Callable[[str, str, str], None]
    logout: Callable[[], None]
    has_role: Callable[[Sequence[str]], bool]
