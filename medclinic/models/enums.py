"""
Shared Enumerations for medclinic Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so code like ``if role == 'admin'`` keeps working.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class UserRole(StrEnum):
    """Roles recognised by the clinic backend.

    Values are stored lower-case in durable storage; the backend may
    return them in any case (``"DOCTOR"``), so always go through
    :meth:`parse`.
    """

    ADMIN = "admin"
    DOCTOR = "doctor"
    RECEPTIONIST = "receptionist"
    PATIENT = "patient"
    USER = "user"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["UserRole"]:
        """Case-insensitive lookup; ``None`` for empty or unknown values."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class AuthStatus(StrEnum):
    """States of the session state machine."""

    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"


class ErrorKind(StrEnum):
    """Classification carried by every ``ApiError``."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    SERVER = "server"
    CANCELLED = "cancelled"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class HttpMethod(StrEnum):
    """HTTP verbs issued by the request gateway."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class AppointmentStatus(StrEnum):
    """Lifecycle states of an appointment as stored by the backend."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class GuardOutcome(StrEnum):
    """Result of checking a navigation target against the session."""

    ALLOW = "allow"
    LOADING = "loading"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_HOME = "redirect_home"
    FORBIDDEN = "forbidden"
