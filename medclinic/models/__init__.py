"""
Data Models Package.

Re-exports all Pydantic models and enumerations:
    from medclinic.models import SessionState, LoginResponse, RequestConfig
    from medclinic.models import UserRole, ErrorKind, AuthStatus
"""

from __future__ import annotations

from medclinic.models.auth_models import (
    AuthContext,
    LoginRequest,
    LoginResponse,
    SessionState,
    StorageKey,
)
from medclinic.models.enums import (
    AppointmentStatus,
    AuthStatus,
    ErrorKind,
    GuardOutcome,
    HttpMethod,
    UserRole,
)
from medclinic.models.service_models import (
    CacheEntry,
    RequestConfig,
    ServiceResult,
    StorageEvent,
    ValidationResult,
)

__all__ = [
    "AppointmentStatus",
    "AuthContext",
    "AuthStatus",
    "CacheEntry",
    "ErrorKind",
    "GuardOutcome",
    "HttpMethod",
    "LoginRequest",
    "LoginResponse",
    "RequestConfig",
    "ServiceResult",
    "SessionState",
    "StorageEvent",
    "StorageKey",
    "UserRole",
    "ValidationResult",
]
