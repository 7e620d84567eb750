"""
Request Layer Data Transfer Objects.

Pydantic models for validated input/output at the gateway boundary:
per-call configuration, cache entries, storage-change events, and the
``ServiceResult`` envelope returned by ``RequestGateway.safe_request``.
"""

from __future__ import annotations

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

__all__ = [
    "CacheEntry",
    "RequestConfig",
    "ServiceResult",
    "StorageEvent",
    "ValidationResult",
]


# ---------------------------------------------------------------------------
# Gateway models
# ---------------------------------------------------------------------------

class RequestConfig(BaseModel):
    """Per-call options merged over the gateway defaults.

    ``timeout`` and ``cache_ttl`` are in seconds; ``None`` means "use the
    gateway default" (``REQUEST_TIMEOUT_S`` / ``CACHE_TTL_S``).
    """

    model_config = ConfigDict(extra="forbid")

    cache: bool = False
    cache_ttl: Optional[float] = Field(default=None, gt=0)
    timeout: Optional[float] = Field(default=None, gt=0)
    public: bool = False
    show_error: bool = True
    request_id: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)


class CacheEntry(BaseModel):
    """A cached read payload and the monotonic time it was stored."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    payload: Any = None
    stored_at: float

    def is_fresh(self, now: float, ttl: float) -> bool:
        return now - self.stored_at < ttl


class StorageEvent(BaseModel):
    """A durable-storage key changed outside this instance.

    ``new_value`` is ``None`` when the key was removed.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None


# ---------------------------------------------------------------------------
# Generic service models
# ---------------------------------------------------------------------------

class ServiceResult(BaseModel, Generic[T]):
    """
    Standard non-raising return envelope.

    ``RequestGateway.safe_request`` returns this so that callers which
    prefer branching over ``try``/``except`` get a consistent contract.
    ``error_kind`` carries the ``ErrorKind`` value of the failure.
    """

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    status_code: Optional[int] = 200


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check.

    Attributes
    ----------
    is_valid:
        ``True`` when the value passes the validation rule.
    error_message:
        Human-readable description of the failure, or ``None`` on success.
    """

    is_valid: bool
    error_message: Optional[str] = None
