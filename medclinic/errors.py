"""
Normalized API Errors.

Every failed gateway call surfaces as a single exception type,
``ApiError``, whatever the underlying cause (HTTP status, dropped
connection, timeout, cancellation, or client-side validation).  Callers
branch on the ``is_*`` flags; raw ``httpx`` exceptions never escape the
gateway.
"""

from __future__ import annotations

from typing import Any, Optional

from medclinic.models.enums import ErrorKind
from medclinic.models.service_models import ServiceResult

# ---------------------------------------------------------------------------
# Default messages
# ---------------------------------------------------------------------------

MSG_UNAUTHORIZED: str = "Session expired. Please log in again."
MSG_FORBIDDEN: str = "Access not permitted."
MSG_NOT_FOUND: str = "Resource not found."
MSG_SERVER: str = "Internal server error."
MSG_REQUEST_FAILED: str = "Request failed."
MSG_TIMEOUT: str = "Connection timed out. Check your connection and try again."
MSG_NETWORK: str = "Could not connect to the server. Check your internet connection."
MSG_CANCELLED: str = "Request cancelled by the user."
MSG_UNKNOWN: str = "Error processing the request."

# What a screen should show for each classification.  Validation
# errors are absent because they surface the backend message verbatim.
_USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.UNAUTHORIZED: MSG_UNAUTHORIZED,
    ErrorKind.FORBIDDEN: "You are not permitted to perform this action.",
    ErrorKind.NOT_FOUND: "The requested record was not found.",
    ErrorKind.SERVER: "The server failed to process the request. Try again later.",
    ErrorKind.NETWORK: MSG_NETWORK,
    ErrorKind.TIMEOUT: MSG_TIMEOUT,
    ErrorKind.CANCELLED: MSG_CANCELLED,
    ErrorKind.UNKNOWN: "An unexpected error occurred.",
}


def _payload_message(payload: Any) -> Optional[str]:
    """Return the backend-provided ``message``/``error`` text, if any."""
    if isinstance(payload, dict):
        for field in ("message", "error", "detail"):
            value = payload.get(field)
            if isinstance(value, str) and value.strip():
                return value
    return None


class ApiError(Exception):
    """The one failure shape presented to every caller of the gateway.

    Attributes
    ----------
    message:
        Human-readable description.
    kind:
        The ``ErrorKind`` classification.
    http_status:
        Response status code, or ``None`` when no response was received.
    payload:
        Decoded error body from the backend, or ``None``.
    request_id:
        Correlation id of the failed call, when known.
    url:
        Request URL, when known.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        http_status: Optional[int] = None,
        payload: Any = None,
        request_id: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.kind: ErrorKind = kind
        self.http_status: Optional[int] = http_status
        self.payload: Any = payload
        self.request_id: Optional[str] = request_id
        self.url: Optional[str] = url

    def __repr__(self) -> str:
        return (
            f"ApiError(kind={self.kind.value!r}, http_status={self.http_status!r}, "
            f"message={self.message!r})"
        )

    # ------------------------------------------------------------------
    # Classification flags
    # ------------------------------------------------------------------

    @property
    def is_network_error(self) -> bool:
        return self.kind == ErrorKind.NETWORK

    @property
    def is_timeout(self) -> bool:
        return self.kind == ErrorKind.TIMEOUT

    @property
    def is_unauthorized(self) -> bool:
        return self.kind == ErrorKind.UNAUTHORIZED

    @property
    def is_forbidden(self) -> bool:
        return self.kind == ErrorKind.FORBIDDEN

    @property
    def is_not_found(self) -> bool:
        return self.kind == ErrorKind.NOT_FOUND

    @property
    def is_server_error(self) -> bool:
        return self.kind == ErrorKind.SERVER

    @property
    def is_cancelled(self) -> bool:
        return self.kind == ErrorKind.CANCELLED

    @property
    def is_validation_error(self) -> bool:
        return self.kind == ErrorKind.VALIDATION

    @property
    def is_retryable(self) -> bool:
        """``True`` for failures where a retry affordance makes sense."""
        return self.kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT)

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_status(
        cls,
        status: int,
        payload: Any = None,
        request_id: Optional[str] = None,
        url: Optional[str] = None,
    ) -> "ApiError":
        """Classify a non-success HTTP response."""
        if status == 401:
            kind, message = ErrorKind.UNAUTHORIZED, MSG_UNAUTHORIZED
        elif status == 403:
            kind, message = ErrorKind.FORBIDDEN, MSG_FORBIDDEN
        elif status == 404:
            kind, message = ErrorKind.NOT_FOUND, MSG_NOT_FOUND
        elif status >= 500:
            kind, message = ErrorKind.SERVER, MSG_SERVER
        elif 400 <= status < 500:
            kind = ErrorKind.VALIDATION
            message = _payload_message(payload) or MSG_REQUEST_FAILED
        else:
            kind, message = ErrorKind.UNKNOWN, MSG_UNKNOWN
        return cls(
            message,
            kind=kind,
            http_status=status,
            payload=payload,
            request_id=request_id,
            url=url,
        )

    @classmethod
    def network(cls, request_id: Optional[str] = None, url: Optional[str] = None) -> "ApiError":
        return cls(MSG_NETWORK, kind=ErrorKind.NETWORK, request_id=request_id, url=url)

    @classmethod
    def timeout(cls, request_id: Optional[str] = None, url: Optional[str] = None) -> "ApiError":
        return cls(MSG_TIMEOUT, kind=ErrorKind.TIMEOUT, request_id=request_id, url=url)

    @classmethod
    def cancelled(cls, request_id: Optional[str] = None, url: Optional[str] = None) -> "ApiError":
        return cls(MSG_CANCELLED, kind=ErrorKind.CANCELLED, request_id=request_id, url=url)

    @classmethod
    def validation(cls, message: str, payload: Any = None) -> "ApiError":
        """A client-side validation failure (no request was sent)."""
        return cls(message, kind=ErrorKind.VALIDATION, payload=payload)

    @classmethod
    def unknown(
        cls,
        message: str = MSG_UNKNOWN,
        request_id: Optional[str] = None,
        url: Optional[str] = None,
    ) -> "ApiError":
        return cls(message, kind=ErrorKind.UNKNOWN, request_id=request_id, url=url)

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    def user_message(self, fallback: str = "The request could not be completed.") -> str:
        """Message suitable for showing to the person using the client.

        Validation errors surface the backend text verbatim when present,
        otherwise *fallback*.
        """
        if self.kind == ErrorKind.VALIDATION:
            return self.message if self.message != MSG_REQUEST_FAILED else fallback
        return _USER_MESSAGES.get(self.kind, fallback)

    def to_result(self, message: Optional[str] = None) -> ServiceResult:
        """Wrap this error in a failed ``ServiceResult``."""
        return ServiceResult(
            success=False,
            data=self.payload,
            error=message or self.message,
            error_kind=self.kind.value,
            status_code=self.http_status,
        )
