"""
Authentication Service.

Posts credentials to ``users/login`` and, on success, hands the issued
token, role and id to the ``SessionManager``.  The login call is public,
so no bearer token is attached.  Rejected credentials (401) are
re-raised as a validation error so the caller shows "wrong password"
rather than "session expired".
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from medclinic.auth import SessionManager
from medclinic.errors import ApiError
from medclinic.gateway import RequestGateway
from medclinic.logger import StructuredLogger
from medclinic.models.auth_models import LoginRequest, LoginResponse
from medclinic.models.enums import ErrorKind
from medclinic.models.service_models import RequestConfig
from medclinic.services.base_service import BaseService

LOGIN_PATH: str = "users/login"

MSG_INVALID_LOGIN_RESPONSE: str = "Invalid login response: token, role or ID missing."
MSG_BAD_CREDENTIALS: str = "Invalid e-mail or password."


class AuthService(BaseService):
    """Login/logout orchestration between the gateway and the session."""

    def __init__(
        self,
        gateway: RequestGateway,
        session: SessionManager,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._gateway = gateway
        self._session = session

    async def login(self, email: str, password: str) -> LoginResponse:
        """Authenticate and start a session.

        Raises:
            ApiError: Validation error for blank credentials or a
                malformed response; otherwise whatever the gateway raised.
        """
        email = (email or "").strip()
        if not email or not password:
            raise ApiError.validation("E-mail and password are required.")

        credentials = LoginRequest(email=email, password=password)
        try:
            payload: Any = await self._gateway.post(
                LOGIN_PATH,
                credentials.model_dump(),
                config=RequestConfig(public=True),
            )
        except ApiError as exc:
            self._log_failure("Login", exc)
            if exc.is_unauthorized:
                raise ApiError(
                    MSG_BAD_CREDENTIALS,
                    kind=ErrorKind.VALIDATION,
                    http_status=exc.http_status,
                    payload=exc.payload,
                ) from exc
            raise

        if not isinstance(payload, dict) or not all(
            payload.get(field) for field in ("token", "role", "id")
        ):
            self._logger.error("Login response is missing token, role or id.")
            raise ApiError.validation(MSG_INVALID_LOGIN_RESPONSE, payload)

        try:
            response = LoginResponse.model_validate(payload)
        except ValidationError as exc:
            self._logger.error("Login response rejected: %s", exc)
            raise ApiError.validation(
                "Invalid login response: unrecognised role or ID.",
                payload,
            ) from exc

        self._session.login(response.token, response.role.value, response.id)
        return response

    def logout(self) -> None:
        self._session.logout()
