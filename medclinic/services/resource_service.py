"""
Resource Service Base.

Generic CRUD over one REST collection.  Subclasses declare, as class
attributes, the collection ``path``, the other collections a write makes
stale (``invalidates``), the roles allowed to write (``write_roles``),
and whether reads go through the gateway cache (``use_cache``).

After every successful write the gateway cache is cleared for the
collection, for the touched item, and for each declared dependent path,
so a screen never re-reads a list it just changed from the cache.

Usage::

    class ClinicService(ResourceService):
        path = "clinics"
        label = "clinic"
        invalidates = ("doctors",)
        write_roles = (UserRole.ADMIN,)
        use_cache = True
"""

from __future__ import annotations

from typing import Any, Awaitable, ClassVar, Mapping, Optional

from medclinic.auth import SessionManager
from medclinic.errors import ApiError
from medclinic.gateway import RequestGateway
from medclinic.jwt_auth import check_roles
from medclinic.logger import StructuredLogger
from medclinic.models.enums import UserRole
from medclinic.models.service_models import RequestConfig
from medclinic.services.base_service import BaseService
from medclinic.utils.validators import missing_fields


class ResourceService(BaseService):
    """CRUD operations against ``path`` through the shared gateway.

    Parameters
    ----------
    gateway:
        The application's single ``RequestGateway``.
    logger:
        Structured logger.
    session:
        Optional ``SessionManager``.  When given, writes are refused
        client-side unless the session holds one of ``write_roles``.
    """

    path: ClassVar[str] = ""
    label: ClassVar[str] = "resource"
    invalidates: ClassVar[tuple[str, ...]] = ()
    write_roles: ClassVar[tuple[UserRole, ...]] = ()
    use_cache: ClassVar[bool] = False
    required_fields: ClassVar[tuple[str, ...]] = ()

    def __init__(
        self,
        gateway: RequestGateway,
        logger: StructuredLogger,
        session: Optional[SessionManager] = None,
    ) -> None:
        super().__init__(logger)
        self._gateway: RequestGateway = gateway
        self._session: Optional[SessionManager] = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list(self, filters: Optional[Mapping[str, Any]] = None) -> Any:
        """List the collection, dropping empty filter values."""
        params = {
            key: value
            for key, value in (filters or {}).items()
            if value is not None and value != ""
        }
        return await self._call(
            f"List {self.label}s",
            self._gateway.get(self.path, params or None, config=self._read_config()),
        )

    async def get_by_id(self, resource_id: Any) -> Any:
        self._require_id(resource_id)
        return await self._call(
            f"Fetch {self.label} {resource_id}",
            self._gateway.get(self._item_path(resource_id), config=self._read_config()),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, data: Mapping[str, Any]) -> Any:
        self._authorize_write()
        missing = missing_fields(data, self.required_fields)
        if missing:
            raise ApiError.validation(f"Missing required fields: {', '.join(missing)}")
        payload = self.prepare_create(dict(data))
        result = await self._call(
            f"Create {self.label}",
            self._gateway.post(self.path, payload),
        )
        self._invalidate()
        return result

    async def update(self, resource_id: Any, data: Mapping[str, Any]) -> Any:
        self._authorize_write()
        self._require_id(resource_id)
        payload = self.prepare_update(dict(data))
        result = await self._call(
            f"Update {self.label} {resource_id}",
            self._gateway.put(self._item_path(resource_id), payload),
        )
        self._invalidate(resource_id)
        return result

    async def delete(self, resource_id: Any) -> None:
        self._authorize_write()
        self._require_id(resource_id)
        await self._call(
            f"Delete {self.label} {resource_id}",
            self._gateway.delete(self._item_path(resource_id)),
        )
        self._invalidate(resource_id)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def prepare_create(self, data: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalise a create payload.  Identity by default."""
        return data

    def prepare_update(self, data: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalise an update payload.  Identity by default."""
        return data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(self, action: str, pending: Awaitable[Any]) -> Any:
        try:
            return await pending
        except ApiError as exc:
            self._log_failure(action, exc)
            raise

    def _read_config(self) -> Optional[RequestConfig]:
        return RequestConfig(cache=True) if self.use_cache else None

    def _item_path(self, resource_id: Any) -> str:
        return f"{self.path}/{resource_id}"

    def _require_id(self, resource_id: Any) -> None:
        if resource_id is None or resource_id == "":
            raise ApiError.validation(f"No {self.label} id provided.")

    def _authorize_write(self) -> None:
        if self._session is not None:
            check_roles(self._session, self.write_roles)

    def _invalidate(self, resource_id: Any = None) -> None:
        self._gateway.clear_cache(self.path)
        if resource_id is not None:
            self._gateway.clear_cache(self._item_path(resource_id))
        for dependent in self.invalidates:
            self._gateway.clear_cache(dependent)
