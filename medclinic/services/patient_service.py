"""Patient records: CPF-validated CRUD plus name/CPF search."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from medclinic.models.enums import UserRole
from medclinic.services.resource_service import ResourceService
from medclinic.utils.validators import digits_only, validate_cpf, validate_email

_RE_CPF_GROUPS = re.compile(r"^(\d{3})(\d{3})(\d{3})(\d{2})$")


class PatientService(ResourceService):
    """Admin-managed patient collection.

    CPF numbers are validated on every write and sent digits-only.
    """

    path = "patients"
    label = "patient"
    invalidates = ("users",)
    write_roles = (UserRole.ADMIN,)
    required_fields = ("first_name", "cpf", "email", "phone")

    def prepare_create(self, data: dict[str, Any]) -> dict[str, Any]:
        return self._normalise(data)

    def prepare_update(self, data: dict[str, Any]) -> dict[str, Any]:
        return self._normalise(data)

    def _normalise(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("cpf"):
            self._ensure_valid(validate_cpf(data["cpf"]), data)
            data["cpf"] = digits_only(data["cpf"])
        if data.get("email"):
            self._ensure_valid(validate_email(data["email"]), data)
        return data

    async def search(self, term: str) -> Any:
        """Search patients by name or CPF."""
        return await self._call(
            "Search patients",
            self._gateway.get(f"{self.path}/search", {"q": term}),
        )

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    @staticmethod
    def format_full_name(patient: Optional[Mapping[str, Any]]) -> str:
        if not patient:
            return ""
        return f"{patient.get('first_name', '')} {patient.get('last_name') or ''}".strip()

    @staticmethod
    def format_cpf(cpf: Optional[str]) -> str:
        """``"52998224725"`` -> ``"529.982.247-25"``."""
        if not cpf:
            return ""
        return _RE_CPF_GROUPS.sub(r"\1.\2.\3-\4", digits_only(cpf))
