"""Doctor directory: CRM-validated CRUD and clinic/specialty listings."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from medclinic.errors import ApiError
from medclinic.models.enums import UserRole
from medclinic.services.resource_service import ResourceService
from medclinic.utils.validators import validate_crm, validate_email

_RE_CRM_NOISE = re.compile(r"[^\dA-Z]")


class DoctorService(ResourceService):
    """Admin-managed doctor collection.  Reads are cached."""

    path = "doctors"
    label = "doctor"
    invalidates = ("users",)
    write_roles = (UserRole.ADMIN,)
    use_cache = True
    required_fields = ("first_name", "last_name", "email", "specialty_id", "crm")

    def prepare_create(self, data: dict[str, Any]) -> dict[str, Any]:
        return self._check(data)

    def prepare_update(self, data: dict[str, Any]) -> dict[str, Any]:
        return self._check(data)

    def _check(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("email"):
            self._ensure_valid(validate_email(data["email"]), data)
        if data.get("crm"):
            self._ensure_valid(validate_crm(data["crm"]), data)
        return data

    async def list_by_clinic(self, clinic_id: Any) -> Any:
        if not clinic_id:
            raise ApiError.validation("No clinic id provided.")
        return await self.list({"clinic_id": clinic_id})

    async def list_by_specialty(self, specialty_id: Any) -> Any:
        if not specialty_id:
            raise ApiError.validation("No specialty id provided.")
        return await self.list({"specialty_id": specialty_id})

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    @staticmethod
    def format_full_name(doctor: Optional[Mapping[str, Any]]) -> str:
        if not doctor:
            return ""
        return f"Dr(a). {doctor.get('first_name', '')} {doctor.get('last_name') or ''}".strip()

    @staticmethod
    def format_crm(crm: Optional[str]) -> str:
        """Normalise ``"crm sp-123456"`` to ``"CRM/SP 123456"``.

        Returns *crm* unchanged when it does not hold a state code and at
        least six digits.
        """
        if not crm:
            return ""
        cleaned = _RE_CRM_NOISE.sub("", crm.upper())
        if cleaned.startswith("CRM"):
            cleaned = cleaned[3:]
        state, number = cleaned[:2], cleaned[2:]
        if not (state.isalpha() and number.isdigit() and len(number) >= 6):
            return crm
        return f"CRM/{state} {number}"
