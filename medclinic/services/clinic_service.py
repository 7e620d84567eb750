"""Clinic registry with phone/e-mail checks and address formatting."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from medclinic.models.enums import UserRole
from medclinic.services.resource_service import ResourceService
from medclinic.utils.validators import digits_only, validate_email, validate_phone


class ClinicService(ResourceService):
    path = "clinics"
    label = "clinic"
    invalidates = ("doctors",)
    write_roles = (UserRole.ADMIN,)
    use_cache = True
    required_fields = ("name", "address", "phone", "email")

    def prepare_create(self, data: dict[str, Any]) -> dict[str, Any]:
        return self._check(data)

    def prepare_update(self, data: dict[str, Any]) -> dict[str, Any]:
        return self._check(data)

    def _check(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("email"):
            self._ensure_valid(validate_email(data["email"]), data)
        if data.get("phone"):
            self._ensure_valid(validate_phone(data["phone"]), data)
        return data

    @staticmethod
    def format_address(clinic: Optional[Mapping[str, Any]]) -> str:
        """Street line, then ``city - state``, then the ZIP code."""
        if not clinic:
            return ""
        street = ", ".join(
            str(clinic[field])
            for field in ("address", "number", "complement", "neighborhood")
            if clinic.get(field)
        )
        location = " - ".join(
            str(clinic[field]) for field in ("city", "state") if clinic.get(field)
        )
        return " - ".join(part for part in (street, location, clinic.get("zip_code")) if part)

    @staticmethod
    def format_phone(phone: Optional[str]) -> str:
        if not phone:
            return ""
        digits = digits_only(phone)
        if len(digits) == 11:
            return f"({digits[:2]}) {digits[2:7]}-{digits[7:]}"
        if len(digits) == 10:
            return f"({digits[:2]}) {digits[2:6]}-{digits[6:]}"
        return phone
