"""User accounts, listed by role for the admin screens."""

from __future__ import annotations

from typing import Any

from medclinic.models.enums import UserRole
from medclinic.services.resource_service import ResourceService


class UserService(ResourceService):
    path = "users"
    label = "user"
    invalidates = ("doctors", "patients")
    write_roles = (UserRole.ADMIN,)

    async def list_doctors(self) -> Any:
        return await self.list({"role": UserRole.DOCTOR.value})

    async def list_patients(self) -> Any:
        return await self.list({"role": UserRole.PATIENT.value})

    async def list_receptionists(self) -> Any:
        return await self.list({"role": UserRole.RECEPTIONIST.value})
