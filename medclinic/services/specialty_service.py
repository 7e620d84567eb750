"""Medical specialties: admin-managed reference data, cached on read."""

from __future__ import annotations

from medclinic.models.enums import UserRole
from medclinic.services.resource_service import ResourceService


class SpecialtyService(ResourceService):
    path = "specialties"
    label = "specialty"
    invalidates = ("doctors",)
    write_roles = (UserRole.ADMIN,)
    use_cache = True
    required_fields = ("name",)
