"""
Appointment Service.

Scheduling CRUD.  Any authenticated role may book; what each role sees
is narrowed client-side by ``visible_to``, mirroring the backend's
ownership rules: staff see every appointment, a patient or a doctor only
their own.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from medclinic.errors import ApiError
from medclinic.models.enums import AppointmentStatus, UserRole
from medclinic.services.resource_service import ResourceService

WIRE_FORMAT: str = "%Y-%m-%dT%H:%M:%S"
DISPLAY_FORMAT: str = "%d/%m/%Y %H:%M"

LIST_FILTERS: tuple[str, ...] = (
    "patient_id",
    "doctor_id",
    "clinic_id",
    "status",
    "start_date",
    "end_date",
)

STATUS_LABELS: dict[str, str] = {
    AppointmentStatus.SCHEDULED: "Scheduled",
    AppointmentStatus.CONFIRMED: "Confirmed",
    AppointmentStatus.CANCELED: "Canceled",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.NO_SHOW: "No-show",
}


def parse_scheduled_at(value: Any) -> datetime:
    """Accept a ``datetime`` or an ISO-8601 string.

    Aware values are converted to local time and made naive, since the
    backend stores wall-clock times.

    Raises:
        ApiError: Validation error for anything unparseable.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError:
            raise ApiError.validation("Invalid appointment date/time.") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class AppointmentService(ResourceService):
    path = "appointments"
    label = "appointment"
    required_fields = ("patient_id", "doctor_id", "clinic_id", "scheduled_at")

    async def list(self, filters: Optional[Mapping[str, Any]] = None) -> Any:
        """List appointments; only the known filter keys are sent."""
        filters = filters or {}
        return await super().list({key: filters.get(key) for key in LIST_FILTERS})

    def prepare_create(self, data: dict[str, Any]) -> dict[str, Any]:
        data["scheduled_at"] = parse_scheduled_at(data["scheduled_at"]).strftime(WIRE_FORMAT)
        return data

    def prepare_update(self, data: dict[str, Any]) -> dict[str, Any]:
        if data.get("scheduled_at"):
            data["scheduled_at"] = parse_scheduled_at(data["scheduled_at"]).strftime(WIRE_FORMAT)
        return data

    @staticmethod
    def visible_to(
        appointments: Iterable[Mapping[str, Any]],
        role: Optional[UserRole],
        user_id: Optional[str],
    ) -> list[Mapping[str, Any]]:
        """Appointments *role* may see, ordered by ``scheduled_at``."""
        if role in (UserRole.ADMIN, UserRole.RECEPTIONIST):
            visible = list(appointments)
        elif role == UserRole.PATIENT:
            visible = [a for a in appointments if str(a.get("patient_id")) == str(user_id)]
        elif role == UserRole.DOCTOR:
            visible = [a for a in appointments if str(a.get("doctor_id")) == str(user_id)]
        else:
            visible = []
        return sorted(visible, key=lambda a: str(a.get("scheduled_at") or ""))

    # ------------------------------------------------------------------
    # Display helpers
    # ------------------------------------------------------------------

    @staticmethod
    def format_date(value: Any, fmt: str = DISPLAY_FORMAT) -> str:
        if not value:
            return "Not scheduled"
        return parse_scheduled_at(value).strftime(fmt)

    @staticmethod
    def get_status_label(status: Optional[str]) -> str:
        """Display label for *status*; unknown values are returned as-is."""
        return STATUS_LABELS.get(status or "", status or "")
