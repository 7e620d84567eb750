"""
Medical Record Service.

CRUD over ``prontuarios`` (medical records).  Admins and doctors write;
patients read only the records filed under their own id.

The record form takes free text, which is parsed here into the payload
the backend stores::

    allergies:   "penicillin, dust"
    medications: "Losartan (50mg, 1x/day); Metformin (850mg, 2x/day)"
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

from medclinic.models.enums import UserRole
from medclinic.services.resource_service import ResourceService

_RE_MEDICATION = re.compile(r"(.+)\((\d+)mg,\s*(.+)\)")


def parse_allergies(text: str) -> list[str]:
    return [item.strip() for item in (text or "").split(",") if item.strip()]


def parse_medications(text: str) -> list[dict[str, Any]]:
    """Parse ``"Name (50mg, frequency)"`` items separated by ``;``.

    Items that do not match the pattern are skipped.
    """
    medications: list[dict[str, Any]] = []
    for item in (text or "").split(";"):
        match = _RE_MEDICATION.match(item.strip())
        if match is None:
            continue
        medications.append(
            {
                "name": match.group(1).strip(),
                "doseMg": int(match.group(2)),
                "frequency": match.group(3).strip(),
            }
        )
    return medications


class MedicalRecordService(ResourceService):
    path = "prontuarios"
    label = "medical record"
    write_roles = (UserRole.ADMIN, UserRole.DOCTOR)
    required_fields = ("patientId",)

    @staticmethod
    def build_payload(patient_id: str, allergies: str, medications: str) -> dict[str, Any]:
        return {
            "patientId": patient_id,
            "allergies": parse_allergies(allergies),
            "medications": parse_medications(medications),
        }

    @staticmethod
    def visible_to(
        records: Iterable[Mapping[str, Any]],
        role: Optional[UserRole],
        user_id: Optional[str],
    ) -> list[Mapping[str, Any]]:
        if role in (UserRole.ADMIN, UserRole.DOCTOR):
            return list(records)
        if role == UserRole.PATIENT:
            return [r for r in records if str(r.get("patientId")) == str(user_id)]
        return []
