"""
Business Logic Services Package.

One service per backend resource, all sharing the application's single
``RequestGateway`` and ``SessionManager``.

The ``create_services()`` factory wires every service together,
returning a typed dict that the application layer (CLI commands or
screens) can consume without knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import Optional, TypedDict

from medclinic.auth import SessionManager
from medclinic.gateway import RequestGateway
from medclinic.logger import StructuredLogger, get_logger
from medclinic.services.appointment_service import AppointmentService
from medclinic.services.auth_service import AuthService
from medclinic.services.clinic_service import ClinicService
from medclinic.services.doctor_service import DoctorService
from medclinic.services.medical_record_service import MedicalRecordService
from medclinic.services.patient_service import PatientService
from medclinic.services.resource_service import ResourceService
from medclinic.services.specialty_service import SpecialtyService
from medclinic.services.storage_watcher import StorageWatcherService
from medclinic.services.user_service import UserService


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    auth_service: AuthService
    patient_service: PatientService
    doctor_service: DoctorService
    clinic_service: ClinicService
    appointment_service: AppointmentService
    user_service: UserService
    specialty_service: SpecialtyService
    medical_record_service: MedicalRecordService


def create_services(
    gateway: RequestGateway,
    session: SessionManager,
    logger: Optional[StructuredLogger] = None,
) -> ServiceContainer:
    """Instantiate every service around one gateway and one session.

    Args:
        gateway: The shared ``RequestGateway``.
        session: The shared ``SessionManager``; resource writes are
            checked against its role.
        logger: Optional logger; defaults to the package logger.
    """
    log = logger or get_logger("services")
    return ServiceContainer(
        auth_service=AuthService(gateway, session, log),
        patient_service=PatientService(gateway, log, session),
        doctor_service=DoctorService(gateway, log, session),
        clinic_service=ClinicService(gateway, log, session),
        appointment_service=AppointmentService(gateway, log, session),
        user_service=UserService(gateway, log, session),
        specialty_service=SpecialtyService(gateway, log, session),
        medical_record_service=MedicalRecordService(gateway, log, session),
    )


__all__ = [
    "AppointmentService",
    "AuthService",
    "ClinicService",
    "DoctorService",
    "MedicalRecordService",
    "PatientService",
    "ResourceService",
    "ServiceContainer",
    "SpecialtyService",
    "StorageWatcherService",
    "UserService",
    "create_services",
]
