"""
Tests for the resource services: login orchestration, client-side
validation, role-gated writes, declarative cache invalidation and the
display helpers.
"""

import asyncio
import json

import httpx
import pytest

from medclinic.errors import ApiError
from medclinic.jwt_auth import AuthenticationError, AuthorizationError
from medclinic.models import ErrorKind, StorageKey, UserRole
from medclinic.services import (
    AppointmentService,
    ClinicService,
    DoctorService,
    MedicalRecordService,
    PatientService,
    create_services,
)
from medclinic.services.auth_service import MSG_BAD_CREDENTIALS, MSG_INVALID_LOGIN_RESPONSE
from medclinic.services.medical_record_service import parse_allergies, parse_medications

VALID_CPF = "529.982.247-25"


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def services(gateway, session, logger):
    return create_services(gateway, session, logger)


@pytest.fixture
def admin(session, token):
    session.login(token, "admin", "1")
    return session


def body(request):
    return json.loads(request.content)


# ── AuthService ──────────────────────────────────────────────────────

def test_login_end_to_end(services, session, storage, backend):
    storage.set_item(StorageKey.TOKEN, "stale")
    backend.add(
        "POST",
        "/api/users/login",
        httpx.Response(200, json={"token": "t1", "role": "DOCTOR", "id": "42"}),
    )

    response = run(services["auth_service"].login("a@b.com", "x"))

    assert response.token == "t1"
    assert response.role is UserRole.DOCTOR
    assert response.id == "42"
    sent = backend.requests[0]
    assert body(sent) == {"email": "a@b.com", "password": "x"}
    assert "Authorization" not in sent.headers
    assert session.has_role(["doctor"]) is True
    assert session.has_role(["admin"]) is False
    assert session.user_id == "42"
    assert storage.get_item(StorageKey.TOKEN) == "t1"


def test_login_accepts_numeric_id(services, session, backend):
    backend.add(
        "POST",
        "/api/users/login",
        httpx.Response(200, json={"token": "t1", "role": "patient", "id": 9}),
    )

    run(services["auth_service"].login("p@b.com", "x"))

    assert session.user_id == "9"


@pytest.mark.parametrize(
    "payload",
    [
        {"role": "doctor", "id": "1"},
        {"token": "t1", "id": "1"},
        {"token": "t1", "role": "doctor"},
        ["not", "an", "object"],
    ],
)
def test_login_rejects_incomplete_response(services, session, backend, payload):
    backend.add("POST", "/api/users/login", httpx.Response(200, json=payload))

    with pytest.raises(ApiError) as excinfo:
        run(services["auth_service"].login("a@b.com", "x"))

    assert excinfo.value.kind is ErrorKind.VALIDATION
    assert excinfo.value.message == MSG_INVALID_LOGIN_RESPONSE
    assert session.is_authenticated is False


def test_login_rejects_unknown_role(services, session, backend):
    backend.add(
        "POST",
        "/api/users/login",
        httpx.Response(200, json={"token": "t1", "role": "janitor", "id": "1"}),
    )

    with pytest.raises(ApiError) as excinfo:
        run(services["auth_service"].login("a@b.com", "x"))

    assert excinfo.value.is_validation_error
    assert session.is_authenticated is False


def test_login_with_wrong_password(services, backend):
    backend.add("POST", "/api/users/login", httpx.Response(401, json={}))

    with pytest.raises(ApiError) as excinfo:
        run(services["auth_service"].login("a@b.com", "wrong"))

    assert excinfo.value.message == MSG_BAD_CREDENTIALS
    assert excinfo.value.http_status == 401


def test_login_requires_credentials(services, backend):
    with pytest.raises(ApiError):
        run(services["auth_service"].login("  ", "x"))
    assert backend.requests == []


def test_auth_service_logout(services, admin):
    services["auth_service"].logout()
    assert admin.is_authenticated is False


# ── Role-gated writes ────────────────────────────────────────────────

def test_write_requires_a_session(services, backend):
    with pytest.raises(AuthenticationError) as excinfo:
        run(services["clinic_service"].delete(3))

    assert excinfo.value.is_unauthorized
    assert backend.requests == []


def test_write_requires_an_allowed_role(services, session, token, backend):
    session.login(token, "receptionist", "5")

    with pytest.raises(AuthorizationError) as excinfo:
        run(services["patient_service"].delete(3))

    assert excinfo.value.is_forbidden
    assert backend.requests == []


def test_doctor_may_write_medical_records(services, session, token, backend):
    session.login(token, "doctor", "5")
    backend.add("POST", "/api/prontuarios", httpx.Response(201, json={"id": 1}))

    payload = MedicalRecordService.build_payload("9", "dust", "")
    assert run(services["medical_record_service"].create(payload)) == {"id": 1}


def test_patient_may_not_write_medical_records(services, session, token):
    session.login(token, "patient", "9")

    with pytest.raises(AuthorizationError):
        run(services["medical_record_service"].create({"patientId": "9"}))


def test_any_role_may_book_an_appointment(services, session, token, backend):
    session.login(token, "patient", "9")
    backend.add("POST", "/api/appointments", httpx.Response(201, json={"id": 1}))

    run(
        services["appointment_service"].create(
            {
                "patient_id": "9",
                "doctor_id": "2",
                "clinic_id": "1",
                "scheduled_at": "2024-05-10T14:30",
            }
        )
    )

    assert body(backend.requests[0])["scheduled_at"] == "2024-05-10T14:30:00"


def test_services_without_a_session_do_not_gate(gateway, logger, backend):
    backend.add("DELETE", "/api/clinics/3", httpx.Response(204))

    run(ClinicService(gateway, logger).delete(3))

    assert len(backend.requests) == 1


# ── Validation ───────────────────────────────────────────────────────

def test_patient_create_requires_fields(services, admin, backend):
    with pytest.raises(ApiError) as excinfo:
        run(services["patient_service"].create({"first_name": "Ana", "cpf": VALID_CPF}))

    assert excinfo.value.is_validation_error
    assert "email" in excinfo.value.message
    assert "phone" in excinfo.value.message
    assert backend.requests == []


def test_patient_create_rejects_invalid_cpf(services, admin, backend):
    data = {"first_name": "Ana", "cpf": "123.456.789-00", "email": "a@b.com", "phone": "1"}

    with pytest.raises(ApiError) as excinfo:
        run(services["patient_service"].create(data))

    assert excinfo.value.message == "Invalid CPF."
    assert backend.requests == []


def test_patient_create_sends_digits_only_cpf(services, admin, backend):
    backend.add("POST", "/api/patients", httpx.Response(201, json={"id": 1}))
    data = {"first_name": "Ana", "cpf": VALID_CPF, "email": "a@b.com", "phone": "1"}

    run(services["patient_service"].create(data))

    assert body(backend.requests[0])["cpf"] == "52998224725"
    assert data["cpf"] == VALID_CPF


def test_patient_update_validates_email(services, admin):
    with pytest.raises(ApiError):
        run(services["patient_service"].update(1, {"email": "not-an-email"}))


def test_update_requires_an_id(services, admin):
    with pytest.raises(ApiError) as excinfo:
        run(services["clinic_service"].update("", {"name": "X"}))
    assert excinfo.value.is_validation_error


def test_doctor_create_rejects_bad_crm(services, admin):
    data = {
        "first_name": "Rui",
        "last_name": "Lima",
        "email": "r@b.com",
        "specialty_id": 2,
        "crm": "12345",
    }
    with pytest.raises(ApiError) as excinfo:
        run(services["doctor_service"].create(data))
    assert "CRM" in excinfo.value.message


def test_clinic_update_rejects_bad_phone(services, admin):
    with pytest.raises(ApiError):
        run(services["clinic_service"].update(1, {"phone": "5511999998888"}))


def test_appointment_rejects_bad_date(services, admin):
    data = {"patient_id": 1, "doctor_id": 2, "clinic_id": 3, "scheduled_at": "tomorrow"}
    with pytest.raises(ApiError) as excinfo:
        run(services["appointment_service"].create(data))
    assert excinfo.value.message == "Invalid appointment date/time."


# ── Reads and filters ────────────────────────────────────────────────

def test_appointment_list_sends_only_known_filters(services, admin, backend):
    backend.add("GET", "/api/appointments", httpx.Response(200, json=[]))

    run(
        services["appointment_service"].list(
            {"doctor_id": 2, "status": "confirmed", "end_date": "", "color": "red"}
        )
    )

    assert dict(backend.requests[0].url.params) == {"doctor_id": "2", "status": "confirmed"}


def test_user_role_listings(services, admin, backend):
    backend.add("GET", "/api/users", httpx.Response(200, json=[]))

    async def scenario():
        await services["user_service"].list_doctors()
        await services["user_service"].list_patients()
        await services["user_service"].list_receptionists()

    run(scenario())

    roles = [request.url.params["role"] for request in backend.requests]
    assert roles == ["doctor", "patient", "receptionist"]


def test_doctor_listings(services, admin, backend):
    backend.add("GET", "/api/doctors", httpx.Response(200, json=[]))

    run(services["doctor_service"].list_by_specialty(4))

    assert backend.requests[0].url.params["specialty_id"] == "4"
    with pytest.raises(ApiError):
        run(services["doctor_service"].list_by_clinic(None))


def test_patient_search(services, admin, backend):
    backend.add("GET", "/api/patients/search", httpx.Response(200, json=[]))

    run(services["patient_service"].search("Ana Souza"))

    assert backend.requests[0].url.params["q"] == "Ana Souza"


def test_read_failures_propagate(services, admin, backend):
    backend.add("GET", "/api/clinics/99", httpx.Response(404, json={}))

    with pytest.raises(ApiError) as excinfo:
        run(services["clinic_service"].get_by_id(99))

    assert excinfo.value.is_not_found


# ── Cache invalidation ───────────────────────────────────────────────

def test_clinic_write_invalidates_clinics_and_doctors(services, admin, gateway, backend):
    backend.add("GET", "/api/clinics", httpx.Response(200, json=[]))
    backend.add("GET", "/api/doctors", httpx.Response(200, json=[]))
    backend.add("GET", "/api/specialties", httpx.Response(200, json=[]))
    backend.add("POST", "/api/clinics", httpx.Response(201, json={"id": 1}))

    async def scenario():
        await services["clinic_service"].list()
        await services["doctor_service"].list()
        await services["specialty_service"].list()
        assert gateway.cache_size == 3

        await services["clinic_service"].create(
            {"name": "Centro", "address": "Rua A", "phone": "(11) 91234-5678", "email": "c@b.com"}
        )
        assert gateway.cache_size == 1

        await services["clinic_service"].list()

    run(scenario())

    assert len(backend.calls("GET", "/api/clinics")) == 2
    assert len(backend.calls("GET", "/api/specialties")) == 1


def test_update_invalidates_the_cached_item(services, admin, gateway, backend):
    backend.add("GET", "/api/specialties/2", httpx.Response(200, json={"id": 2}))
    backend.add("PUT", "/api/specialties/2", httpx.Response(200, json={"id": 2}))

    async def scenario():
        await services["specialty_service"].get_by_id(2)
        await services["specialty_service"].update(2, {"name": "Cardiology"})
        await services["specialty_service"].get_by_id(2)

    run(scenario())

    assert len(backend.calls("GET", "/api/specialties/2")) == 2


def test_failed_write_keeps_the_cache(services, admin, gateway, backend):
    backend.add("GET", "/api/clinics", httpx.Response(200, json=[]))
    backend.add("DELETE", "/api/clinics/1", httpx.Response(500, json={}))

    async def scenario():
        await services["clinic_service"].list()
        with pytest.raises(ApiError):
            await services["clinic_service"].delete(1)

    run(scenario())

    assert gateway.cache_size == 1


# ── Display helpers ──────────────────────────────────────────────────

def test_patient_formatting():
    assert PatientService.format_cpf("52998224725") == "529.982.247-25"
    assert PatientService.format_cpf(None) == ""
    assert PatientService.format_full_name({"first_name": "Ana", "last_name": "Souza"}) == "Ana Souza"
    assert PatientService.format_full_name({"first_name": "Ana"}) == "Ana"


def test_doctor_formatting():
    assert DoctorService.format_full_name({"first_name": "Rui", "last_name": "Lima"}) == "Dr(a). Rui Lima"
    assert DoctorService.format_crm("crm sp-123456") == "CRM/SP 123456"
    assert DoctorService.format_crm("CRM/RJ 1234567") == "CRM/RJ 1234567"
    assert DoctorService.format_crm("123") == "123"


def test_clinic_formatting():
    clinic = {
        "address": "Rua A",
        "number": "10",
        "neighborhood": "Centro",
        "city": "São Paulo",
        "state": "SP",
        "zip_code": "01000-000",
    }
    assert ClinicService.format_address(clinic) == "Rua A, 10, Centro - São Paulo - SP - 01000-000"
    assert ClinicService.format_address({"city": "Recife"}) == "Recife"
    assert ClinicService.format_phone("11912345678") == "(11) 91234-5678"
    assert ClinicService.format_phone("1132345678") == "(11) 3234-5678"
    assert ClinicService.format_phone("123") == "123"


def test_appointment_formatting():
    assert AppointmentService.format_date("2024-05-10T14:30:00") == "10/05/2024 14:30"
    assert AppointmentService.format_date(None) == "Not scheduled"
    assert AppointmentService.get_status_label("no_show") == "No-show"
    assert AppointmentService.get_status_label("confirmed") == "Confirmed"
    assert AppointmentService.get_status_label("archived") == "archived"


def test_appointment_visibility_by_role():
    appointments = [
        {"id": 1, "patient_id": "9", "doctor_id": "2", "scheduled_at": "2024-05-11T09:00:00"},
        {"id": 2, "patient_id": "8", "doctor_id": "2", "scheduled_at": "2024-05-10T09:00:00"},
        {"id": 3, "patient_id": 9, "doctor_id": "3", "scheduled_at": "2024-05-09T09:00:00"},
    ]

    def ids(role, user_id):
        return [a["id"] for a in AppointmentService.visible_to(appointments, role, user_id)]

    assert ids(UserRole.ADMIN, "1") == [3, 2, 1]
    assert ids(UserRole.RECEPTIONIST, "1") == [3, 2, 1]
    assert ids(UserRole.PATIENT, "9") == [3, 1]
    assert ids(UserRole.DOCTOR, "2") == [2, 1]
    assert ids(UserRole.USER, "1") == []


# ── Medical records ──────────────────────────────────────────────────

def test_medication_parsing():
    meds = parse_medications("Losartan (50mg, 1x/day); bad entry; Metformin(850mg,  2x/day)")

    assert meds == [
        {"name": "Losartan", "doseMg": 50, "frequency": "1x/day"},
        {"name": "Metformin", "doseMg": 850, "frequency": "2x/day"},
    ]
    assert parse_medications("") == []


def test_allergy_parsing_and_payload():
    assert parse_allergies(" penicillin, , dust ") == ["penicillin", "dust"]
    assert MedicalRecordService.build_payload("9", "dust", "") == {
        "patientId": "9",
        "allergies": ["dust"],
        "medications": [],
    }


def test_medical_record_visibility():
    records = [{"patientId": "9"}, {"patientId": "8"}]

    assert MedicalRecordService.visible_to(records, UserRole.DOCTOR, "2") == records
    assert MedicalRecordService.visible_to(records, UserRole.PATIENT, "9") == [{"patientId": "9"}]
    assert MedicalRecordService.visible_to(records, UserRole.RECEPTIONIST, "4") == []


# ── Composition root ─────────────────────────────────────────────────

def test_create_services_shares_one_gateway(services, gateway):
    assert set(services) == {
        "auth_service",
        "patient_service",
        "doctor_service",
        "clinic_service",
        "appointment_service",
        "user_service",
        "specialty_service",
        "medical_record_service",
    }
    assert all(
        service._gateway is gateway for service in services.values()
    )
