"""
Tests for the require_auth / require_roles guard decorators.
"""

import asyncio

import pytest

from medclinic.jwt_auth import (
    AuthenticationError,
    AuthorizationError,
    check_roles,
    require_auth,
    require_roles,
)
from medclinic.models import UserRole


def test_require_auth_blocks_anonymous_calls(session):
    calls = []

    @require_auth(session)
    def load_dashboard():
        calls.append("ran")
        return "ok"

    with pytest.raises(AuthenticationError) as excinfo:
        load_dashboard()

    assert excinfo.value.is_unauthorized
    assert calls == []


def test_require_auth_admits_any_role(session, token):
    session.login(token, "patient", "9")

    @require_auth(session)
    def load_dashboard():
        return "ok"

    assert load_dashboard() == "ok"


def test_require_roles_on_coroutines(session, token):
    admin_only = require_roles(session, [UserRole.ADMIN])

    @admin_only
    async def delete_clinic(clinic_id):
        return f"deleted {clinic_id}"

    session.login(token, "doctor", "2")
    with pytest.raises(AuthorizationError) as excinfo:
        asyncio.run(delete_clinic(3))
    assert excinfo.value.is_forbidden
    assert "admin" in excinfo.value.message

    session.login(token, "admin", "1")
    assert asyncio.run(delete_clinic(3)) == "deleted 3"


def test_guard_checks_at_call_time(session, token):
    @require_roles(session, ["doctor", "admin"])
    def sign_record():
        return "signed"

    session.login(token, "doctor", "2")
    assert sign_record() == "signed"

    session.logout()
    with pytest.raises(AuthenticationError):
        sign_record()


def test_guard_preserves_metadata(session):
    @require_auth(session)
    def list_patients():
        """Patients visible to the caller."""

    assert list_patients.__name__ == "list_patients"
    assert list_patients.__doc__ == "Patients visible to the caller."


def test_check_roles_is_case_insensitive(session, token):
    session.login(token, "receptionist", "4")

    check_roles(session, ["RECEPTIONIST"])
    check_roles(session)
    with pytest.raises(AuthorizationError):
        check_roles(session, ["admin", "doctor"])
