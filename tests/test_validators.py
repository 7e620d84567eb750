"""
Tests for the client-side field validators.
"""

import pytest

from medclinic.utils import (
    digits_only,
    missing_fields,
    validate_cpf,
    validate_crm,
    validate_email,
    validate_phone,
)


@pytest.mark.parametrize("cpf", ["52998224725", "529.982.247-25"])
def test_valid_cpf(cpf):
    assert validate_cpf(cpf).is_valid is True


@pytest.mark.parametrize(
    "cpf",
    ["", "5299822472", "529982247250", "52998224724", "52998224715", "11111111111"],
)
def test_invalid_cpf(cpf):
    result = validate_cpf(cpf)
    assert result.is_valid is False
    assert result.error_message == "Invalid CPF."


@pytest.mark.parametrize(
    "email, expected",
    [
        ("ana@clinic.test", True),
        ("ana.souza@mail.com.br", True),
        ("ana@clinic", False),
        ("ana clinic@test.com", False),
        ("", False),
    ],
)
def test_email(email, expected):
    assert validate_email(email).is_valid is expected


@pytest.mark.parametrize(
    "crm, expected",
    [
        ("CRM/SP 123456", True),
        ("CRM/RJ 12345678", True),
        ("CRM/SP 12345", False),
        ("crm/sp 123456", False),
        ("CRM SP 123456", False),
    ],
)
def test_crm(crm, expected):
    assert validate_crm(crm).is_valid is expected


@pytest.mark.parametrize(
    "phone, expected",
    [
        ("(11) 91234-5678", True),
        ("(11) 3234-5678", True),
        ("(11) 912345678", True),
        ("11 91234-5678", False),
        ("(11)91234-5678", False),
    ],
)
def test_phone(phone, expected):
    assert validate_phone(phone).is_valid is expected


def test_failed_checks_explain_themselves():
    assert "CRM/UF" in validate_crm("x").error_message
    assert "(00)" in validate_phone("x").error_message


def test_helpers():
    assert digits_only("529.982.247-25") == "52998224725"
    assert digits_only(None) == ""
    assert missing_fields({"a": 1, "b": "", "c": None}, ("a", "b", "c", "d")) == ["b", "c", "d"]
