"""
Client-Side Field Validators.

Checks run by the resource services before a write is sent, so obviously
bad input never reaches the backend.  Every check returns a
``ValidationResult``; the services turn a failed result into a
validation ``ApiError``.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from medclinic.models.service_models import ValidationResult

__all__ = [
    "digits_only",
    "missing_fields",
    "validate_cpf",
    "validate_crm",
    "validate_email",
    "validate_phone",
]

# ---------------------------------------------------------------------------
# Pre-compiled patterns
# ---------------------------------------------------------------------------

_RE_NON_DIGIT = re.compile(r"\D")

_RE_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Council registration: "CRM/SP 123456" (6 to 8 digits).
_RE_CRM = re.compile(r"^CRM/[A-Z]{2}\s\d{6,8}$")

# "(11) 91234-5678", "(11) 1234-5678"; the hyphen is optional.
_RE_PHONE = re.compile(r"^\(\d{2}\)\s\d{4,5}-?\d{4}$")

_RE_REPEATED_DIGIT = re.compile(r"^(\d)\1{10}$")

_OK = ValidationResult(is_valid=True)


def digits_only(value: str) -> str:
    """Strip every non-digit character from *value*."""
    return _RE_NON_DIGIT.sub("", value or "")


def missing_fields(data: Mapping[str, Any], required: Iterable[str]) -> list[str]:
    """Return the *required* fields that are absent or falsy in *data*."""
    return [field for field in required if not data.get(field)]


def validate_email(email: str) -> ValidationResult:
    if not email or not _RE_EMAIL.match(email):
        return ValidationResult(is_valid=False, error_message="Invalid e-mail address.")
    return _OK


def validate_cpf(cpf: str) -> ValidationResult:
    """Validate a Brazilian CPF, formatted or digits-only.

    The number must have 11 digits, must not be a single repeated digit,
    and both check digits must match the mod-11 computation.
    """
    digits = digits_only(cpf)
    invalid = ValidationResult(is_valid=False, error_message="Invalid CPF.")
    if len(digits) != 11 or _RE_REPEATED_DIGIT.match(digits):
        return invalid

    for position in (9, 10):
        total = sum(
            int(digit) * weight
            for digit, weight in zip(digits[:position], range(position + 1, 1, -1))
        )
        remainder = 11 - (total % 11)
        expected = 0 if remainder >= 10 else remainder
        if int(digits[position]) != expected:
            return invalid
    return _OK


def validate_crm(crm: str) -> ValidationResult:
    if not crm or not _RE_CRM.match(crm):
        return ValidationResult(
            is_valid=False,
            error_message="Invalid CRM. Expected format: CRM/UF 123456",
        )
    return _OK


def validate_phone(phone: str) -> ValidationResult:
    if not phone or not _RE_PHONE.match(phone):
        return ValidationResult(
            is_valid=False,
            error_message="Invalid phone number. Use the format (00) 00000-0000",
        )
    return _OK
