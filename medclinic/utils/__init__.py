"""Shared helpers for the medclinic client.

Re-exported so consumers can write ``from medclinic.utils import
validate_cpf`` while the full module path keeps working.
"""

from medclinic.utils.validators import (
    digits_only,
    missing_fields,
    validate_cpf,
    validate_crm,
    validate_email,
    validate_phone,
)

__all__ = [
    "digits_only",
    "missing_fields",
    "validate_cpf",
    "validate_crm",
    "validate_email",
    "validate_phone",
]
