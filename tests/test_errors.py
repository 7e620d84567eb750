"""
Tests for ApiError classification and presentation.
"""

import pytest

from medclinic.errors import (
    MSG_CANCELLED,
    MSG_REQUEST_FAILED,
    MSG_UNAUTHORIZED,
    ApiError,
)
from medclinic.models import ErrorKind


@pytest.mark.parametrize(
    "status, kind",
    [
        (401, ErrorKind.UNAUTHORIZED),
        (403, ErrorKind.FORBIDDEN),
        (404, ErrorKind.NOT_FOUND),
        (400, ErrorKind.VALIDATION),
        (409, ErrorKind.VALIDATION),
        (422, ErrorKind.VALIDATION),
        (500, ErrorKind.SERVER),
        (502, ErrorKind.SERVER),
        (302, ErrorKind.UNKNOWN),
    ],
)
def test_from_status_classifies(status, kind):
    exc = ApiError.from_status(status, request_id="r1", url="http://api.test/api/x")

    assert exc.kind is kind
    assert exc.http_status == status
    assert exc.request_id == "r1"
    assert exc.url == "http://api.test/api/x"


def test_client_errors_carry_the_backend_message():
    assert ApiError.from_status(422, {"message": "CPF already registered"}).message == (
        "CPF already registered"
    )
    assert ApiError.from_status(400, {"error": "Bad date"}).message == "Bad date"
    assert ApiError.from_status(400, {"message": "  "}).message == MSG_REQUEST_FAILED
    assert ApiError.from_status(400, "plain text").message == MSG_REQUEST_FAILED


def test_server_errors_ignore_the_backend_message():
    exc = ApiError.from_status(500, {"message": "NullPointerException"})
    assert exc.message != "NullPointerException"
    assert exc.payload == {"message": "NullPointerException"}


def test_flags_follow_the_kind():
    assert ApiError.network().is_network_error
    assert ApiError.network().is_retryable
    assert ApiError.timeout().is_timeout
    assert ApiError.timeout().is_retryable
    assert ApiError.cancelled().is_cancelled
    assert not ApiError.cancelled().is_retryable
    assert ApiError.validation("x").is_validation_error
    assert ApiError.from_status(403).is_forbidden
    assert ApiError.from_status(503).is_server_error
    assert ApiError.unknown().kind is ErrorKind.UNKNOWN


def test_user_message_per_kind():
    assert ApiError.from_status(401).user_message() == MSG_UNAUTHORIZED
    assert ApiError.cancelled().user_message() == MSG_CANCELLED
    assert ApiError.validation("Invalid CPF.").user_message() == "Invalid CPF."
    assert ApiError.from_status(400).user_message("Could not save.") == "Could not save."


def test_to_result_wraps_the_failure():
    exc = ApiError.from_status(404, {"message": "gone"})

    result = exc.to_result()

    assert result.success is False
    assert result.error_kind == "not_found"
    assert result.status_code == 404
    assert result.data == {"message": "gone"}
    assert exc.to_result("Patient not found.").error == "Patient not found."


def test_repr_names_the_kind():
    assert "not_found" in repr(ApiError.from_status(404))
