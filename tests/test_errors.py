import httpx
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from orbit_api.core.exceptions import (
    APIError,
    BadRequestError,
    BusinessRuleError,
    ConflictError,
    DatabaseError,
    ExternalServiceError,
    NotFoundError,
    ServiceUnavailableError,
    normalize_error,
)


class _DriverError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"driver error {sqlstate}")
        self.sqlstate = sqlstate


def _integrity(sqlstate=None, text="integrity"):
    orig = _DriverError(sqlstate) if sqlstate else Exception(text)
    return IntegrityError("INSERT ...", {}, orig)


def test_error_payload_shape():
    error = NotFoundError(message="Company not found", details={"id": "x"})
    assert error.status_code == 404
    assert error.to_dict() == {
        "success": False,
        "code": "NOT_FOUND",
        "category": "not_found",
        "message": "Company not found",
        "details": {"id": "x"},
    }


def test_conflict_codes_share_category():
    assert ConflictError(message="dup").category == "conflict"
    assert ConflictError(message="in use", code="RESOURCE_IN_USE").category == "conflict"
    assert ConflictError(message="bad state", code="INVALID_STATE").category == "conflict"


def test_unique_violation_is_conflict():
    error = normalize_error(_integrity("23505"))
    assert isinstance(error, ConflictError)
    assert error.status_code == 409


def test_foreign_key_violation_is_constraint_violation():
    error = normalize_error(_integrity("23503"))
    assert isinstance(error, BusinessRuleError)
    assert error.code == "CONSTRAINT_VIOLATION"
    assert error.status_code == 400


def test_sqlite_unique_message_is_conflict():
    error = normalize_error(_integrity(text="UNIQUE constraint failed: markets.name"))
    assert isinstance(error, ConflictError)


def test_database_errors():
    assert isinstance(normalize_error(OperationalError("SELECT 1", {}, Exception("down"))), ServiceUnavailableError)
    assert isinstance(normalize_error(SQLAlchemyError("boom")), DatabaseError)


def test_network_errors():
    request = httpx.Request("GET", "https://example.com")
    assert isinstance(normalize_error(httpx.ConnectError("refused", request=request)), ExternalServiceError)
    assert isinstance(normalize_error(httpx.ReadTimeout("slow", request=request)), ExternalServiceError)
    assert normalize_error(httpx.ConnectError("refused", request=request)).code == "NETWORK_ERROR"


def test_value_errors_are_bad_requests():
    error = normalize_error(ValueError("page must be positive"))
    assert isinstance(error, BadRequestError)
    assert error.message == "page must be positive"


def test_unknown_errors_are_server_errors():
    error = normalize_error(RuntimeError("boom"))
    assert isinstance(error, APIError)
    assert error.status_code == 500
    assert error.category == "server"


def test_api_errors_pass_through():
    original = NotFoundError(message="gone")
    assert normalize_error(original) is original


def test_request_validation_message(client, headers):
    response = client.post("/api/markets", json={"state": "IN"}, headers=headers)

    assert response.status_code == 422
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "VALIDATION_ERROR"
    assert body["message"].startswith("Validation failed: name: ")
    assert body["details"]["errors"][0]["field"] == "name"


def test_missing_token_is_unauthorized(client):
    response = client.get("/api/companies")

    assert response.status_code == 401
    assert response.json()["code"] == "UNAUTHORIZED"


@pytest.mark.parametrize("path", ["/", "/api/health/live"])
def test_public_paths_need_no_token(client, path):
    assert client.get(path).status_code == 200
