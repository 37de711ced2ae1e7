"""Tests for the error taxonomy in app.core.errors."""

from __future__ import annotations

import pytest

from app.core import errors


@pytest.mark.parametrize(
    ("error_cls", "status_code", "code", "message"),
    [
        (errors.ValidationError, 400, "INVALID_INPUT", "Invalid input"),
        (errors.MalformedIdError, 400, "INVALID_ID", "Invalid ID format"),
        (errors.NotFoundError, 404, "NOT_FOUND", "Not found"),
        (errors.StoreError, 500, "INTERNAL_ERROR", "Database operation failed"),
        (errors.BulkWriteError, 400, "INTERNAL_ERROR", "Database operation failed"),
    ],
)
def test_defaults(
    error_cls: type[errors.DisasterAPIError],
    status_code: int,
    code: str,
    message: str,
) -> None:
    exc = error_cls()
    assert exc.status_code == status_code
    assert exc.code == code
    assert exc.message == message
    assert exc.details == []
    assert str(exc) == message


def test_code_override_is_per_instance() -> None:
    exc = errors.ValidationError(
        "Invalid query parameters", ["x"], code="INVALID_QUERY"
    )
    assert exc.code == "INVALID_QUERY"
    assert exc.details == ["x"]
    assert errors.ValidationError().code == "INVALID_INPUT"


def test_bulk_write_error_is_a_store_error() -> None:
    assert issubclass(errors.BulkWriteError, errors.StoreError)
    assert issubclass(errors.StoreError, errors.DisasterAPIError)
