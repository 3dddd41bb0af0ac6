"""Unit tests for the tagged error taxonomy."""

import pytest

from api_conventions.exceptions import (
    ApiError,
    ConflictError,
    ErrorKind,
    FieldError,
    ForbiddenError,
    IdempotencyConflictError,
    InternalError,
    InvalidRequestError,
    NotFoundError,
    PreconditionFailedError,
    RateLimitedError,
    RequestInProgressError,
    StorageError,
    UnauthenticatedError,
    UnavailableError,
    UnsupportedMediaTypeError,
)


@pytest.mark.parametrize(
    ("error_class", "kind"),
    [
        (InvalidRequestError, ErrorKind.VALIDATION),
        (UnauthenticatedError, ErrorKind.UNAUTHENTICATED),
        (ForbiddenError, ErrorKind.FORBIDDEN),
        (NotFoundError, ErrorKind.NOT_FOUND),
        (ConflictError, ErrorKind.CONFLICT),
        (PreconditionFailedError, ErrorKind.PRECONDITION_FAILED),
        (UnsupportedMediaTypeError, ErrorKind.UNSUPPORTED_MEDIA),
        (RateLimitedError, ErrorKind.RATE_LIMITED),
        (InternalError, ErrorKind.INTERNAL),
        (UnavailableError, ErrorKind.UNAVAILABLE),
    ],
)
def test_each_error_class_carries_its_kind(error_class: type[ApiError], kind: ErrorKind) -> None:
    error = error_class("boom")
    assert error.kind is kind
    assert isinstance(error, ApiError)
    assert error.message == "boom"
    assert str(error) == "boom"


def test_every_kind_has_an_error_class() -> None:
    classes = [
        InvalidRequestError,
        UnauthenticatedError,
        ForbiddenError,
        NotFoundError,
        ConflictError,
        PreconditionFailedError,
        UnsupportedMediaTypeError,
        RateLimitedError,
        InternalError,
        UnavailableError,
    ]
    assert {c.kind for c in classes} == set(ErrorKind)


def test_field_errors_are_kept_in_order() -> None:
    errors = [
        FieldError(field="displayName", message="must not be empty"),
        FieldError(field="email", message="is not an email address"),
    ]
    error = InvalidRequestError("invalid", errors=errors)
    assert error.errors == errors
    assert error.errors is not errors


def test_defaults() -> None:
    error = ApiError("generic")
    assert error.kind is ErrorKind.INTERNAL
    assert error.errors == []
    assert error.retry_after is None


def test_idempotency_conflict_details() -> None:
    error = IdempotencyConflictError(
        "mismatch", key="k1", stored_hash="a" * 64, request_hash="b" * 64
    )
    assert isinstance(error, ConflictError)
    assert error.kind is ErrorKind.CONFLICT
    assert error.key == "k1"
    assert error.stored_hash == "a" * 64
    assert error.request_hash == "b" * 64


def test_request_in_progress_is_retryable_conflict() -> None:
    error = RequestInProgressError("busy", key="k1", retry_after=3)
    assert error.kind is ErrorKind.CONFLICT
    assert error.retry_after == 3
    assert error.key == "k1"


def test_storage_error_is_internal() -> None:
    cause = ConnectionError("redis down")
    error = StorageError("backend failed", cause=cause)
    assert error.kind is ErrorKind.INTERNAL
    assert error.cause is cause


def test_field_error_is_frozen() -> None:
    field_error = FieldError(field="a", message="b")
    with pytest.raises(Exception):
        field_error.field = "c"  # type: ignore[misc]
