"""Core type definitions for the API conventions middleware.

This module holds the data structures shared by the components: idempotency
records and leases, the problem-details body, the pagination envelope and the
health report.

Examples:
    Creating an idempotency record::

        from datetime import UTC, datetime, timedelta
        from api_conventions.models import IdempotencyRecord, RequestState

        record = IdempotencyRecord(
            key="7f41dba9-4c8e-4f7b-9d8a-3c2e1b0a9f87",
            payload_hash="a" * 64,
            state=RequestState.RUNNING,
            created_at=datetime.now(UTC),
            expires_at=datetime.now(UTC) + timedelta(hours=24),
        )

    Rendering a problem body::

        problem = ProblemDetails(
            type="https://api.example.com/problems/not-found",
            title="Not Found",
            status=404,
            detail="User 42 does not exist",
            instance="/users/42",
            correlation_id="c0ffee",
        )
        problem.model_dump(by_alias=True)
"""

import base64
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from api_conventions.exceptions import FieldError

T = TypeVar("T")


class RequestState(str, Enum):
    """State of an idempotency key.

    Attributes:
        RUNNING: The first request is executing and holds the lease.
        COMPLETED: The response is committed and will be replayed.
    """

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class StoredResponse(BaseModel):
    """A committed HTTP response that is replayed for duplicate requests.

    The body is base64-encoded so binary content survives any storage backend.

    Attributes:
        status: HTTP status code.
        headers: Response headers as key-value pairs.
        body_b64: Base64-encoded response body.
    """

    status: int = Field(..., description="HTTP status code", ge=100, le=599)
    headers: dict[str, str] = Field(default_factory=dict, description="HTTP response headers")
    body_b64: str = Field(..., description="Base64-encoded response body")

    model_config = {"frozen": True}

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        try:
            base64.b64decode(v, validate=True)
        except Exception as e:
            raise ValueError(f"Invalid base64 encoding: {e}") from e
        return v

    @classmethod
    def from_body(cls, status: int, headers: dict[str, str], body: bytes) -> "StoredResponse":
        return cls(status=status, headers=headers, body_b64=base64.b64encode(body).decode("ascii"))

    def get_body_bytes(self) -> bytes:
        """Decode and return the response body as bytes.

        Examples:
            >>> StoredResponse(status=200, headers={}, body_b64="SGVsbG8=").get_body_bytes()
            b'Hello'
        """
        return base64.b64decode(self.body_b64)


class IdempotencyRecord(BaseModel):
    """Record bound to an idempotency key.

    A key is bound to exactly one payload hash for the lifetime of the record.
    While the first request executes the record is RUNNING and carries the lease
    token; once the response is committed it is COMPLETED and never changes again.

    Attributes:
        key: The idempotency key provided by the client.
        payload_hash: SHA-256 of the normalized request payload (64 hex chars).
        state: RUNNING or COMPLETED.
        response: Committed response (COMPLETED only).
        created_at: When the key was first admitted.
        expires_at: End of the retention window.
        execution_time_ms: How long the original computation took.
        lease_token: UUID of the request holding the execution lease.
        correlation_id: Correlation id of the request that created the record.
    """

    key: str = Field(..., min_length=1, max_length=1024)
    payload_hash: str = Field(..., pattern=r"^[a-f0-9]{64}$")
    state: RequestState
    response: StoredResponse | None = None
    created_at: datetime
    expires_at: datetime
    execution_time_ms: int | None = Field(default=None, ge=0)
    lease_token: str | None = None
    correlation_id: str | None = None

    @field_validator("lease_token")
    @classmethod
    def validate_lease_token(cls, v: str | None) -> str | None:
        if v is not None:
            try:
                UUID(v)
            except ValueError as e:
                raise ValueError(f"Invalid UUID format for lease_token: {e}") from e
        return v

    @field_validator("expires_at")
    @classmethod
    def validate_expires_after_created(cls, v: datetime, info: Any) -> datetime:
        if "created_at" in info.data and v <= info.data["created_at"]:
            raise ValueError("expires_at must be after created_at")
        return v

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


class LeaseResult(BaseModel):
    """Result of trying to acquire the execution lease for a key.

    Either the caller won (``success`` with a ``lease_token``) or an existing
    record is returned for the caller to replay, reject or wait on.
    """

    success: bool
    lease_token: str | None = None
    existing_record: IdempotencyRecord | None = None

    @model_validator(mode="after")
    def validate_consistency(self) -> "LeaseResult":
        """A won lease carries a token and no record; a lost one the reverse."""
        if self.success:
            if self.lease_token is None:
                raise ValueError("lease_token must be provided when success is True")
            if self.existing_record is not None:
                raise ValueError("existing_record must be None when success is True")
        else:
            if self.lease_token is not None:
                raise ValueError("lease_token must be None when success is False")
            if self.existing_record is None:
                raise ValueError("existing_record must be provided when success is False")
        return self


class ProblemDetails(BaseModel):
    """RFC 7807 style error body.

    Serialize with ``model_dump(by_alias=True)`` to get the wire field names
    (``correlationId``).
    """

    type: str = Field(..., description="Stable URI identifying the problem type")
    title: str = Field(..., description="Short summary of the problem type")
    status: int = Field(..., ge=400, le=599, description="HTTP status code")
    detail: str = Field(..., description="Explanation specific to this occurrence")
    instance: str = Field(..., description="Request path the problem occurred on")
    correlation_id: str = Field(..., alias="correlationId")
    errors: list[FieldError] = Field(default_factory=list)

    model_config = {"frozen": True, "populate_by_name": True}


class PageInfo(BaseModel):
    """Position of a page within a list result."""

    limit: int = Field(..., ge=1)
    offset: int = Field(..., ge=0)
    total: int | None = Field(default=None, ge=0)


class Page(BaseModel, Generic[T]):
    """Pagination envelope returned by list endpoints."""

    items: list[T]
    page: PageInfo
    continuation_token: str | None = Field(default=None, alias="continuationToken")

    model_config = {"populate_by_name": True}


class CheckResult(BaseModel):
    name: str
    healthy: bool
    error: str | None = None


class HealthReport(BaseModel):
    """Outcome of running the registered health checks."""

    status: str = Field(..., pattern=r"^(pass|fail)$")
    checks: list[CheckResult] = Field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.status == "pass"
