"""Response capture and replay for idempotent requests.

A committed record is turned back into a response by:
1. Decoding the base64-encoded body
2. Filtering volatile headers (Date, Server, hop-by-hop) and any per-request
   headers such as the correlation id of the original request
3. Adding replay headers (Idempotent-Replay: true, Idempotency-Key)
4. Stamping problem-details bodies with the correlation id of the replaying
   request

Examples:
    >>> snapshot = replay_response(record, "7f41dba9")
    >>> snapshot.headers["Idempotent-Replay"]
    'true'
"""

import json

from api_conventions.models import IdempotencyRecord, StoredResponse
from api_conventions.utils.headers import (
    PROBLEM_CONTENT_TYPE,
    add_replay_headers,
    filter_response_headers,
    get_header_value,
)


class ResponseSnapshot:
    """A fully buffered HTTP response.

    Used both for responses produced by a fresh computation and for responses
    reconstructed from a stored record.

    Attributes:
        status: HTTP status code
        headers: Response headers as key-value pairs
        body: Response body as bytes
    """

    def __init__(self, status: int, headers: dict[str, str], body: bytes) -> None:
        self.status = status
        self.headers = headers
        self.body = body

    def __repr__(self) -> str:
        return f"ResponseSnapshot(status={self.status}, body={len(self.body)} bytes)"

    def to_stored(self, drop_headers: list[str] | None = None) -> StoredResponse:
        return StoredResponse.from_body(
            status=self.status,
            headers=filter_response_headers(self.headers, drop_headers),
            body=self.body,
        )


def replay_response(
    record: IdempotencyRecord,
    key: str,
    key_header: str = "Idempotency-Key",
    drop_headers: list[str] | None = None,
    correlation_id: str | None = None,
) -> ResponseSnapshot:
    """Reconstruct the committed response of ``record``.

    Args:
        record: A COMPLETED idempotency record
        key: The idempotency key for this request
        key_header: Name of the idempotency key header to echo
        drop_headers: Extra stored headers to leave out of the replay
        correlation_id: Id of the replaying request, written into problem bodies

    Raises:
        ValueError: If the record has no stored response
    """
    if record.response is None:
        raise ValueError(f"Record {record.key} has no stored response")

    stored = record.response
    headers = filter_response_headers(stored.headers, drop_headers)
    headers = add_replay_headers(headers, key, is_replay=True, key_header=key_header)
    body = stored.get_body_bytes()

    if correlation_id is not None and _is_problem(headers):
        body = _restamp_problem(body, correlation_id)
        headers = filter_response_headers(headers, ["content-length"])

    return ResponseSnapshot(status=stored.status, headers=headers, body=body)


def _is_problem(headers: dict[str, str]) -> bool:
    content_type = get_header_value(headers, "content-type", "") or ""
    return content_type.split(";")[0].strip().lower() == PROBLEM_CONTENT_TYPE


def _restamp_problem(body: bytes, correlation_id: str) -> bytes:
    try:
        problem = json.loads(body)
    except ValueError:
        return body
    if not isinstance(problem, dict):
        return body
    problem["correlationId"] = correlation_id
    return json.dumps(problem).encode("utf-8")
