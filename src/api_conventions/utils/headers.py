"""Header helpers for the API conventions middleware.

- Filtering volatile headers from stored responses before replay
- Adding replay-specific headers
- Case-insensitive lookup and replacement on plain header dicts
"""

# Headers that are removed from replayed responses.
# These are volatile and may differ between the original request and replay.
VOLATILE_HEADERS = {
    "date",
    "server",
    "connection",
    "transfer-encoding",
    "keep-alive",
    "trailer",
    "upgrade",
    "proxy-connection",
    "proxy-authenticate",
    "proxy-authorization",
}

REPLAY_HEADER = "Idempotent-Replay"

PROBLEM_CONTENT_TYPE = "application/problem+json"


def filter_response_headers(
    headers: dict[str, str],
    additional_volatile: list[str] | None = None,
) -> dict[str, str]:
    """Filter volatile headers from response headers.

    Args:
        headers: Original response headers
        additional_volatile: Additional header names to remove (case-insensitive)

    Returns:
        Filtered headers dictionary

    Example:
        >>> filter_response_headers(
        ...     {"Content-Type": "application/json", "Date": "Mon, 01 Oct 2025 12:00:00 GMT"}
        ... )
        {'Content-Type': 'application/json'}
    """
    headers_to_remove = set(VOLATILE_HEADERS)
    if additional_volatile:
        headers_to_remove.update(h.lower() for h in additional_volatile)

    return {key: value for key, value in headers.items() if key.lower() not in headers_to_remove}


def add_replay_headers(
    headers: dict[str, str],
    idempotency_key: str,
    is_replay: bool = True,
    key_header: str = "Idempotency-Key",
) -> dict[str, str]:
    """Return a copy of ``headers`` with idempotency metadata added.

    Example:
        >>> add_replay_headers({"Content-Type": "application/json"}, "abc-123")
        {'Content-Type': 'application/json', 'Idempotent-Replay': 'true', 'Idempotency-Key': 'abc-123'}
    """
    result = set_header(headers, REPLAY_HEADER, "true" if is_replay else "false")
    return set_header(result, key_header, idempotency_key)


def get_header_value(
    headers: dict[str, str],
    header_name: str,
    default: str | None = None,
) -> str | None:
    """Get header value with case-insensitive lookup.

    Example:
        >>> get_header_value({"Content-Type": "application/json"}, "content-type")
        'application/json'
        >>> get_header_value({}, "missing", "default")
        'default'
    """
    header_name_lower = header_name.lower()

    for key, value in headers.items():
        if key.lower() == header_name_lower:
            return value

    return default


def set_header(headers: dict[str, str], header_name: str, value: str) -> dict[str, str]:
    """Return a copy of ``headers`` with ``header_name`` set, whatever its case was.

    Example:
        >>> set_header({"content-type": "text/html"}, "Content-Type", "application/json")
        {'Content-Type': 'application/json'}
    """
    lowered = header_name.lower()
    result = {key: val for key, val in headers.items() if key.lower() != lowered}
    result[header_name] = value
    return result
