"""Payload hashing for idempotent requests.

An idempotency key is bound to the hash of the normalized request payload. The
hash is computed from canonical representations of the request components so
that logically identical requests hash identically:

1. Canonical method: uppercase
2. Canonical path: lowercase, trailing / stripped (except root)
3. Sorted query params
4. Selected headers: lowercase keys, filtered, sorted, compact JSON
5. Normalized body digest: JSON bodies are re-serialized with sorted keys and
   compact separators, anything else is hashed verbatim
6. SHA-256 over the newline-joined components
"""

import hashlib
import json
from urllib.parse import parse_qs, urlencode


def compute_payload_hash(
    method: str,
    path: str,
    query_string: str,
    headers: dict[str, str],
    body: bytes,
    included_headers: list[str] | None = None,
) -> str:
    """Compute a deterministic payload hash for a request.

    Args:
        method: HTTP method (e.g., "POST")
        path: URL path component
        query_string: Raw query string (without leading '?')
        headers: Request headers as key-value pairs
        body: Request body as bytes
        included_headers: Header names to include in the hash.
                          Defaults to ["content-type"]

    Returns:
        Hexadecimal SHA-256 hash string (64 characters)

    Examples:
        >>> a = compute_payload_hash("POST", "/users", "", {}, b'{"a": 1, "b": 2}')
        >>> b = compute_payload_hash("POST", "/users/", "", {}, b'{"b":2,"a":1}')
        >>> a == b
        True
    """
    if included_headers is None:
        included_headers = ["content-type"]

    canonical_method = method.upper()

    canonical_path = path.lower() if path else "/"
    if canonical_path != "/" and canonical_path.endswith("/"):
        canonical_path = canonical_path.rstrip("/") or "/"

    components = [
        canonical_method,
        canonical_path,
        _canonicalize_query_string(query_string),
        _canonicalize_headers(headers, included_headers),
        hashlib.sha256(normalize_body(body)).hexdigest(),
    ]

    return hashlib.sha256("\n".join(components).encode("utf-8")).hexdigest()


def normalize_body(body: bytes) -> bytes:
    """Normalize a request body for hashing.

    Bodies that parse as JSON are re-serialized with sorted keys and compact
    separators; anything else is returned unchanged.

    Examples:
        >>> normalize_body(b'{ "b": 1,  "a": [1, 2] }')
        b'{"a":[1,2],"b":1}'
        >>> normalize_body(b"plain text")
        b'plain text'
    """
    if not body:
        return b""
    try:
        parsed = json.loads(body)
    except (UnicodeDecodeError, ValueError):
        return body
    return json.dumps(parsed, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


def _canonicalize_query_string(query_string: str) -> str:
    if not query_string or not query_string.strip():
        return ""

    parsed = parse_qs(query_string, keep_blank_values=True)

    sorted_params: list[tuple[str, str]] = []
    for key in sorted(parsed.keys()):
        for value in sorted(parsed[key]):
            sorted_params.append((key, value))

    return urlencode(sorted_params, doseq=False)


def _canonicalize_headers(headers: dict[str, str], included_headers: list[str]) -> str:
    included_lower = {name.lower() for name in included_headers}

    canonical: dict[str, str] = {}
    for key, value in headers.items():
        key_lower = key.lower()
        if key_lower in included_lower:
            canonical[key_lower] = value.strip()

    return json.dumps(canonical, sort_keys=True, separators=(",", ":"))
