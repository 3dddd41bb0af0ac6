"""ETag / If-Match helpers for optimistic concurrency.

Entity storage and version stamps belong to the application; these helpers only
turn a version stamp into an ETag and compare it with the client's If-Match.

Examples:
    >>> etag = compute_etag(3)
    >>> etag
    '"3"'
    >>> check_if_match('"3"', etag)
    >>> check_if_match('W/"2", "3"', etag)
    >>> check_if_match("*", etag)
"""

import hashlib

from api_conventions.exceptions import PreconditionFailedError


def compute_etag(version: object) -> str:
    """Return a strong, quoted ETag for a version stamp.

    Integers and short tokens are used as-is; anything else is hashed.

    Examples:
        >>> compute_etag("v2")
        '"v2"'
        >>> len(compute_etag(b"a long representation"))
        66
    """
    if isinstance(version, int):
        tag = str(version)
    elif isinstance(version, str) and version.isalnum() and len(version) <= 64:
        tag = version
    else:
        raw = version if isinstance(version, bytes) else str(version).encode("utf-8")
        tag = hashlib.sha256(raw).hexdigest()
    return f'"{tag}"'


def _opaque(tag: str) -> str:
    tag = tag.strip()
    if tag.startswith("W/"):
        tag = tag[2:]
    return tag


def etag_matches(if_match: str, current_etag: str) -> bool:
    """Return True if ``if_match`` accepts ``current_etag``.

    Weak prefixes are ignored on comparison.
    """
    if if_match.strip() == "*":
        return True
    current = _opaque(current_etag)
    return any(_opaque(candidate) == current for candidate in if_match.split(",") if candidate.strip())


def check_if_match(if_match: str | None, current_etag: str) -> None:
    """Raise PreconditionFailedError unless ``if_match`` accepts ``current_etag``.

    A missing If-Match header is accepted; endpoints that require one should
    reject the request before calling this.
    """
    if if_match is None:
        return
    if not etag_matches(if_match, current_etag):
        raise PreconditionFailedError(
            f"If-Match {if_match} does not match the current version {current_etag}"
        )
