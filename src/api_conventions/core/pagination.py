"""Pagination envelope for list endpoints.

List endpoints answer with::

    {
        "items": [...],
        "page": {"limit": 20, "offset": 40, "total": 135},
        "continuationToken": null
    }

The application does the querying; ``build_page`` only shapes the result.
"""

from typing import TypeVar

from api_conventions.exceptions import FieldError, InvalidRequestError
from api_conventions.models import Page, PageInfo

T = TypeVar("T")

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def validate_page_params(
    limit: int | None,
    offset: int | None,
    max_limit: int = MAX_LIMIT,
) -> tuple[int, int]:
    """Validate limit/offset query parameters and fill in defaults.

    Raises:
        InvalidRequestError: With one field error per invalid parameter

    Examples:
        >>> validate_page_params(None, None)
        (20, 0)
    """
    limit = DEFAULT_LIMIT if limit is None else limit
    offset = 0 if offset is None else offset

    errors: list[FieldError] = []
    if not 1 <= limit <= max_limit:
        errors.append(FieldError(field="limit", message=f"must be between 1 and {max_limit}"))
    if offset < 0:
        errors.append(FieldError(field="offset", message="must be greater than or equal to 0"))
    if errors:
        raise InvalidRequestError("Invalid paging parameters", errors=errors)

    return limit, offset


def build_page(
    items: list[T],
    limit: int,
    offset: int,
    total: int | None = None,
    continuation_token: str | None = None,
) -> Page[T]:
    """Wrap an already sliced result set in the pagination envelope."""
    return Page(
        items=items,
        page=PageInfo(limit=limit, offset=offset, total=total),
        continuation_token=continuation_token,
    )
