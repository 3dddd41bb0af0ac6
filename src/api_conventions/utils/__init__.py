"""Utility modules for the API conventions middleware."""

from .headers import (
    PROBLEM_CONTENT_TYPE,
    REPLAY_HEADER,
    VOLATILE_HEADERS,
    add_replay_headers,
    filter_response_headers,
    get_header_value,
    set_header,
)

__all__ = [
    "filter_response_headers",
    "add_replay_headers",
    "get_header_value",
    "set_header",
    "PROBLEM_CONTENT_TYPE",
    "REPLAY_HEADER",
    "VOLATILE_HEADERS",
]
