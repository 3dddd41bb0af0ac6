"""
REST API conventions middleware for Python web applications.

This package enforces a REST style guide on ASGI services: per-request
correlation ids, idempotent creation requests keyed by Idempotency-Key, and
uniform problem-details error bodies, plus ETag, health and pagination helpers.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
