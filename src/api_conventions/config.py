"""Configuration module for the API conventions middleware.

This module provides the GatewayConfig class that controls correlation id
handling, idempotent request processing, problem-details rendering and the
logging/cleanup defaults of an application built with this package.

Example:
    Basic usage with defaults:

        >>> config = GatewayConfig()
        >>> config.idempotent_methods
        ['POST']
        >>> config.correlation_header
        'x-correlation-id'

    Loading from environment:

        >>> import os
        >>> os.environ['API_CONVENTIONS_IDEMPOTENCY_TTL_SECONDS'] = '3600'
        >>> os.environ['API_CONVENTIONS_WAIT_POLICY'] = 'no-wait'
        >>> config = GatewayConfig.from_env()
        >>> config.idempotency_ttl_seconds
        3600
"""

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# Valid HTTP methods for idempotency
VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _split_csv(v: Any, field_name: str) -> list[str]:
    if isinstance(v, str):
        # Comma-separated string (from environment variables)
        v = [item.strip() for item in v.split(",") if item.strip()]
    if not isinstance(v, list):
        raise ValueError(f"{field_name} must be a list or comma-separated string")
    return v


class GatewayConfig(BaseModel):
    """Configuration for the API conventions middleware.

    Attributes:
        correlation_header: Request/response header carrying the correlation id.
            Matched case-insensitively. Default is "x-correlation-id".
        correlation_id_format: How generated correlation ids look. "uuid4" gives
            the canonical hyphenated form, "hex" the 32-character compact form.
        idempotency_header: Request header carrying the client idempotency key.
        idempotent_methods: HTTP methods subject to idempotent processing.
            Default is ["POST"] (creation requests).
        idempotency_ttl_seconds: Retention window for idempotency records.
            Must be between 1 and 604800 (7 days). Default is 86400 (24 hours).
        wait_policy: How a request that loses the race for a key behaves.
            "wait" blocks until the first request commits (bounded by
            execution_timeout_seconds), "no-wait" fails fast with a retryable
            409 response.
        execution_timeout_seconds: Upper bound on the "wait" policy (1-300).
        wait_poll_interval_seconds: Delay between storage polls while waiting.
        max_body_bytes: Largest request body accepted for idempotent processing.
            0 means unlimited. Default is 1048576 (1 MB).
        max_key_length: Longest accepted idempotency key. Default is 255.
        require_uuid_keys: Reject idempotency keys that are not UUIDs.
        fingerprint_headers: Request headers included in the payload hash.
            Normalized to lowercase. Default is ["content-type"].
        problem_type_base_uri: Prefix of the stable problem "type" URIs.
        cleanup_interval_seconds: Period of the expired-record sweep.
        log_level: Log level passed to configure_logging().
        log_json: Emit JSON logs (True) or console logs (False).

    Note:
        This class is immutable (frozen=True). Create a new instance if you need
        different settings.
    """

    correlation_header: str = Field(
        default="x-correlation-id",
        description="Header carrying the correlation id",
    )
    correlation_id_format: Literal["uuid4", "hex"] = Field(
        default="uuid4",
        description="Format of generated correlation ids",
    )
    idempotency_header: str = Field(
        default="Idempotency-Key",
        description="Header carrying the client idempotency key",
    )
    idempotent_methods: list[str] | str = Field(
        default=["POST"],
        description="HTTP methods subject to idempotent processing",
    )
    idempotency_ttl_seconds: int = Field(
        default=86400,
        description="Retention window for idempotency records (1-604800)",
    )
    wait_policy: Literal["wait", "no-wait"] = Field(
        default="wait",
        description="Policy for concurrent requests: 'wait' or 'no-wait'",
    )
    execution_timeout_seconds: int = Field(
        default=30,
        description="Maximum time in seconds to wait for an in-flight request (1-300)",
    )
    wait_poll_interval_seconds: float = Field(
        default=0.05,
        gt=0,
        le=5,
        description="Delay between storage polls under the 'wait' policy",
    )
    max_body_bytes: int = Field(
        default=1048576,
        description="Maximum request body size for idempotent requests (0=unlimited)",
    )
    max_key_length: int = Field(
        default=255,
        ge=1,
        le=1024,
        description="Maximum idempotency key length",
    )
    require_uuid_keys: bool = Field(
        default=False,
        description="Require idempotency keys to be UUIDs",
    )
    fingerprint_headers: list[str] | str = Field(
        default=["content-type"],
        description="Request headers included in the payload hash",
    )
    problem_type_base_uri: str = Field(
        default="https://api.example.com/problems",
        description="Prefix for problem type URIs",
    )
    cleanup_interval_seconds: int = Field(
        default=300,
        ge=1,
        description="Interval between expired-record sweeps",
    )
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=True, description="Emit JSON logs")

    model_config = {"frozen": True}

    @field_validator("idempotent_methods", mode="before")
    @classmethod
    def validate_idempotent_methods(cls, v: Any) -> list[str]:
        """Validate and normalize idempotent HTTP methods.

        Raises:
            ValueError: If any method is not a valid HTTP method.

        Example:
            >>> GatewayConfig(idempotent_methods=["post", "put"]).idempotent_methods
            ['POST', 'PUT']
        """
        methods = [method.upper() for method in _split_csv(v, "idempotent_methods")]

        invalid_methods = set(methods) - VALID_HTTP_METHODS
        if invalid_methods:
            raise ValueError(
                f"Invalid HTTP methods: {', '.join(sorted(invalid_methods))}. "
                f"Valid methods are: {', '.join(sorted(VALID_HTTP_METHODS))}"
            )

        return methods

    @field_validator("idempotency_ttl_seconds")
    @classmethod
    def validate_idempotency_ttl_seconds(cls, v: int) -> int:
        if not (1 <= v <= 604800):
            raise ValueError(
                f"idempotency_ttl_seconds must be between 1 and 604800 (7 days), got {v}"
            )
        return v

    @field_validator("execution_timeout_seconds")
    @classmethod
    def validate_execution_timeout_seconds(cls, v: int) -> int:
        if not (1 <= v <= 300):
            raise ValueError(
                f"execution_timeout_seconds must be between 1 and 300 (5 minutes), got {v}"
            )
        return v

    @field_validator("max_body_bytes")
    @classmethod
    def validate_max_body_bytes(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_body_bytes must be >= 0, got {v}")
        return v

    @field_validator("correlation_header", "idempotency_header")
    @classmethod
    def validate_header_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("header name cannot be empty")
        if any(c.isspace() or c == ":" for c in v):
            raise ValueError(f"invalid header name: {v!r}")
        return v

    @field_validator("fingerprint_headers", mode="before")
    @classmethod
    def validate_fingerprint_headers(cls, v: Any) -> list[str]:
        """Normalize fingerprint headers to lowercase.

        Example:
            >>> GatewayConfig(fingerprint_headers=["Content-Type"]).fingerprint_headers
            ['content-type']
        """
        return [header.lower() for header in _split_csv(v, "fingerprint_headers")]

    @field_validator("problem_type_base_uri")
    @classmethod
    def validate_problem_type_base_uri(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("problem_type_base_uri cannot be empty")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {v}. Valid levels are: {', '.join(sorted(VALID_LOG_LEVELS))}"
            )
        return level

    @classmethod
    def from_env(cls, prefix: str = "API_CONVENTIONS_") -> "GatewayConfig":
        """Create configuration from environment variables.

        Variable names are the uppercase field names with the prefix, e.g.
        ``API_CONVENTIONS_WAIT_POLICY``. Missing variables keep their defaults;
        list fields accept comma-separated strings and booleans accept
        ``1/true/yes/on`` (case-insensitive).

        Args:
            prefix: Prefix for environment variable names.

        Returns:
            GatewayConfig instance populated from environment variables.
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "correlation_header": str,
            "correlation_id_format": str,
            "idempotency_header": str,
            "idempotent_methods": list,
            "idempotency_ttl_seconds": int,
            "wait_policy": str,
            "execution_timeout_seconds": int,
            "wait_poll_interval_seconds": float,
            "max_body_bytes": int,
            "max_key_length": int,
            "require_uuid_keys": bool,
            "fingerprint_headers": list,
            "problem_type_base_uri": str,
            "cleanup_interval_seconds": int,
            "log_level": str,
            "log_json": bool,
        }

        for field_name, field_type in field_types.items():
            env_var = f"{prefix}{field_name.upper()}"
            env_value = os.environ.get(env_var)

            if env_value is None:
                continue
            if field_type is int:
                config_dict[field_name] = int(env_value)
            elif field_type is float:
                config_dict[field_name] = float(env_value)
            elif field_type is bool:
                config_dict[field_name] = env_value.strip().lower() in {"1", "true", "yes", "on"}
            else:
                # Lists stay comma-separated strings; validators split them
                config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "GatewayConfig":
        """Create configuration from a dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)
