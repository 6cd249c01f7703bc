"""
Error Taxonomy and Global Error Handling

This module defines the typed error families used across Ripple, the unified
`RippleError` that wraps them, and the application-wide exception handlers
registered on the FastAPI app.

Design Goals
------------
- Every failure is a typed value callers can branch on (never a bare string)
- Every variant renders a fixed message embedding all of its fields
- Conversion into `RippleError` is explicit, total, and lossless
- Never leak internal exception details to clients
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Dict, Optional, Tuple, Type

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("ripple.errors")


# ---------------------------------------------------------------------
# Base Class
# ---------------------------------------------------------------------

class SubsystemError(Exception):
    """
    Base for every subsystem-scoped error.

    Subclasses declare a `template` whose placeholders are exactly the
    structured fields passed to `__init__`. The fields are stored both as
    attributes and in `.fields`.
    """

    subsystem: str = ""
    template: str = ""

    def __init__(self, **fields: Any) -> None:
        self.fields: Dict[str, Any] = dict(fields)
        for name, value in fields.items():
            setattr(self, name, value)
        super().__init__(self.template.format(**fields))

    @property
    def message(self) -> str:
        return str(self)

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.fields.items())
        return f"{type(self).__name__}({args})"


# ---------------------------------------------------------------------
# 1. Configuration
# ---------------------------------------------------------------------

class ConfigurationError(SubsystemError):
    """Errors related to application configuration."""

    subsystem = "Configuration"


class MissingFieldError(ConfigurationError):
    template = "Missing required configuration field: {field}"

    def __init__(self, field: str) -> None:
        super().__init__(field=field)


class InvalidFormatError(ConfigurationError):
    template = "Invalid value for {field}: '{value}' (expected {expected})"

    def __init__(self, field: str, value: Any, expected: str) -> None:
        super().__init__(field=field, value=value, expected=expected)


class InvalidRangeError(ConfigurationError):
    template = "{field} value '{value}' is out of range [{min}, {max}]"

    def __init__(self, field: str, value: Any, min: Any, max: Any) -> None:
        super().__init__(field=field, value=value, min=min, max=max)


class ParseError(ConfigurationError):
    template = (
        "Failed to parse {field}: '{value}' is not a valid {expected_type} ({details})"
    )

    def __init__(self, field: str, value: Any, expected_type: str, details: str) -> None:
        super().__init__(
            field=field, value=value, expected_type=expected_type, details=details
        )


class ConfigFileNotFoundError(ConfigurationError):
    template = "File not found at path '{path}': {details}"

    def __init__(self, path: str, details: str) -> None:
        super().__init__(path=path, details=details)


# ---------------------------------------------------------------------
# 2. Network
# ---------------------------------------------------------------------

class NetworkError(SubsystemError):
    """Errors originating from network operations."""

    subsystem = "Network"


class ConnectionFailedError(NetworkError):
    template = "Connection failed to {endpoint}: {details}"

    def __init__(self, endpoint: str, details: str) -> None:
        super().__init__(endpoint=endpoint, details=details)


class NetworkTimeoutError(NetworkError):
    template = "Request timed out after {timeout_ms}ms to {endpoint}"

    def __init__(self, endpoint: str, timeout_ms: int) -> None:
        super().__init__(endpoint=endpoint, timeout_ms=timeout_ms)


class TlsError(NetworkError):
    template = "TLS error connecting to {endpoint}: {details}"

    def __init__(self, endpoint: str, details: str) -> None:
        super().__init__(endpoint=endpoint, details=details)


class DnsError(NetworkError):
    template = "DNS resolution failed for {host}: {details}"

    def __init__(self, host: str, details: str) -> None:
        super().__init__(host=host, details=details)


class BindFailedError(NetworkError):
    template = "Failed to bind listener on {address}: {details}"

    def __init__(self, address: str, details: str) -> None:
        super().__init__(address=address, details=details)


# ---------------------------------------------------------------------
# 3. Cache
# ---------------------------------------------------------------------

class CacheError(SubsystemError):
    """Errors related to the caching subsystem."""

    subsystem = "Cache"


class CacheReadError(CacheError):
    template = "Cache read failed for key '{key}': {details}"

    def __init__(self, key: str, details: str) -> None:
        super().__init__(key=key, details=details)


class CacheWriteError(CacheError):
    template = "Cache write failed for key '{key}': {details}"

    def __init__(self, key: str, details: str) -> None:
        super().__init__(key=key, details=details)


class CacheInvalidationError(CacheError):
    template = "Cache invalidation failed: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class CacheCapacityExceededError(CacheError):
    template = "Cache capacity exceeded (max: {max_size})"

    def __init__(self, max_size: int) -> None:
        super().__init__(max_size=max_size)


# ---------------------------------------------------------------------
# 4. Embedding
# ---------------------------------------------------------------------

class EmbeddingError(SubsystemError):
    """Errors from the embedding engine."""

    subsystem = "Embedding"


class ModelLoadError(EmbeddingError):
    template = "Failed to load embedding model from '{path}': {details}"

    def __init__(self, path: str, details: str) -> None:
        super().__init__(path=path, details=details)


class InferenceError(EmbeddingError):
    template = "Embedding inference failed: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class TokenizationError(EmbeddingError):
    template = "Tokenization failed for input: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class DimensionMismatchError(EmbeddingError):
    template = "Invalid embedding dimensions: expected {expected}, got {actual}"

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(expected=expected, actual=actual)


# ---------------------------------------------------------------------
# 5. Vector Store
# ---------------------------------------------------------------------

class VectorStoreError(SubsystemError):
    """Errors from the vector database layer."""

    subsystem = "Vector store"


class VectorStoreConnectionError(VectorStoreError):
    template = "Vector store connection failed: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class CollectionNotFoundError(VectorStoreError):
    template = "Collection '{collection}' not found"

    def __init__(self, collection: str) -> None:
        super().__init__(collection=collection)


class VectorInsertionError(VectorStoreError):
    template = "Vector insertion failed: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class VectorSearchError(VectorStoreError):
    template = "Vector search failed: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class VectorDeletionError(VectorStoreError):
    template = "Vector deletion failed: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


# ---------------------------------------------------------------------
# 6. Upstream API
# ---------------------------------------------------------------------

class UpstreamApiError(SubsystemError):
    """Errors from upstream API providers (OpenAI, Anthropic, etc.)."""

    subsystem = "Upstream API"


class UpstreamRequestError(UpstreamApiError):
    template = "Upstream API request failed ({provider}): {details}"

    def __init__(self, provider: str, details: str) -> None:
        super().__init__(provider=provider, details=details)


class RateLimitedError(UpstreamApiError):
    template = "Upstream API rate limited ({provider}): retry after {retry_after_secs}s"

    def __init__(self, provider: str, retry_after_secs: int) -> None:
        super().__init__(provider=provider, retry_after_secs=retry_after_secs)


class InvalidUpstreamResponseError(UpstreamApiError):
    template = "Invalid response from upstream ({provider}): {details}"

    def __init__(self, provider: str, details: str) -> None:
        super().__init__(provider=provider, details=details)


class InvalidProviderKeyError(UpstreamApiError):
    template = "Upstream API key invalid for {provider}"

    def __init__(self, provider: str) -> None:
        super().__init__(provider=provider)


# ---------------------------------------------------------------------
# 7. Authentication
# ---------------------------------------------------------------------

class AuthenticationError(SubsystemError):
    """Errors related to request authentication and authorization."""

    subsystem = "Authentication"


class MissingApiKeyError(AuthenticationError):
    template = "Missing API key in request"

    def __init__(self) -> None:
        super().__init__()


class InvalidApiKeyError(AuthenticationError):
    template = "Invalid API key"

    def __init__(self) -> None:
        super().__init__()


class ExpiredApiKeyError(AuthenticationError):
    template = "API key expired"

    def __init__(self) -> None:
        super().__init__()


class InsufficientPermissionsError(AuthenticationError):
    template = "Insufficient permissions for tenant '{tenant_id}'"

    def __init__(self, tenant_id: str) -> None:
        super().__init__(tenant_id=tenant_id)


# ---------------------------------------------------------------------
# 8. Request Validation
# ---------------------------------------------------------------------

class ValidationError(SubsystemError):
    """Errors from request validation."""

    subsystem = "Validation"


class InvalidRequestError(ValidationError):
    template = "Invalid request format: {details}"

    def __init__(self, details: str) -> None:
        super().__init__(details=details)


class MissingRequestFieldError(ValidationError):
    template = "Missing required field: {field}"

    def __init__(self, field: str) -> None:
        super().__init__(field=field)


class ValueTooLargeError(ValidationError):
    template = "Field '{field}' value too large: max {max}"

    def __init__(self, field: str, max: Any) -> None:
        super().__init__(field=field, max=max)


class UnsupportedModelError(ValidationError):
    template = "Unsupported model: {model}"

    def __init__(self, model: str) -> None:
        super().__init__(model=model)


# ---------------------------------------------------------------------
# Unified Error
# ---------------------------------------------------------------------

class ErrorKind(str, enum.Enum):
    """One member per subsystem family, plus INTERNAL."""

    CONFIGURATION = "configuration"
    NETWORK = "network"
    CACHE = "cache"
    EMBEDDING = "embedding"
    VECTOR_STORE = "vector_store"
    UPSTREAM_API = "upstream_api"
    AUTHENTICATION = "authentication"
    VALIDATION = "validation"
    INTERNAL = "internal"


_KIND_BY_FAMILY: Tuple[Tuple[Type[SubsystemError], ErrorKind], ...] = (
    (ConfigurationError, ErrorKind.CONFIGURATION),
    (NetworkError, ErrorKind.NETWORK),
    (CacheError, ErrorKind.CACHE),
    (EmbeddingError, ErrorKind.EMBEDDING),
    (VectorStoreError, ErrorKind.VECTOR_STORE),
    (UpstreamApiError, ErrorKind.UPSTREAM_API),
    (AuthenticationError, ErrorKind.AUTHENTICATION),
    (ValidationError, ErrorKind.VALIDATION),
)


class RippleError(Exception):
    """
    Top-level error wrapping every subsystem error.

    Use `RippleError.wrap()` to convert a subsystem error and
    `RippleError.internal()` for conditions owned by no subsystem.
    The wrapped error is kept on `.source`.
    """

    def __init__(
        self,
        kind: ErrorKind,
        detail: str,
        source: Optional[SubsystemError] = None,
    ) -> None:
        self.kind = kind
        self.detail = detail
        self.source = source
        prefix = source.subsystem if source is not None else "Internal"
        super().__init__(f"{prefix} error: {detail}")

    @classmethod
    def wrap(cls, error: BaseException) -> "RippleError":
        """
        Convert any exception into a `RippleError`.

        Subsystem errors map to their family's kind; an existing
        `RippleError` is returned unchanged; anything else is INTERNAL.
        """
        if isinstance(error, RippleError):
            return error
        if isinstance(error, SubsystemError):
            for family, kind in _KIND_BY_FAMILY:
                if isinstance(error, family):
                    return cls(kind, str(error), source=error)
        return cls.internal(str(error) or type(error).__name__)

    @classmethod
    def internal(cls, message: str) -> "RippleError":
        return cls(ErrorKind.INTERNAL, message)


def to_ripple_error(error: BaseException) -> RippleError:
    return RippleError.wrap(error)


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

_STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.VALIDATION: 400,
    ErrorKind.UPSTREAM_API: 502,
    ErrorKind.NETWORK: 503,
    ErrorKind.VECTOR_STORE: 503,
}


def status_code_for(kind: ErrorKind) -> int:
    return _STATUS_BY_KIND.get(kind, 500)


def _count_error(request: Request, kind: ErrorKind) -> None:
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.record_error(kind.value)


async def ripple_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler for `RippleError` and every `SubsystemError`.

    Counts the error by kind, logs it, and returns a JSON body carrying the
    kind and the rendered message. Kinds that map to a plain 500 hide the
    message behind a generic detail.
    """
    error = RippleError.wrap(exc)
    status_code = status_code_for(error.kind)
    _count_error(request, error.kind)

    logger.warning(
        "%s %s failed with %s: %s",
        request.method,
        request.url.path,
        error.kind.value,
        error,
    )

    # Only 500s hide their message; everything else is safe to surface.
    detail = "Internal server error" if status_code == 500 else str(error)
    return JSONResponse(
        status_code=status_code,
        content={"error": error.kind.value, "detail": detail},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full stack trace internally and returns a generic 500 with no
    internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    _count_error(request, ErrorKind.INTERNAL)

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
