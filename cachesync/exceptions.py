"""
cachesync Exceptions

Exceptions raised by the cache backend and the entity registry.
Store exceptions are never wrapped; they reach the caller unchanged.
"""

from typing import Any, Dict, Optional


def _details(original_error: Optional[BaseException] = None, **context: Any) -> Dict[str, Any]:
    details = {name: value for name, value in context.items() if value}
    if original_error is not None:
        details["original_error"] = str(original_error)
        details["original_error_type"] = type(original_error).__name__
    return details


class CacheException(Exception):
    """Base exception for cache-related errors.

    Every failure of the cache backend surfaces as this or a subclass, so
    callers that degrade on cache failure catch exactly one type.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        if original_error is not None:
            self.__cause__ = original_error


class CacheConnectionException(CacheException):
    """Redis could not be reached, or the connection dropped mid-command."""

    def __init__(
        self,
        message: str = "Cache connection failed",
        url: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            error_code="CACHE_CONNECTION_ERROR",
            details=_details(original_error, url=url),
            original_error=original_error,
        )


class CacheOperationException(CacheException):
    """A single cache command was rejected by the server."""

    def __init__(
        self,
        operation: str,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        target = f" for key {key}" if key else ""
        super().__init__(
            f"Cache operation '{operation}' failed{target}",
            error_code="CACHE_OPERATION_ERROR",
            details=_details(original_error, operation=operation, key=key),
            original_error=original_error,
        )


class CacheSerializationException(CacheException):
    """A cached value could not be encoded or decoded."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        entity: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            error_code="CACHE_SERIALIZATION_ERROR",
            details=_details(original_error, key=key, entity=entity),
            original_error=original_error,
        )


class CacheKeyException(CacheException):
    """An entity's identity does not yield a usable cache key."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        entity: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(
            message,
            error_code="CACHE_KEY_ERROR",
            details=_details(original_error, key=key, entity=entity),
            original_error=original_error,
        )


class CacheCircuitOpenException(CacheException):
    """The circuit breaker is open; the command was not sent."""

    def __init__(self, message: str = "Cache circuit breaker is open"):
        super().__init__(
            message,
            error_code="CACHE_CIRCUIT_BREAKER_OPEN",
            details={"backend_status": "unavailable"},
        )


class EntityShapeException(Exception):
    """Raised when an entity type is registered with an invalid cache shape."""

    def __init__(self, message: str, entity: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity = entity
