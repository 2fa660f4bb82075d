"""
Redis Infrastructure Module

Redis-backed cache backend with connection pooling and circuit breaker
protection.

This module provides:
- RedisCacheBackend: CacheBackend implementation over Redis hashes
- RedisConnectionFactory: pooled client management
- Circuit breaker pattern for resilience
"""

from .circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerMetrics,
    CircuitState,
    RedisCircuitBreaker,
)
from .connection_factory import RedisConnectionFactory, redis_connection_factory
from .redis_cache import RedisCacheBackend

__all__ = [
    # Backend
    "RedisCacheBackend",
    # Connection management
    "RedisConnectionFactory",
    "redis_connection_factory",
    # Circuit breaker
    "RedisCircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "CircuitBreakerMetrics",
]
