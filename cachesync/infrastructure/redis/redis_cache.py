"""
Redis Cache Backend Implementation

Infrastructure implementation of the CacheBackend interface using Redis
hashes. Entities are dataclasses serialized through pydantic TypeAdapters.

Layout:
    singleton entity   HASH key -> {field name: JSON value}
    collection entity  HASH key -> {sub-key: JSON member}
"""

import dataclasses
import json
from functools import lru_cache
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Type, TypeVar

import structlog
from pydantic import TypeAdapter, ValidationError
from pydantic_core import to_jsonable_python
from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ...core.config import settings
from ...domain.repository_interfaces import CacheBackend
from ...exceptions import (
    CacheConnectionException,
    CacheException,
    CacheOperationException,
    CacheSerializationException,
)
from .circuit_breaker import CircuitBreakerConfig, RedisCircuitBreaker
from .connection_factory import RedisConnectionFactory, redis_connection_factory

logger = structlog.get_logger()

E = TypeVar("E")
T = TypeVar("T")


@lru_cache(maxsize=None)
def _adapter(entity_type: type) -> TypeAdapter:
    return TypeAdapter(entity_type)


def encode_value(value: Any) -> str:
    """JSON-encode a single field value."""
    return json.dumps(to_jsonable_python(value))


def encode_entity(entity: Any) -> str:
    """JSON-encode a whole entity."""
    return _adapter(type(entity)).dump_json(entity).decode("utf-8")


def encode_fields(entity: Any) -> Dict[str, str]:
    """Encode an entity as a field name -> JSON value mapping."""
    data = _adapter(type(entity)).dump_python(entity, mode="json")
    return {name: json.dumps(value) for name, value in data.items()}


def decode_entity(raw: str, entity_type: Type[E]) -> E:
    return _adapter(entity_type).validate_json(raw)


def decode_fields(raw: Mapping[str, str], entity_type: Type[E]) -> E:
    """Decode a field hash; every dataclass field must be present."""
    missing = [f.name for f in dataclasses.fields(entity_type) if f.name not in raw]
    if missing:
        raise ValueError(f"Cached entity is missing fields: {missing}")
    data = {name: json.loads(value) for name, value in raw.items()}
    return _adapter(entity_type).validate_python(data)


def default_circuit_breaker() -> RedisCircuitBreaker:
    return RedisCircuitBreaker(
        CircuitBreakerConfig(
            failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            failure_exceptions=(
                RedisConnectionError,
                RedisTimeoutError,
                ConnectionError,
                TimeoutError,
                OSError,
            ),
        )
    )


class RedisCacheBackend(CacheBackend):
    """Redis implementation of the entity cache backend."""

    def __init__(
        self,
        client: Optional[Redis] = None,
        connection_factory: Optional[RedisConnectionFactory] = None,
        circuit_breaker: Optional[RedisCircuitBreaker] = None,
    ):
        self._client = client
        self._connection_factory = connection_factory or redis_connection_factory
        self.circuit_breaker = circuit_breaker or default_circuit_breaker()

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = self._connection_factory.get_client()
        return self._client

    def _execute(self, operation: str, key: str, func: Callable[[], T]) -> T:
        """Run a Redis command, translating client errors to CacheException."""
        try:
            return self.circuit_breaker.call(func)
        except CacheException:
            raise
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.warning(
                "Cache: Redis unavailable", operation=operation, key=key, error=str(e)
            )
            raise CacheConnectionException(
                f"Redis unavailable during {operation}", original_error=e
            ) from e
        except RedisError as e:
            logger.error(
                "Cache: Redis command failed",
                operation=operation,
                key=key,
                error=str(e),
            )
            raise CacheOperationException(operation, key=key, original_error=e) from e

    def get_object(self, key: str, entity_type: Type[E]) -> Optional[E]:
        raw = self._execute("hgetall", key, lambda: self.client.hgetall(key))
        if not raw:
            return None
        try:
            return decode_fields(raw, entity_type)
        except (ValidationError, ValueError) as e:
            raise CacheSerializationException(
                "Cached entity could not be decoded",
                key=key,
                entity=entity_type.__name__,
                original_error=e,
            ) from e

    def set_object(self, key: str, entity: Any) -> None:
        mapping = encode_fields(entity)

        def _replace() -> None:
            pipe = self.client.pipeline(transaction=True)
            pipe.delete(key)
            pipe.hset(key, mapping=mapping)
            pipe.execute()

        self._execute("hset", key, _replace)

    def merge_fields(self, key: str, fields: Mapping[str, Any]) -> None:
        if not fields:
            return
        mapping = {name: encode_value(value) for name, value in fields.items()}
        self._execute("hset", key, lambda: self.client.hset(key, mapping=mapping))

    def get_collection(
        self, key: str, entity_type: Type[E]
    ) -> Optional[Dict[str, E]]:
        raw = self._execute("hgetall", key, lambda: self.client.hgetall(key))
        if not raw:
            return None
        try:
            return {
                sub_key: decode_entity(value, entity_type)
                for sub_key, value in raw.items()
            }
        except (ValidationError, ValueError) as e:
            raise CacheSerializationException(
                "Cached collection member could not be decoded",
                key=key,
                entity=entity_type.__name__,
                original_error=e,
            ) from e

    def set_collection_members(self, key: str, members: Mapping[str, Any]) -> None:
        if not members:
            return
        mapping = {sub_key: encode_entity(member) for sub_key, member in members.items()}
        self._execute("hset", key, lambda: self.client.hset(key, mapping=mapping))

    def delete_key(self, key: str) -> None:
        self._execute("delete", key, lambda: self.client.delete(key))

    def delete_collection_members(self, key: str, sub_keys: Sequence[str]) -> None:
        if not sub_keys:
            return
        self._execute("hdel", key, lambda: self.client.hdel(key, *sub_keys))
