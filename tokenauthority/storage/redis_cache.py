from __future__ import annotations

import contextlib
from typing import Any, Iterator, Optional

import redis.asyncio as aioredis
from redis import Redis
from redis.exceptions import RedisError

from tokenauthority.logging import get_logger
from tokenauthority.service.errors import RegistryUnavailableError
from tokenauthority.storage.registry import Namespace, registry_key, require_positive_ttl

logger = get_logger(__name__)


class RedisRegistry:
    """Token registry on Redis.

    Keys are ``access:<user>``, ``refresh:<user>`` and ``blacklist:<token>``;
    Redis removes them itself once their ``PX`` TTL runs out. Any Redis
    failure surfaces as ``RegistryUnavailableError`` so callers can answer
    with a 5xx instead of a 401.
    """

    DEFAULT_OPERATION_TIMEOUT = 5.0

    def __init__(
        self,
        client: Any,
        *,
        redis_url: Optional[str] = None,
        socket_timeout: float = DEFAULT_OPERATION_TIMEOUT,
    ) -> None:
        self.client = client
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout

    @classmethod
    def from_url(
        cls, redis_url: str, *, socket_timeout: float = DEFAULT_OPERATION_TIMEOUT
    ) -> "RedisRegistry":
        client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, redis_url=redis_url, socket_timeout=socket_timeout)

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving requests."""
        if not self.redis_url:
            return
        # Short-lived sync client so the async pool is not bound to a startup loop
        sync_client = Redis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_timeout=self.socket_timeout,
            socket_connect_timeout=self.socket_timeout,
        )
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    @contextlib.contextmanager
    def _translate_errors(self, operation: str, namespace: Namespace) -> Iterator[None]:
        try:
            yield
        except RedisError as exc:
            # Never log the key itself: blacklist keys embed the full token
            logger.warning(
                "registry_unavailable",
                operation=operation,
                namespace=namespace.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise RegistryUnavailableError(
                "token registry unavailable",
                detail={"operation": operation, "namespace": namespace.value},
            ) from exc

    async def put(self, namespace: Namespace, key: str, value: str, ttl_ms: int) -> None:
        ttl_ms = require_positive_ttl(ttl_ms)
        with self._translate_errors("put", namespace):
            await self.client.set(registry_key(namespace, key), value, px=ttl_ms)

    async def get(self, namespace: Namespace, key: str) -> Optional[str]:
        with self._translate_errors("get", namespace):
            return await self.client.get(registry_key(namespace, key))

    async def delete(self, namespace: Namespace, key: str) -> None:
        with self._translate_errors("delete", namespace):
            await self.client.delete(registry_key(namespace, key))

    async def exists(self, namespace: Namespace, key: str) -> bool:
        with self._translate_errors("exists", namespace):
            return bool(await self.client.exists(registry_key(namespace, key)))

    async def ttl(self, namespace: Namespace, key: str) -> Optional[int]:
        with self._translate_errors("ttl", namespace):
            remaining = await self.client.pttl(registry_key(namespace, key))
        # -2: no such key, -1: key without expiry
        if remaining is None or remaining < 0:
            return None
        return int(remaining)

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self.client.aclose()


class _SyncClientAdapter:
    """Wraps a sync Redis client with the async method signatures RedisRegistry awaits."""

    def __init__(self, sync_client: Redis):
        self._sync = sync_client

    async def get(self, key: str) -> Optional[str]:
        return self._sync.get(key)

    async def set(self, key: str, value: str, px: Optional[int] = None) -> bool:
        return self._sync.set(key, value, px=px)

    async def delete(self, key: str) -> int:
        return self._sync.delete(key)

    async def exists(self, key: str) -> int:
        return self._sync.exists(key)

    async def pttl(self, key: str) -> int:
        return self._sync.pttl(key)

    async def aclose(self) -> None:
        self._sync.close()


class SyncRedisRegistry(RedisRegistry):
    """Redis registry driven by a synchronous client, for test mode.

    Avoids binding an async connection pool to the short-lived event loops
    pytest creates per test, while exposing the same awaitable API.
    """

    def __init__(self, redis_url: str, *, socket_timeout: float = RedisRegistry.DEFAULT_OPERATION_TIMEOUT):
        self._sync_client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        super().__init__(
            _SyncClientAdapter(self._sync_client),
            redis_url=redis_url,
            socket_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        self._sync_client.ping()


__all__ = ["RedisRegistry", "SyncRedisRegistry"]
