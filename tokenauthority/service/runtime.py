from __future__ import annotations

import asyncio
import threading
from typing import Optional, Union
from urllib.parse import urlparse, urlunparse

from tokenauthority.config import get_settings, reset_settings_cache
from tokenauthority.logging import get_logger
from tokenauthority.service.tokens import TokenAuthority
from tokenauthority.storage.memory import MemoryRegistry
from tokenauthority.storage.redis_cache import RedisRegistry, SyncRedisRegistry

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password in a Redis URL for logging.

    Example: redis://:hunter2@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
        if not parsed.password:
            return url
        netloc = parsed.hostname or ""
        if parsed.port:
            netloc = f"{netloc}:{parsed.port}"
        user = parsed.username or ""
        netloc = f"{user}:***@{netloc}"
        return urlunparse(
            (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
        )
    except ValueError:
        return "***url_parse_error***"


class Runtime:
    """Holds the process-wide registry handle and token authority."""

    def __init__(self):
        self.settings = get_settings()
        logger.info("runtime_init_started", test_mode=self.settings.test_mode)

        self.registry: Union[RedisRegistry, MemoryRegistry, None] = None
        redis_error: Exception | None = None
        if self.settings.redis_url:
            try:
                # Sync client in test mode to avoid event loop binding issues
                if self.settings.test_mode:
                    registry = SyncRedisRegistry(
                        self.settings.redis_url,
                        socket_timeout=self.settings.redis_socket_timeout,
                    )
                else:
                    registry = RedisRegistry.from_url(
                        self.settings.redis_url,
                        socket_timeout=self.settings.redis_socket_timeout,
                    )
                registry.verify_connection()
                self.registry = registry
            except Exception as exc:
                redis_error = exc

        if self.registry is None:
            if not self.settings.test_mode and not self.settings.allow_registry_fallback_dev:
                raise RuntimeError(
                    "Redis is required for the token registry; start Redis or set "
                    "TEST_MODE=true/ALLOW_REGISTRY_FALLBACK_DEV=true for the in-memory fallback."
                ) from redis_error

            fallback_mode = (
                "TEST_MODE" if self.settings.test_mode else "ALLOW_REGISTRY_FALLBACK_DEV"
            )
            logger.warning(
                "redis_disabled_fallback",
                redis_url=_mask_url_password(self.settings.redis_url),
                error=str(redis_error) if redis_error else "redis_url_missing",
                message=(
                    f"Running without Redis under {fallback_mode}; sessions and the "
                    "blacklist are process-local and lost on restart."
                ),
                mode=fallback_mode,
            )
            self.registry = MemoryRegistry()

        self.authority = TokenAuthority(self.registry, self.settings)
        logger.info(
            "runtime_initialized",
            registry=type(self.registry).__name__,
            redis_url=_mask_url_password(self.settings.redis_url),
        )

    async def close(self) -> None:
        await self.authority.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Return the runtime singleton, creating it on first use.

    Double-checked locking: the unlocked read is the fast path, the locked
    re-check prevents two threads from both building a runtime.
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def _close_quietly(previous: Runtime) -> None:
    if isinstance(previous.registry, MemoryRegistry):
        return
    try:
        if isinstance(previous.registry, SyncRedisRegistry):
            previous.registry._sync_client.close()
            return
        try:
            loop = asyncio.get_running_loop()
            loop.create_task(previous.close())
        except RuntimeError:
            asyncio.run(previous.close())
    except Exception as exc:
        # connection may already be gone
        logger.debug("runtime_close_failed", error=str(exc))


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        if runtime is not None:
            _close_quietly(runtime)
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime()
        return runtime


__all__ = ["Runtime", "get_runtime", "reset_runtime_for_tests"]
