from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol


class Namespace(str, Enum):
    """Key prefixes shared with every other reader of the registry."""

    ACCESS = "access"
    REFRESH = "refresh"
    BLACKLIST = "blacklist"


BLACKLIST_MARKER = "logout"


def registry_key(namespace: Namespace, key: str) -> str:
    return f"{namespace.value}:{key}"


def require_positive_ttl(ttl_ms: int) -> int:
    if ttl_ms <= 0:
        raise ValueError(f"registry TTL must be positive, got {ttl_ms}ms")
    return int(ttl_ms)


class Registry(Protocol):
    """Namespaced key-value store whose entries expire on their own.

    All TTLs are milliseconds. Implementations raise
    ``RegistryUnavailableError`` when the backing store cannot be reached.
    """

    async def put(self, namespace: Namespace, key: str, value: str, ttl_ms: int) -> None: ...

    async def get(self, namespace: Namespace, key: str) -> Optional[str]: ...

    async def delete(self, namespace: Namespace, key: str) -> None: ...

    async def exists(self, namespace: Namespace, key: str) -> bool: ...

    async def ttl(self, namespace: Namespace, key: str) -> Optional[int]:
        """Remaining lifetime in milliseconds, or ``None`` when the key is absent."""

    async def close(self) -> None: ...


__all__ = [
    "Namespace",
    "BLACKLIST_MARKER",
    "Registry",
    "registry_key",
    "require_positive_ttl",
]
