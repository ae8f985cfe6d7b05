"""
Object storage port and adapters.

Codes, grants and encrypted user data all live in key-addressed stores:

    codes/{normalizedPhone}                          -> VerificationCode JSON
    arid/{aridId}                                    -> AuthorizedRequest JSON
    users/{userToken}/data/{normalizedApplication}.json -> encrypted SecretRecord

``RedisObjectStore`` keeps each store under its own namespace prefix in a
shared Redis database; ``MemoryObjectStore`` backs tests and local runs.
"""
import re
import logging
from typing import Any, Optional, Protocol, runtime_checkable

logger = logging.getLogger("fpw.storage")

_GLOB_CHARS = re.compile(r"([\\*?\[\]])")


def code_key(normalized_phone: str) -> str:
    return f"codes/{normalized_phone}"


def arid_key(arid_id: str) -> str:
    return f"arid/{arid_id}"


def user_prefix(user_token: str) -> str:
    return f"users/{user_token}/"


def application_key(normalized_application: str, user_token: str) -> str:
    return f"{user_prefix(user_token)}data/{normalized_application}.json"


@runtime_checkable
class ObjectStore(Protocol):
    """Minimal key-addressed blob store."""

    async def get(self, key: str) -> Optional[bytes]:
        """Return the object bytes, or None when the key is absent."""
        ...

    async def put(self, key: str, data: bytes) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...

    async def keys(self, prefix: str) -> list[str]:
        """List keys starting with ``prefix``."""
        ...


class MemoryObjectStore:
    """In-process ObjectStore, one dict per store."""

    def __init__(self, initial: Optional[dict[str, bytes]] = None):
        self._objects: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> Optional[bytes]:
        return self._objects.get(key)

    async def put(self, key: str, data: bytes) -> None:
        self._objects[key] = bytes(data)

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)

    async def keys(self, prefix: str) -> list[str]:
        return sorted(k for k in self._objects if k.startswith(prefix))

    def __contains__(self, key: object) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)


class RedisObjectStore:
    """ObjectStore over a redis.asyncio client, scoped by namespace."""

    def __init__(self, redis: Any, namespace: str):
        self._redis = redis
        self._namespace = namespace

    def _redis_key(self, key: str) -> str:
        """Build the namespaced Redis key."""
        return f"{self._namespace}:{key}"

    async def get(self, key: str) -> Optional[bytes]:
        return await self._redis.get(self._redis_key(key))

    async def put(self, key: str, data: bytes) -> None:
        await self._redis.set(self._redis_key(key), data)

    async def delete(self, key: str) -> None:
        await self._redis.delete(self._redis_key(key))

    async def keys(self, prefix: str) -> list[str]:
        pattern = _GLOB_CHARS.sub(r"\\\1", self._redis_key(prefix)) + "*"
        strip = len(self._namespace) + 1
        found = []
        async for raw in self._redis.scan_iter(match=pattern):
            name = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            found.append(name[strip:])
        logger.debug("Listed %d key(s) under %s", len(found), self._redis_key(prefix))
        return sorted(found)
