"""Key-value store port and adapters.

Provides StorePort (Protocol) and two implementations:

- RedisStore — production adapter backed by ``redis.asyncio``
- MemoryStore — in-memory test double that records writes and can
  simulate the engine under test through write hooks

Design decisions:

- Values cross the port as text; typing is the comparison layer's job
- ``redis`` is imported lazily inside ``RedisStore.connect()`` so the
  in-memory store works in test environments that never touch a server
- Adapters raise whatever their transport raises; the store adapter
  layer wraps failures in :class:`~ruleprobe._errors.StoreError`
"""

from __future__ import annotations

import contextlib
import fnmatch
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ruleprobe._settings import StoreSettings

logger = logging.getLogger(__name__)

WriteHook = Callable[[str, str | None, str], Awaitable[None]]
"""Async callback receiving ``(key, field, value)`` after each write."""


@runtime_checkable
class StorePort(Protocol):
    """Minimal key-value store surface used by the runner."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def hget(self, key: str, field: str) -> str | None: ...

    async def hset(self, key: str, field: str, value: str) -> None: ...

    async def publish(self, channel: str, message: str) -> None: ...

    async def delete_matching(self, pattern: str) -> int:
        """Delete every key matching the glob *pattern*; return the count."""
        ...


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------


@dataclass
class MemoryStore:
    """In-memory test double for :class:`StorePort`.

    Strings and hashes live in plain dicts.  Every write is recorded in
    ``writes`` and then passed to the registered hooks, which lets a
    test stand in for the rule engine: a hook watching ``input:`` keys
    can compute and ``set`` the corresponding ``output:`` keys.

    Setting ``failure`` makes every operation raise it, simulating an
    unreachable server.
    """

    strings: dict[str, str] = field(default_factory=dict)
    hashes: dict[str, dict[str, str]] = field(default_factory=dict)
    published: list[tuple[str, str]] = field(default_factory=list)
    writes: list[tuple[str, str | None, str]] = field(default_factory=list)
    failure: Exception | None = None
    _hooks: list[WriteHook] = field(default_factory=list, init=False, repr=False)

    def _check(self) -> None:
        if self.failure is not None:
            raise self.failure

    # -- StorePort methods ---------------------------------------------------

    async def get(self, key: str) -> str | None:
        self._check()
        return self.strings.get(key)

    async def set(self, key: str, value: str) -> None:
        self._check()
        self.strings[key] = value
        await self._written(key, None, value)

    async def hget(self, key: str, field: str) -> str | None:
        self._check()
        return self.hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: str) -> None:
        self._check()
        self.hashes.setdefault(key, {})[field] = value
        await self._written(key, field, value)

    async def publish(self, channel: str, message: str) -> None:
        self._check()
        self.published.append((channel, message))

    async def delete_matching(self, pattern: str) -> int:
        self._check()
        keys = [key for key in self.strings if fnmatch.fnmatchcase(key, pattern)]
        hash_keys = [key for key in self.hashes if fnmatch.fnmatchcase(key, pattern)]
        for key in keys:
            del self.strings[key]
        for key in hash_keys:
            del self.hashes[key]
        return len(keys) + len(hash_keys)

    # -- Test helpers --------------------------------------------------------

    def on_write(self, hook: WriteHook) -> None:
        """Register a callback invoked after every ``set``/``hset``."""
        self._hooks.append(hook)

    async def _written(self, key: str, field: str | None, value: str) -> None:
        self.writes.append((key, field, value))
        for hook in self._hooks:
            await hook(key, field, value)

    def writes_for(self, key: str) -> list[str]:
        """Values written to *key*, oldest first."""
        return [value for k, _, value in self.writes if k == key]

    def reset(self) -> None:
        """Clear all data, records and hooks."""
        self.strings.clear()
        self.hashes.clear()
        self.published.clear()
        self.writes.clear()
        self._hooks.clear()
        self.failure = None


# ---------------------------------------------------------------------------
# Redis adapter
# ---------------------------------------------------------------------------


@dataclass
class RedisStore:
    """Production store adapter backed by ``redis.asyncio``.

    Responses are decoded to ``str``.  Call :meth:`connect` before use
    and :meth:`close` when done.
    """

    settings: StoreSettings
    _client: Any = field(default=None, init=False, repr=False)

    async def connect(self) -> None:
        """Open the connection and verify it with ``PING``."""
        if self._client is not None:
            return
        try:
            import redis.asyncio as aioredis  # noqa: PLC0415
        except ModuleNotFoundError as exc:
            msg = "redis is required to use RedisStore"
            raise RuntimeError(msg) from exc

        password = (
            self.settings.password.get_secret_value()
            if self.settings.password is not None
            else None
        )
        client = aioredis.Redis(
            host=self.settings.host,
            port=self.settings.port,
            db=self.settings.db,
            password=password,
            ssl=self.settings.ssl,
            socket_connect_timeout=self.settings.connect_timeout,
            decode_responses=True,
        )
        try:
            await client.ping()
        except Exception:
            await client.aclose()
            raise
        self._client = client
        logger.info(
            "Connected to store at %s:%d (db %d)",
            self.settings.host,
            self.settings.port,
            self.settings.db,
        )

    async def close(self) -> None:
        """Close the connection.  Idempotent."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _require_client(self) -> Any:
        if self._client is None:
            msg = "RedisStore is not connected"
            raise RuntimeError(msg)
        return self._client

    # -- StorePort methods ---------------------------------------------------

    async def get(self, key: str) -> str | None:
        return await self._require_client().get(key)

    async def set(self, key: str, value: str) -> None:
        await self._require_client().set(key, value)

    async def hget(self, key: str, field: str) -> str | None:
        return await self._require_client().hget(key, field)

    async def hset(self, key: str, field: str, value: str) -> None:
        await self._require_client().hset(key, field, value)

    async def publish(self, channel: str, message: str) -> None:
        await self._require_client().publish(channel, message)

    async def delete_matching(self, pattern: str) -> int:
        client = self._require_client()
        keys = [key async for key in client.scan_iter(match=pattern)]
        if not keys:
            return 0
        return int(await client.delete(*keys))


@contextlib.asynccontextmanager
async def open_redis_store(settings: StoreSettings) -> AsyncIterator[StorePort]:
    """Connect a :class:`RedisStore` for the duration of the block."""
    store = RedisStore(settings)
    await store.connect()
    try:
        yield store
    finally:
        await store.close()
