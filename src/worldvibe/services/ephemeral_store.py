"""Ephemeral key-value storage for rate-limit windows and admission tokens.

Two backends share the ``EphemeralStore`` protocol:

- ``RedisEphemeralStore`` talks to Redis with short per-call timeouts and maps
  every client failure onto ``StoreUnavailableError``. A circuit breaker makes
  calls fail fast while Redis is known to be down.
- ``MemoryEphemeralStore`` keeps keys in a lock-protected dict, sweeping expired
  entries periodically on writes. It is meant for local development and tests
  and is not shared across processes.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from threading import Lock
from typing import Any, Protocol

import redis
from redis.exceptions import RedisError, ResponseError

from worldvibe.core.settings import Settings, settings as default_settings
from worldvibe.services.circuit_breaker import CircuitBreaker
from worldvibe.services.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL = 256


class EphemeralStore(Protocol):
    """Narrow contract the admission core needs from a TTL key-value store."""

    def get(self, key: str) -> str | None: ...

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None: ...

    def set_if_absent_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool: ...

    def ttl(self, key: str) -> int | None: ...

    def delete(self, key: str) -> None: ...

    def get_and_delete(self, key: str) -> str | None: ...

    def ping(self) -> bool: ...


def _decode(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes | bytearray):
        return bytes(value).decode("utf-8")
    return str(value)


class RedisEphemeralStore:
    """Redis-backed store. Construct with a client or via :meth:`from_settings`.

    Every call goes through a circuit breaker: once Redis has failed
    ``failure_threshold`` times in a row, calls raise ``StoreUnavailableError``
    immediately until the recovery timeout has passed.
    """

    def __init__(self, client: Any, breaker: CircuitBreaker | None = None) -> None:
        self._redis = client
        self._breaker = breaker or CircuitBreaker()

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> RedisEphemeralStore:
        """Build a client with socket timeouts and breaker limits from configuration."""
        config = config or default_settings
        timeout = config.store_timeout_seconds
        client = redis.from_url(  # type: ignore[no-untyped-call]
            config.redis_url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        breaker = CircuitBreaker(
            name="redis",
            failure_threshold=config.store_breaker_failure_threshold,
            recovery_timeout=config.store_breaker_recovery_seconds,
            success_threshold=config.store_breaker_success_threshold,
        )
        return cls(client, breaker)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _call(
        self,
        operation: str,
        func: Callable[..., Any],
        *args: Any,
        passthrough: tuple[type[RedisError], ...] = (),
        **kwargs: Any,
    ) -> Any:
        if self._breaker.is_open():
            raise StoreUnavailableError(f"{operation} skipped: circuit open")
        try:
            result = func(*args, **kwargs)
        except passthrough:
            # The server answered; only the command was refused.
            self._breaker.record_success()
            raise
        except RedisError as exc:
            self._breaker.record_failure()
            raise StoreUnavailableError(f"{operation} failed: {exc}") from exc
        self._breaker.record_success()
        return result

    def get(self, key: str) -> str | None:
        return _decode(self._call("GET", self._redis.get, key))

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        self._call("SET", self._redis.set, key, value, ex=int(ttl_seconds))

    def set_if_absent_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        return bool(
            self._call("SET NX", self._redis.set, key, value, ex=int(ttl_seconds), nx=True)
        )

    def ttl(self, key: str) -> int | None:
        """Remaining seconds for ``key``; None when missing or without expiry."""
        remaining = self._call("TTL", self._redis.ttl, key)
        if remaining is None or int(remaining) < 0:
            return None
        return int(remaining)

    def delete(self, key: str) -> None:
        self._call("DEL", self._redis.delete, key)

    def get_and_delete(self, key: str) -> str | None:
        """Atomically read and remove ``key``.

        Uses GETDEL (Redis >= 6.2) and falls back to a MULTI/EXEC GET+DEL on
        servers that reject the command.
        """
        try:
            return _decode(
                self._call("GETDEL", self._redis.getdel, key, passthrough=(ResponseError,))
            )
        except ResponseError:
            logger.debug("GETDEL unsupported, falling back to MULTI/EXEC")

        def _get_then_delete() -> Any:
            pipe = self._redis.pipeline(transaction=True)
            pipe.get(key)
            pipe.delete(key)
            value, _ = pipe.execute()
            return value

        return _decode(self._call("GET+DEL", _get_then_delete))

    def ping(self) -> bool:
        try:
            return bool(self._call("PING", self._redis.ping))
        except StoreUnavailableError:
            return False


class MemoryEphemeralStore:
    """In-process TTL store with lazy expiry and a periodic sweep.

    Args:
        clock: Monotonic seconds source; injectable so tests can move time.
        sweep_interval: Number of writes between full sweeps of expired keys.
    """

    def __init__(
        self,
        clock: Callable[[], float] | None = None,
        sweep_interval: int = DEFAULT_SWEEP_INTERVAL,
    ) -> None:
        self._clock = clock or time.monotonic
        self._data: dict[str, tuple[str, float]] = {}
        self._lock = Lock()
        self._sweep_interval = max(1, int(sweep_interval))
        self._writes = 0

    def _live(self, key: str) -> tuple[str, float] | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            self._data.pop(key, None)
            return None
        return entry

    def _purge_locked(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._data.items() if expires_at <= now]
        for key in expired:
            del self._data[key]
        return len(expired)

    def _write_locked(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + int(ttl_seconds))
        self._writes += 1
        if self._writes % self._sweep_interval == 0:
            self._purge_locked()

    def purge_expired(self) -> int:
        """Drop every expired key now; returns how many were removed."""
        with self._lock:
            return self._purge_locked()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            return entry[0] if entry else None

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._write_locked(key, value, ttl_seconds)

    def set_if_absent_with_ttl(self, key: str, value: str, ttl_seconds: int) -> bool:
        with self._lock:
            if self._live(key) is not None:
                return False
            self._write_locked(key, value, ttl_seconds)
            return True

    def ttl(self, key: str) -> int | None:
        with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            return max(1, math.ceil(entry[1] - self._clock()))

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def get_and_delete(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key)
            self._data.pop(key, None)
            return entry[0] if entry else None

    def ping(self) -> bool:
        return True

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for _, expires_at in self._data.values() if expires_at > now)


def build_ephemeral_store(config: Settings | None = None) -> EphemeralStore:
    """Return the store backend selected by ``EPHEMERAL_STORE_BACKEND``."""
    config = config or default_settings
    backend = config.ephemeral_store_backend.strip().lower()
    if backend == "memory":
        logger.warning("Using in-process ephemeral store; state is not shared across instances")
        return MemoryEphemeralStore()
    if backend == "redis":
        return RedisEphemeralStore.from_settings(config)
    raise ValueError(f"Unknown ephemeral store backend: {config.ephemeral_store_backend!r}")
