"""
Slot-scoped mutual exclusion.

The calendar API offers no transaction spanning "list events" and "insert
event", so create/reschedule hold the locks of every clock hour the slot
touches (TimeSlot.lock_keys, "YYYY-MM-DDTHH") across the check-then-act
sequence. Overlapping slots share at least one key.
Requests for disjoint slots never wait on each other.

Backends:
- InMemorySlotLockManager: asyncio locks, valid for a single process
- RedisSlotLockManager: redis locks, valid across API workers
"""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Iterable, Protocol

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import LockError
from redis.exceptions import TimeoutError as RedisTimeoutError

from agenda.errors import ConflictError, UpstreamError
from shared.config import Settings

logger = logging.getLogger(__name__)

REDIS_KEY_PREFIX = "agenda:slot-lock:"


def _busy_error(key: str) -> ConflictError:
    return ConflictError(
        "Este horário está sendo reservado por outra solicitação. Tente novamente.",
        error_code="SLOT_BUSY",
        details={"slot": key},
    )


class SlotLockManager(Protocol):
    def acquire(self, key: str) -> AbstractAsyncContextManager[None]:
        """Async context manager holding the lock for `key`."""
        ...


class InMemorySlotLockManager:
    """
    One asyncio.Lock per slot key, dropped when no request holds or awaits it.

    Usage:
        locks = InMemorySlotLockManager(wait_seconds=15)
        async with locks.acquire("2026-03-14T10"):
            ...
    """

    def __init__(self, wait_seconds: float = 15.0):
        self.wait_seconds = wait_seconds
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @property
    def active_keys(self) -> list[str]:
        return list(self._locks)

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.wait_seconds)
            except TimeoutError:
                logger.warning(f"Timed out waiting for slot lock | slot={key}", extra={"slot": key})
                raise _busy_error(key) from None

            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]


class RedisSlotLockManager:
    """
    Distributed slot lock on top of redis-py's Lock (SET NX PX + token check).

    The lock expires after ttl_seconds so a crashed worker cannot hold a
    slot forever.
    """

    def __init__(self, client, wait_seconds: float = 15.0, ttl_seconds: float = 60.0):
        self.client = client
        self.wait_seconds = wait_seconds
        self.ttl_seconds = ttl_seconds

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        lock = self.client.lock(
            f"{REDIS_KEY_PREFIX}{key}",
            timeout=self.ttl_seconds,
            blocking_timeout=self.wait_seconds,
        )
        try:
            acquired = await lock.acquire()
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            logger.error(f"Redis unavailable for slot lock | slot={key}: {e}")
            raise UpstreamError(
                "Serviço de bloqueio de horários indisponível",
                details={"slot": key},
                original_error=e,
            ) from e

        if not acquired:
            logger.warning(f"Timed out waiting for slot lock | slot={key}", extra={"slot": key})
            raise _busy_error(key)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # TTL expired while the request was still running
                logger.warning(f"Slot lock already released | slot={key}: {e}")


@asynccontextmanager
async def acquire_all(locks: SlotLockManager, keys: Iterable[str]) -> AsyncIterator[None]:
    """
    Hold the locks of several keys at once.

    Keys are taken in sorted order, so two requests sharing keys always
    queue on the same first key. A busy key releases those already held.

    Usage:
        async with acquire_all(locks, slot.lock_keys):
            ...
    """
    async with AsyncExitStack() as stack:
        for key in sorted(set(keys)):
            await stack.enter_async_context(locks.acquire(key))
        yield


def build_slot_lock_manager(settings: Settings) -> SlotLockManager:
    """Lock backend selected by SLOT_LOCK_BACKEND."""
    if settings.SLOT_LOCK_BACKEND == "redis":
        from shared.redis_client import get_redis_client

        return RedisSlotLockManager(
            get_redis_client(settings.REDIS_URL),
            wait_seconds=settings.SLOT_LOCK_WAIT_SECONDS,
            ttl_seconds=settings.SLOT_LOCK_TTL_SECONDS,
        )
    return InMemorySlotLockManager(wait_seconds=settings.SLOT_LOCK_WAIT_SECONDS)
