"""
Process-local keyed locks.

Suitable when a single process runs the sagas (tests, development, a single
worker). Use ``PostgreSQLLockManager`` when several processes share a
database.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from orderflow.locks.base import LockAcquisitionError, LockInfo
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import ATTR_LOCK_KEY

logger = logging.getLogger(__name__)


class InMemoryLockManager:
    """
    Keyed ``asyncio.Lock`` registry.

    Locks are created on first use and dropped once no task holds or waits
    for them.

    Example:
        >>> locks = InMemoryLockManager()
        >>> async with locks.acquire("order:42", timeout=5.0):
        ...     await do_work()
    """

    def __init__(
        self,
        *,
        holder_id: str | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._holder_id = holder_id
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def acquire(self, key: str, *, timeout: float | None = None) -> AsyncIterator[LockInfo]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            with self._tracer.span(
                "orderflow.lock.acquire",
                {ATTR_LOCK_KEY: key, "lock.timeout": timeout if timeout is not None else -1},
            ):
                try:
                    await asyncio.wait_for(lock.acquire(), timeout=timeout)
                except TimeoutError as e:
                    raise LockAcquisitionError(
                        key=key,
                        reason=f"Timeout after {timeout}s",
                        timeout=timeout,
                    ) from e

            logger.debug("Acquired lock: key=%s", key)
            try:
                yield LockInfo(
                    key=key,
                    lock_id=0,
                    acquired_at=datetime.now(UTC),
                    holder_id=self._holder_id,
                )
            finally:
                lock.release()
                logger.debug("Released lock: key=%s", key)
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    async def is_held(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @property
    def held_lock_count(self) -> int:
        return sum(1 for lock in self._locks.values() if lock.locked())


__all__ = ["InMemoryLockManager"]
