"""
PostgreSQL advisory locks for multi-process deployments.

Advisory locks are session-level: each held lock keeps its own connection
checked out of the pool until released. Closing the connection releases the
lock, so a crashed worker never leaves an order locked.

Usage:
    >>> locks = PostgreSQLLockManager(engine)
    >>> async with locks.acquire(order_lock_key(order_id), timeout=10.0):
    ...     await saga.ship(order_id, principal)
"""

import asyncio
import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from orderflow.locks.base import LockAcquisitionError, LockInfo
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import ATTR_LOCK_KEY

logger = logging.getLogger(__name__)


class PostgreSQLLockManager:
    """
    Keyed exclusive locks backed by ``pg_advisory_lock``.

    With a timeout the manager polls ``pg_try_advisory_lock`` every
    ``retry_interval`` seconds until the deadline; without one it blocks in
    ``pg_advisory_lock``.

    Note:
        Each held lock uses a dedicated connection. Size the pool for the
        number of concurrent fulfillments you expect.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        holder_id: str | None = None,
        retry_interval: float = 0.1,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ):
        """
        Initialize the lock manager.

        Args:
            engine: Async engine connected to PostgreSQL
            holder_id: Optional identifier for this lock holder (for debugging)
            retry_interval: Seconds between attempts while waiting with a timeout
            tracer: Optional custom Tracer instance
            enable_tracing: Whether to enable OpenTelemetry tracing.
                          Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._engine = engine
        self._holder_id = holder_id
        self._retry_interval = retry_interval
        self._held: dict[str, int] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def key_to_lock_id(key: str) -> int:
        """
        Map a string key to a positive 63-bit advisory lock id.

        PostgreSQL bigint is signed, so the first 8 bytes of the SHA-256
        digest are masked to 63 bits.
        """
        digest = hashlib.sha256(key.encode()).digest()
        return int.from_bytes(digest[:8], byteorder="big") & 0x7FFFFFFFFFFFFFFF

    @asynccontextmanager
    async def acquire(self, key: str, *, timeout: float | None = None) -> AsyncIterator[LockInfo]:
        """
        Hold the advisory lock for ``key`` for the duration of the context.

        Raises:
            LockAcquisitionError: If the lock cannot be acquired within timeout
                or the database fails while acquiring
        """
        lock_id = self.key_to_lock_id(key)

        with self._tracer.span(
            "orderflow.lock.acquire",
            {
                ATTR_LOCK_KEY: key,
                "lock.id": lock_id,
                "lock.timeout": timeout if timeout is not None else -1,
            },
        ):
            conn = await self._acquire_lock(key, lock_id, timeout)

        async with self._lock:
            self._held[key] = lock_id
        logger.debug("Acquired advisory lock: key=%s, lock_id=%d", key, lock_id)

        try:
            yield LockInfo(
                key=key,
                lock_id=lock_id,
                acquired_at=datetime.now(UTC),
                holder_id=self._holder_id,
            )
        finally:
            await self._release_lock(key, conn, lock_id)

    async def _acquire_lock(
        self,
        key: str,
        lock_id: int,
        timeout: float | None,
    ) -> AsyncConnection:
        conn = await self._engine.connect()
        try:
            if timeout is None:
                await conn.execute(text("SELECT pg_advisory_lock(:lock_id)"), {"lock_id": lock_id})
                await conn.commit()
                return conn

            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            while True:
                result = await conn.execute(
                    text("SELECT pg_try_advisory_lock(:lock_id)"), {"lock_id": lock_id}
                )
                acquired = result.scalar()
                await conn.commit()
                if acquired:
                    return conn
                if loop.time() >= deadline:
                    raise LockAcquisitionError(
                        key=key,
                        reason=f"Timeout after {timeout}s",
                        timeout=timeout,
                    )
                await asyncio.sleep(self._retry_interval)
        except LockAcquisitionError:
            await conn.close()
            raise
        except SQLAlchemyError as e:
            await conn.close()
            raise LockAcquisitionError(key=key, reason=f"Database error: {e}") from e

    async def _release_lock(self, key: str, conn: AsyncConnection, lock_id: int) -> None:
        with self._tracer.span(
            "orderflow.lock.release",
            {ATTR_LOCK_KEY: key, "lock.id": lock_id},
        ):
            try:
                await conn.execute(
                    text("SELECT pg_advisory_unlock(:lock_id)"), {"lock_id": lock_id}
                )
                await conn.commit()
                logger.debug("Released advisory lock: key=%s, lock_id=%d", key, lock_id)
            except SQLAlchemyError as e:
                # Closing the connection below releases the lock server-side.
                logger.warning("Error releasing advisory lock: key=%s, error=%s", key, e)
            finally:
                async with self._lock:
                    self._held.pop(key, None)
                await conn.close()

    async def is_held(self, key: str) -> bool:
        async with self._lock:
            return key in self._held

    @property
    def held_lock_count(self) -> int:
        return len(self._held)


__all__ = ["PostgreSQLLockManager"]
