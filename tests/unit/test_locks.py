"""
Unit tests for the keyed lock managers and lock key helpers.
"""

import asyncio
from datetime import date
from uuid import UUID

import pytest

from orderflow.locks import (
    InMemoryLockManager,
    LockAcquisitionError,
    LockManager,
    PostgreSQLLockManager,
    order_lock_key,
    report_lock_key,
)
from orderflow.observability import MockTracer


class TestLockKeys:
    def test_order_lock_key(self):
        order_id = UUID("12345678-1234-5678-1234-567812345678")

        assert order_lock_key(order_id) == "order:12345678-1234-5678-1234-567812345678"

    def test_report_lock_key(self):
        key = report_lock_key("CA", date(2026, 1, 1), date(2026, 1, 31))

        assert key == "report:CA:2026-01-01:2026-01-31"

    def test_advisory_lock_id_is_stable_and_positive(self):
        first = PostgreSQLLockManager.key_to_lock_id("order:1")

        assert first == PostgreSQLLockManager.key_to_lock_id("order:1")
        assert first != PostgreSQLLockManager.key_to_lock_id("order:2")
        assert 0 <= first < 2**63


class TestInMemoryLockManager:
    @pytest.fixture
    def locks(self) -> InMemoryLockManager:
        return InMemoryLockManager(holder_id="worker-1", enable_tracing=False)

    def test_implements_protocol(self, locks):
        assert isinstance(locks, LockManager)

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, locks):
        async with locks.acquire("order:1", timeout=1.0) as info:
            assert info.key == "order:1"
            assert info.holder_id == "worker-1"
            assert await locks.is_held("order:1")
            assert locks.held_lock_count == 1

        assert not await locks.is_held("order:1")
        assert locks.held_lock_count == 0

    @pytest.mark.asyncio
    async def test_timeout_raises(self, locks):
        async with locks.acquire("order:1"):
            with pytest.raises(LockAcquisitionError) as exc_info:
                async with locks.acquire("order:1", timeout=0.01):
                    pytest.fail("lock should not be acquired twice")

        assert exc_info.value.key == "order:1"
        assert exc_info.value.timeout == 0.01
        assert not await locks.is_held("order:1")

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_contend(self, locks):
        async with locks.acquire("order:1"):
            async with locks.acquire("order:2", timeout=0.01):
                assert locks.held_lock_count == 2

    @pytest.mark.asyncio
    async def test_waiters_run_one_at_a_time(self, locks):
        active = 0
        peak = 0

        async def critical_section() -> None:
            nonlocal active, peak
            async with locks.acquire("report:CA:2026-01-01:2026-01-31", timeout=1.0):
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.001)
                active -= 1

        await asyncio.gather(*(critical_section() for _ in range(5)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_released_when_body_raises(self, locks):
        with pytest.raises(RuntimeError):
            async with locks.acquire("order:1"):
                raise RuntimeError("step failed")

        assert not await locks.is_held("order:1")

    @pytest.mark.asyncio
    async def test_acquire_is_traced(self):
        tracer = MockTracer()
        locks = InMemoryLockManager(tracer=tracer)

        async with locks.acquire("order:1", timeout=2.0):
            pass

        assert tracer.span_names == ["orderflow.lock.acquire"]
