"""
Integration tests against a real PostgreSQL database.

These tests verify:
- Advisory lock acquisition, exclusion and timeout
- Order bundles with foreign keys enforced
- Report generation serialized through advisory locks
"""

from __future__ import annotations

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from orderflow.audit import SideChannel
from orderflow.bus import InMemoryEventBus
from orderflow.config import OrderFlowConfig
from orderflow.locks import LockAcquisitionError, PostgreSQLLockManager
from orderflow.models import Principal, Product
from orderflow.reports import RegulatoryReportGenerator
from orderflow.repositories import (
    SQLAlchemyAuditLogRepository,
    SQLAlchemyCatalogRepository,
    SQLAlchemyOrderRepository,
    SQLAlchemyReportRepository,
)
from orderflow.testing import FakeObjectStorage
from orderflow.types import OrderStatus, Role
from tests.fixtures import FIXED_NOW, make_address, make_bundle, make_item, make_order

pytestmark = [pytest.mark.integration, pytest.mark.postgres]

JANUARY = (date(2026, 1, 1), date(2026, 1, 31))


@pytest_asyncio.fixture
async def lock_manager(postgres_engine) -> PostgreSQLLockManager:
    return PostgreSQLLockManager(postgres_engine, holder_id="worker-1", enable_tracing=False)


@pytest_asyncio.fixture
async def second_lock_manager(postgres_engine) -> PostgreSQLLockManager:
    return PostgreSQLLockManager(
        postgres_engine, holder_id="worker-2", retry_interval=0.05, enable_tracing=False
    )


class TestAdvisoryLocks:
    @pytest.mark.asyncio
    async def test_acquire_and_release(self, lock_manager):
        async with lock_manager.acquire("order:1") as info:
            assert info.key == "order:1"
            assert info.holder_id == "worker-1"
            assert await lock_manager.is_held("order:1")

        assert not await lock_manager.is_held("order:1")
        assert lock_manager.held_lock_count == 0

    @pytest.mark.asyncio
    async def test_second_holder_times_out(self, lock_manager, second_lock_manager):
        async with lock_manager.acquire("order:2"):
            with pytest.raises(LockAcquisitionError) as exc_info:
                async with second_lock_manager.acquire("order:2", timeout=0.2):
                    pass

        assert exc_info.value.key == "order:2"
        assert exc_info.value.timeout == 0.2

    @pytest.mark.asyncio
    async def test_lock_available_after_release(self, lock_manager, second_lock_manager):
        async with lock_manager.acquire("order:3"):
            pass

        async with second_lock_manager.acquire("order:3", timeout=1.0) as info:
            assert info.holder_id == "worker-2"

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_block(self, lock_manager, second_lock_manager):
        async with lock_manager.acquire("order:4"):
            async with second_lock_manager.acquire("order:5", timeout=0.2):
                assert await second_lock_manager.is_held("order:5")


class TestOrdersWithForeignKeys:
    @pytest.mark.asyncio
    async def test_bundle_with_seeded_catalog(self, postgres_engine):
        catalog = SQLAlchemyCatalogRepository(postgres_engine, enable_tracing=False)
        orders = SQLAlchemyOrderRepository(postgres_engine, enable_tracing=False)
        address = await catalog.add_address(make_address())
        product = await catalog.add_product(
            Product(sku="TOB-001", name="Classic Tobacco Pouches", price=Decimal("29.99"))
        )
        order = make_order(address.id, items=(make_item(product_id=product.id),))

        await orders.create_order_bundle(make_bundle(order))

        stored = await orders.get_order(order.id)
        assert stored.status is OrderStatus.PAID
        assert stored.created_at == FIXED_NOW
        assert [item.product_id for item in stored.items] == [product.id]


class TestReportGeneration:
    @pytest.mark.asyncio
    async def test_concurrent_requests_write_once(self, postgres_engine):
        catalog = SQLAlchemyCatalogRepository(postgres_engine, enable_tracing=False)
        orders = SQLAlchemyOrderRepository(postgres_engine, enable_tracing=False)
        address = await catalog.add_address(
            make_address(state="CA", city="Los Angeles", postal_code="90028")
        )
        product = await catalog.add_product(
            Product(sku="TOB-001", name="Classic Tobacco Pouches", price=Decimal("29.99"))
        )
        order = make_order(address.id, items=(make_item(product_id=product.id),))
        await orders.create_order_bundle(make_bundle(order))
        await orders.mark_order_shipped(
            order.id,
            carrier="UPS",
            tracking_number="1Z999AA10000000042",
            label_url=None,
            label_file_key=None,
            shipped_at=FIXED_NOW,
        )

        config = OrderFlowConfig()
        storage = FakeObjectStorage(config.storage_bucket)
        generator = RegulatoryReportGenerator(
            orders=orders,
            reports=SQLAlchemyReportRepository(postgres_engine, enable_tracing=False),
            storage=storage,
            locks=PostgreSQLLockManager(postgres_engine, enable_tracing=False),
            side_channel=SideChannel(
                SQLAlchemyAuditLogRepository(postgres_engine, enable_tracing=False),
                InMemoryEventBus(enable_tracing=False),
                background=False,
                enable_tracing=False,
            ),
            config=config,
            clock=lambda: FIXED_NOW,
            enable_tracing=False,
        )
        admin = Principal(user_id=uuid4(), role=Role.ADMIN)

        results = await asyncio.gather(
            generator.generate("CA", *JANUARY, admin),
            generator.generate("CA", *JANUARY, admin),
        )

        assert sorted(r.reused for r in results) == [False, True]
        assert results[0].report.id == results[1].report.id
        assert len(storage.puts) == 1
