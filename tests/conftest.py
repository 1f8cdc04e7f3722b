"""
Shared pytest fixtures for the orderflow tests.

This module provides:
- The in-memory test harness (harness, admin, customer)
- Seeded catalog fixtures (ny_address, ca_address, tobacco_product)
- SQLite fixtures (sqlite_engine) for the SQLAlchemy repositories
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio

from orderflow.models import Address, Principal, Product
from orderflow.testing import OrderFlowTestHarness

# ============================================================================
# SQLite Availability Check
# ============================================================================

AIOSQLITE_AVAILABLE = False
try:
    import aiosqlite  # noqa: F401

    AIOSQLITE_AVAILABLE = True
except ImportError:
    pass


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")
    config.addinivalue_line("markers", "e2e: end-to-end order lifecycle scenarios")


skip_if_no_aiosqlite = pytest.mark.skipif(not AIOSQLITE_AVAILABLE, reason="aiosqlite not installed")


# ============================================================================
# Harness Fixtures
# ============================================================================


@pytest.fixture
def harness() -> OrderFlowTestHarness:
    """A fresh harness per test. Clock frozen at 2026-01-15 12:00 UTC."""
    return OrderFlowTestHarness()


@pytest.fixture
def admin() -> Principal:
    return OrderFlowTestHarness.admin()


@pytest.fixture
def customer() -> Principal:
    return OrderFlowTestHarness.customer()


@pytest_asyncio.fixture
async def ny_address(harness: OrderFlowTestHarness) -> Address:
    return await harness.add_address(state="NY")


@pytest_asyncio.fixture
async def ca_address(harness: OrderFlowTestHarness) -> Address:
    return await harness.add_address(
        state="CA", line1="500 Sunset Blvd", city="Los Angeles", postal_code="90028"
    )


@pytest_asyncio.fixture
async def tobacco_product(harness: OrderFlowTestHarness) -> Product:
    """Tobacco-flavor, pre-approved product priced at 29.99."""
    return await harness.add_product(
        sku="TOB-001",
        price=Decimal("29.99"),
        net_weight_grams=Decimal("15"),
        ca_utl_approved=True,
    )


# ============================================================================
# SQLite Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[Any, None]:
    """
    Provide an async SQLAlchemy engine on a fresh in-memory SQLite database
    with the orderflow schema created.

    A StaticPool keeps the single in-memory database alive across
    connections.
    """
    if not AIOSQLITE_AVAILABLE:
        pytest.skip("aiosqlite not installed")

    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool

    from orderflow.repositories import create_schema

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_schema(engine)
    yield engine
    await engine.dispose()
