"""
Read access to addresses and products.

Addresses and products are owned by the storefront's CRUD layer; the sagas
only read them. ``add_address`` and ``add_product`` exist for seeding.
"""

import asyncio
from collections.abc import Iterable
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from orderflow.models import Address, Product
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import ATTR_DB_OPERATION, ATTR_DB_SYSTEM
from orderflow.repositories._connection import dialect_name, execute_with_connection
from orderflow.repositories.schema import addresses, products
from orderflow.types import FlavorType


@runtime_checkable
class CatalogRepository(Protocol):
    """Protocol for address and product lookups."""

    async def get_address(self, address_id: UUID) -> Address | None:
        """Return the address, or None if it does not exist."""
        ...

    async def get_active_products(self, product_ids: Iterable[UUID]) -> list[Product]:
        """
        Return the active products among ``product_ids``.

        Unknown and inactive ids are silently absent from the result.
        """
        ...

    async def add_address(self, address: Address) -> Address: ...

    async def add_product(self, product: Product) -> Product: ...


class InMemoryCatalogRepository:
    """In-memory catalog for tests and development."""

    def __init__(self) -> None:
        self._addresses: dict[UUID, Address] = {}
        self._products: dict[UUID, Product] = {}
        self._lock = asyncio.Lock()

    async def get_address(self, address_id: UUID) -> Address | None:
        return self._addresses.get(address_id)

    async def get_active_products(self, product_ids: Iterable[UUID]) -> list[Product]:
        wanted = set(product_ids)
        return [p for pid, p in self._products.items() if pid in wanted and p.active]

    async def add_address(self, address: Address) -> Address:
        async with self._lock:
            self._addresses[address.id] = address
        return address

    async def add_product(self, product: Product) -> Product:
        async with self._lock:
            self._products[product.id] = product
        return product


class SQLAlchemyCatalogRepository:
    """
    Catalog backed by the ``addresses`` and ``products`` tables.

    Works with PostgreSQL and SQLite engines.
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.conn = conn
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def get_address(self, address_id: UUID) -> Address | None:
        with self._tracer.span(
            "orderflow.repository.get_address",
            {ATTR_DB_SYSTEM: dialect_name(self.conn), ATTR_DB_OPERATION: "SELECT"},
        ):
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(select(addresses).where(addresses.c.id == address_id))
                row = result.mappings().first()
        return _address_from_row(row) if row else None

    async def get_active_products(self, product_ids: Iterable[UUID]) -> list[Product]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return []
        with self._tracer.span(
            "orderflow.repository.get_active_products",
            {ATTR_DB_SYSTEM: dialect_name(self.conn), ATTR_DB_OPERATION: "SELECT"},
        ):
            async with execute_with_connection(self.conn, transactional=False) as conn:
                result = await conn.execute(
                    select(products).where(products.c.id.in_(ids), products.c.active.is_(True))
                )
                rows = result.mappings().all()
        return [_product_from_row(row) for row in rows]

    async def add_address(self, address: Address) -> Address:
        async with execute_with_connection(self.conn) as conn:
            await conn.execute(insert(addresses).values(**address.model_dump()))
        return address

    async def add_product(self, product: Product) -> Product:
        values = product.model_dump()
        values["flavor_type"] = product.flavor_type.value
        async with execute_with_connection(self.conn) as conn:
            await conn.execute(insert(products).values(**values))
        return product


def _address_from_row(row: Any) -> Address:
    return Address(
        id=row["id"],
        user_id=row["user_id"],
        recipient_name=row["recipient_name"],
        line1=row["line1"],
        line2=row["line2"],
        city=row["city"],
        state=row["state"],
        postal_code=row["postal_code"],
        country=row["country"],
        phone=row["phone"],
        is_po_box=bool(row["is_po_box"]),
    )


def _product_from_row(row: Any) -> Product:
    price = row["price"]
    return Product(
        id=row["id"],
        sku=row["sku"],
        name=row["name"],
        flavor_type=FlavorType(row["flavor_type"]),
        nicotine_mg=Decimal(row["nicotine_mg"]),
        net_weight_grams=Decimal(row["net_weight_grams"]),
        price=Decimal(price) if price is not None else None,
        ca_utl_approved=bool(row["ca_utl_approved"]),
        sensory_cooling=bool(row["sensory_cooling"]),
        active=bool(row["active"]),
    )


__all__ = [
    "CatalogRepository",
    "InMemoryCatalogRepository",
    "SQLAlchemyCatalogRepository",
]
