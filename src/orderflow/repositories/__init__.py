"""
Repositories for orderflow.

Each repository is a Protocol with an in-memory implementation for tests and
a SQLAlchemy Core implementation that works on PostgreSQL and SQLite.

Example:
    >>> from sqlalchemy.ext.asyncio import create_async_engine
    >>> from orderflow.repositories import SQLAlchemyOrderRepository, create_schema
    >>>
    >>> engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    >>> await create_schema(engine)
    >>> orders = SQLAlchemyOrderRepository(engine)
"""

from orderflow.repositories._connection import execute_with_connection
from orderflow.repositories.audit import (
    AuditLogRepository,
    InMemoryAuditLogRepository,
    SQLAlchemyAuditLogRepository,
)
from orderflow.repositories.catalog import (
    CatalogRepository,
    InMemoryCatalogRepository,
    SQLAlchemyCatalogRepository,
)
from orderflow.repositories.orders import (
    InMemoryOrderRepository,
    OrderBundle,
    OrderRepository,
    ShippedOrder,
    SQLAlchemyOrderRepository,
)
from orderflow.repositories.reconciliation import (
    InMemoryReconciliationRepository,
    ReconciliationRepository,
    SQLAlchemyReconciliationRepository,
)
from orderflow.repositories.reports import (
    InMemoryReportRepository,
    ReportRepository,
    SQLAlchemyReportRepository,
    report_key,
)
from orderflow.repositories.schema import create_schema, drop_schema, metadata

__all__ = [
    # Audit
    "AuditLogRepository",
    "InMemoryAuditLogRepository",
    "SQLAlchemyAuditLogRepository",
    # Catalog
    "CatalogRepository",
    "InMemoryCatalogRepository",
    "SQLAlchemyCatalogRepository",
    # Orders
    "InMemoryOrderRepository",
    "OrderBundle",
    "OrderRepository",
    "SQLAlchemyOrderRepository",
    "ShippedOrder",
    # Reconciliation
    "InMemoryReconciliationRepository",
    "ReconciliationRepository",
    "SQLAlchemyReconciliationRepository",
    # Reports
    "InMemoryReportRepository",
    "ReportRepository",
    "SQLAlchemyReportRepository",
    "report_key",
    # Schema
    "create_schema",
    "drop_schema",
    "execute_with_connection",
    "metadata",
]
