"""
Relational schema for the order lifecycle.

Defined with SQLAlchemy Core so the same tables work on PostgreSQL
(asyncpg) and SQLite (aiosqlite). Enum columns store the enum ``value``.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.ext.asyncio import AsyncEngine

metadata = MetaData()

MONEY = Numeric(12, 2)
GRAMS = Numeric(12, 3)

addresses = Table(
    "addresses",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("user_id", Uuid, nullable=True),
    Column("recipient_name", String(255), nullable=False),
    Column("line1", String(255), nullable=False),
    Column("line2", String(255), nullable=True),
    Column("city", String(128), nullable=False),
    Column("state", String(8), nullable=False),
    Column("postal_code", String(16), nullable=False),
    Column("country", String(2), nullable=False, default="US"),
    Column("phone", String(32), nullable=True),
    Column("is_po_box", Boolean, nullable=False, default=False),
)

products = Table(
    "products",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("sku", String(64), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("flavor_type", String(16), nullable=False),
    Column("nicotine_mg", Numeric(8, 2), nullable=False),
    Column("net_weight_grams", GRAMS, nullable=False),
    Column("price", MONEY, nullable=True),
    Column("ca_utl_approved", Boolean, nullable=False, default=False),
    Column("sensory_cooling", Boolean, nullable=False, default=False),
    Column("active", Boolean, nullable=False, default=True),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("user_id", Uuid, nullable=True),
    Column("shipping_address_id", Uuid, ForeignKey("addresses.id"), nullable=False),
    Column("billing_address_id", Uuid, ForeignKey("addresses.id"), nullable=False),
    Column("status", String(16), nullable=False),
    Column("subtotal", MONEY, nullable=False),
    Column("tax_amount", MONEY, nullable=False),
    Column("excise_tax_amount", MONEY, nullable=False),
    Column("total_amount", MONEY, nullable=False),
    Column("carrier", String(32), nullable=True),
    Column("tracking_number", String(64), nullable=True),
    Column("shipped_at", DateTime(timezone=True), nullable=True),
    Column("label_url", Text, nullable=True),
    Column("label_file_key", String(512), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_orders_status_shipped_at", "status", "shipped_at"),
)

order_items = Table(
    "order_items",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("order_id", Uuid, ForeignKey("orders.id"), nullable=False, index=True),
    Column("position", Integer, nullable=False),
    Column("product_id", Uuid, nullable=False),
    Column("sku", String(64), nullable=False),
    Column("product_name", String(255), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", MONEY, nullable=False),
    Column("net_weight_grams", GRAMS, nullable=False),
)

payments = Table(
    "payments",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("order_id", Uuid, ForeignKey("orders.id"), nullable=False, index=True),
    Column("provider", String(32), nullable=False),
    Column("status", String(16), nullable=False),
    Column("amount", MONEY, nullable=False),
    Column("transaction_id", String(64), nullable=False),
    Column("capture_transaction_id", String(64), nullable=True),
    Column("avs_result", String(8), nullable=True),
    Column("cvv_result", String(8), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("captured_at", DateTime(timezone=True), nullable=True),
)

compliance_snapshots = Table(
    "compliance_snapshots",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("order_id", Uuid, ForeignKey("orders.id"), nullable=False, unique=True),
    Column("shipping_state", String(8), nullable=False),
    Column("age_verification_check", String(8), nullable=False),
    Column("ca_flavor_check", String(8), nullable=False),
    Column("ca_sensory_check", String(8), nullable=False),
    Column("ca_utl_check", String(8), nullable=False),
    Column("po_box_check", String(8), nullable=False),
    Column("stake_call_required", Boolean, nullable=False),
    Column("final_decision", String(8), nullable=False),
    Column("reason_codes", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

age_verifications = Table(
    "age_verifications",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("order_id", Uuid, ForeignKey("orders.id"), nullable=False, unique=True),
    Column("provider", String(32), nullable=False),
    Column("status", String(8), nullable=False),
    Column("reference_id", String(128), nullable=False),
    Column("reason_code", String(64), nullable=True),
    Column("verified_at", DateTime(timezone=True), nullable=False),
)

stake_calls = Table(
    "stake_calls",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("order_id", Uuid, ForeignKey("orders.id"), nullable=False, index=True),
    Column("admin_user_id", Uuid, nullable=False),
    Column("notes", Text, nullable=False),
    Column("called_at", DateTime(timezone=True), nullable=False),
)

files = Table(
    "files",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("bucket", String(128), nullable=False),
    Column("key", String(512), nullable=False),
    Column("content_type", String(128), nullable=False),
    Column("size_bytes", Integer, nullable=False),
    Column("sha256", String(64), nullable=False),
    Column("created_by_user_id", Uuid, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

regulatory_reports = Table(
    "regulatory_reports",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("jurisdiction", String(8), nullable=False),
    Column("period_start", Date, nullable=False),
    Column("period_end", Date, nullable=False),
    Column("file_id", Uuid, ForeignKey("files.id"), nullable=False),
    Column("order_count", Integer, nullable=False),
    Column("row_count", Integer, nullable=False),
    Column("generated_by_user_id", Uuid, nullable=True),
    Column("generated_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint(
        "jurisdiction", "period_start", "period_end", name="uq_regulatory_reports_key"
    ),
)

audit_events = Table(
    "audit_events",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("actor_user_id", Uuid, nullable=True),
    Column("actor_type", String(16), nullable=False),
    Column("action", String(32), nullable=False),
    Column("entity_type", String(16), nullable=False),
    Column("entity_id", String(64), nullable=True),
    Column("result", String(16), nullable=False),
    Column("reason_code", Text, nullable=True),
    Column("metadata", JSON, nullable=False),
    Column("occurred_at", DateTime(timezone=True), nullable=False),
    Index("ix_audit_events_entity", "entity_type", "entity_id"),
)

reconciliation_cases = Table(
    "reconciliation_cases",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("kind", String(32), nullable=False),
    Column("order_id", Uuid, nullable=True, index=True),
    Column("transaction_id", String(64), nullable=True),
    Column("amount", MONEY, nullable=True),
    Column("reason_code", String(128), nullable=True),
    Column("details", JSON, nullable=False),
    Column("opened_at", DateTime(timezone=True), nullable=False),
    Column("resolved_at", DateTime(timezone=True), nullable=True),
    Column("resolved_by_user_id", Uuid, nullable=True),
    Column("resolution_notes", Text, nullable=True),
)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


async def drop_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


__all__ = [
    "addresses",
    "age_verifications",
    "audit_events",
    "compliance_snapshots",
    "create_schema",
    "drop_schema",
    "files",
    "metadata",
    "order_items",
    "orders",
    "payments",
    "products",
    "reconciliation_cases",
    "regulatory_reports",
    "stake_calls",
]
