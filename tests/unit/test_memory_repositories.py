"""
Unit tests for the in-memory repositories.

The SQLAlchemy implementations are covered against SQLite in
tests/integration/test_sqlite_repositories.py.
"""

from datetime import UTC, date, datetime, timedelta
from uuid import uuid4

import pytest

from orderflow.exceptions import (
    OrderNotFoundError,
    ReconciliationCaseNotFoundError,
    ReconciliationCaseResolvedError,
    WriteOnceViolationError,
)
from orderflow.models import AuditEvent, StakeCall
from orderflow.repositories import (
    AuditLogRepository,
    CatalogRepository,
    InMemoryAuditLogRepository,
    InMemoryCatalogRepository,
    InMemoryOrderRepository,
    InMemoryReconciliationRepository,
    InMemoryReportRepository,
    OrderRepository,
    ReconciliationRepository,
    ReportRepository,
)
from orderflow.types import (
    AuditAction,
    AuditEntityType,
    AuditResult,
    OrderStatus,
    PaymentStatus,
    ReconciliationKind,
)
from tests.fixtures import (
    FIXED_NOW,
    make_address,
    make_bundle,
    make_case,
    make_order,
    make_payment,
    make_report,
)


class TestProtocols:
    def test_in_memory_implementations(self):
        catalog = InMemoryCatalogRepository()

        assert isinstance(catalog, CatalogRepository)
        assert isinstance(InMemoryOrderRepository(catalog), OrderRepository)
        assert isinstance(InMemoryReportRepository(), ReportRepository)
        assert isinstance(InMemoryReconciliationRepository(), ReconciliationRepository)
        assert isinstance(InMemoryAuditLogRepository(), AuditLogRepository)


class TestCatalog:
    @pytest.mark.asyncio
    async def test_inactive_products_are_not_returned(self, harness):
        active = await harness.add_product(sku="TOB-001")
        retired = await harness.add_product(sku="TOB-OLD", active=False)

        found = await harness.catalog.get_active_products([active.id, retired.id, uuid4()])

        assert found == [active]

    @pytest.mark.asyncio
    async def test_unknown_address(self):
        assert await InMemoryCatalogRepository().get_address(uuid4()) is None


class TestOrders:
    @pytest.fixture
    def catalog(self) -> InMemoryCatalogRepository:
        return InMemoryCatalogRepository()

    @pytest.fixture
    def orders(self, catalog) -> InMemoryOrderRepository:
        return InMemoryOrderRepository(catalog)

    @pytest.mark.asyncio
    async def test_bundle_is_written_together(self, orders):
        order = make_order()
        bundle = make_bundle(order)

        await orders.create_order_bundle(bundle)

        assert await orders.get_order(order.id) == order
        assert await orders.get_payments(order.id) == [bundle.payment]
        assert await orders.get_compliance_snapshot(order.id) == bundle.compliance_snapshot
        assert await orders.get_age_verification(order.id) == bundle.age_verification

    @pytest.mark.asyncio
    async def test_bundle_is_write_once(self, orders):
        order = make_order()
        await orders.create_order_bundle(make_bundle(order))

        with pytest.raises(WriteOnceViolationError) as exc_info:
            await orders.create_order_bundle(make_bundle(order))

        assert exc_info.value.record_type == "Order"
        assert exc_info.value.key == str(order.id)

    @pytest.mark.asyncio
    async def test_latest_authorized_payment(self, orders):
        order = make_order()
        await orders.put_order(order)
        declined = make_payment(order, status=PaymentStatus.FAILED, transaction_id="auth-0")
        older = make_payment(order, transaction_id="auth-1")
        newer = make_payment(
            order, transaction_id="auth-2", created_at=FIXED_NOW + timedelta(minutes=5)
        )
        for payment in (newer, declined, older):
            await orders.put_payment(payment)

        authorized = await orders.get_authorized_payment(order.id)

        assert authorized == newer

    @pytest.mark.asyncio
    async def test_mark_payment_captured(self, orders):
        order = make_order()
        payment = make_payment(order)
        await orders.put_order(order)
        await orders.put_payment(payment)

        captured = await orders.mark_payment_captured(payment.id, "capture-9", FIXED_NOW)

        assert captured.status is PaymentStatus.CAPTURED
        assert await orders.get_authorized_payment(order.id) is None

    @pytest.mark.asyncio
    async def test_mark_order_shipped(self, orders):
        order = make_order()
        await orders.put_order(order)

        shipped = await orders.mark_order_shipped(
            order.id,
            carrier="UPS",
            tracking_number="1Z999AA10000000001",
            label_url=None,
            label_file_key=None,
            shipped_at=FIXED_NOW,
        )

        assert shipped.status is OrderStatus.SHIPPED
        assert (await orders.get_order(order.id)).tracking_number == "1Z999AA10000000001"

    @pytest.mark.asyncio
    async def test_mark_unknown_order_shipped(self, orders):
        with pytest.raises(OrderNotFoundError):
            await orders.mark_order_shipped(
                uuid4(),
                carrier="UPS",
                tracking_number="1Z",
                label_url=None,
                label_file_key=None,
                shipped_at=FIXED_NOW,
            )

    @pytest.mark.asyncio
    async def test_stake_call_requires_order(self, orders):
        call = StakeCall(order_id=uuid4(), admin_user_id=uuid4(), notes="Confirmed")

        with pytest.raises(OrderNotFoundError):
            await orders.add_stake_call(call)

    @pytest.mark.asyncio
    async def test_shipped_orders_by_jurisdiction(self, orders, catalog):
        ca = await catalog.add_address(make_address(state="ca", city="Los Angeles"))
        ny = await catalog.add_address(make_address(state="NY"))
        late = make_order(
            ca.id,
            status=OrderStatus.SHIPPED,
            carrier="UPS",
            tracking_number="1ZLATE",
            shipped_at=datetime(2026, 1, 20, tzinfo=UTC),
        )
        early = make_order(
            ca.id,
            status=OrderStatus.SHIPPED,
            carrier="UPS",
            tracking_number="1ZEARLY",
            shipped_at=datetime(2026, 1, 5, tzinfo=UTC),
        )
        elsewhere = make_order(
            ny.id,
            status=OrderStatus.SHIPPED,
            carrier="UPS",
            tracking_number="1ZNY",
            shipped_at=datetime(2026, 1, 10, tzinfo=UTC),
        )
        for order in (late, make_order(ca.id), early, elsewhere):
            await orders.put_order(order)

        found = await orders.list_shipped_orders(
            "CA", datetime(2026, 1, 1, tzinfo=UTC), datetime(2026, 1, 31, tzinfo=UTC)
        )

        assert [s.order.id for s in found] == [early.id, late.id]
        assert found[0].shipping_address == ca


class TestReports:
    @pytest.fixture
    def reports(self) -> InMemoryReportRepository:
        return InMemoryReportRepository()

    @pytest.mark.asyncio
    async def test_save_and_get(self, reports):
        report = make_report()

        await reports.save(report)

        assert await reports.get(report.id) == report
        assert await reports.get_by_key("CA", date(2026, 1, 1), date(2026, 1, 31)) == report

    @pytest.mark.asyncio
    async def test_save_is_write_once_per_period(self, reports):
        await reports.save(make_report())

        with pytest.raises(WriteOnceViolationError) as exc_info:
            await reports.save(make_report())

        assert exc_info.value.key == "CA:2026-01-01:2026-01-31"
        assert len(reports.reports) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("start", "end", "covered"),
        [
            (date(2026, 1, 1), date(2026, 1, 31), True),
            (date(2026, 1, 10), date(2026, 1, 12), True),
            (date(2025, 12, 31), date(2026, 1, 31), False),
            (date(2026, 1, 1), date(2026, 2, 1), False),
        ],
    )
    async def test_find_covering(self, reports, start, end, covered):
        report = await reports.save(make_report())

        found = await reports.find_covering("CA", start, end)

        assert (found == report) is covered

    @pytest.mark.asyncio
    async def test_find_covering_is_per_jurisdiction(self, reports):
        await reports.save(make_report("CA"))

        assert await reports.find_covering("NY", date(2026, 1, 1), date(2026, 1, 31)) is None

    @pytest.mark.asyncio
    async def test_find_covering_prefers_most_recent(self, reports):
        await reports.save(make_report(period_start=date(2026, 1, 1)))
        newer = await reports.save(
            make_report(
                period_start=date(2025, 12, 1),
                generated_at=FIXED_NOW + timedelta(days=1),
            )
        )

        found = await reports.find_covering("CA", date(2026, 1, 5), date(2026, 1, 6))

        assert found == newer


class TestReconciliation:
    @pytest.fixture
    def cases(self) -> InMemoryReconciliationRepository:
        return InMemoryReconciliationRepository()

    @pytest.mark.asyncio
    async def test_open_and_list(self, cases):
        later = make_case(opened_at=FIXED_NOW + timedelta(minutes=1))
        earlier = make_case(ReconciliationKind.AUTHORIZED_NOT_PERSISTED)
        await cases.open_case(later)
        await cases.open_case(earlier)

        assert await cases.list_open() == [earlier, later]
        assert await cases.list_open(limit=1) == [earlier]

    @pytest.mark.asyncio
    async def test_list_open_for_one_order(self, cases):
        order_id = uuid4()
        mine = await cases.open_case(
            make_case(ReconciliationKind.CAPTURED_NOT_PERSISTED, order_id=order_id)
        )
        await cases.open_case(make_case())

        assert await cases.list_open(order_id=order_id) == [mine]

        await cases.resolve(mine.id, uuid4(), "Capture recorded manually")

        assert await cases.list_open(order_id=order_id) == []

    @pytest.mark.asyncio
    async def test_resolve(self, cases):
        case = await cases.open_case(make_case())
        operator = uuid4()

        resolved = await cases.resolve(case.id, operator, "Refunded manually", FIXED_NOW)

        assert not resolved.is_open
        assert resolved.resolved_by_user_id == operator
        assert resolved.resolution_notes == "Refunded manually"
        assert await cases.list_open() == []
        assert await cases.get(case.id) == resolved

    @pytest.mark.asyncio
    async def test_resolve_twice(self, cases):
        case = await cases.open_case(make_case())
        await cases.resolve(case.id, uuid4(), "Refunded")

        with pytest.raises(ReconciliationCaseResolvedError):
            await cases.resolve(case.id, uuid4(), "Again")

    @pytest.mark.asyncio
    async def test_resolve_unknown(self, cases):
        with pytest.raises(ReconciliationCaseNotFoundError):
            await cases.resolve(uuid4(), uuid4(), "Nothing to do")


class TestAuditLog:
    @pytest.fixture
    def audit_log(self) -> InMemoryAuditLogRepository:
        return InMemoryAuditLogRepository()

    @staticmethod
    def event(action: AuditAction, minutes: int, entity_id: str = "order-1") -> AuditEvent:
        return AuditEvent(
            action=action,
            entity_type=AuditEntityType.ORDER,
            entity_id=entity_id,
            result=AuditResult.SUCCESS,
            occurred_at=FIXED_NOW + timedelta(minutes=minutes),
        )

    @pytest.mark.asyncio
    async def test_list_for_entity_is_chronological(self, audit_log):
        shipped = self.event(AuditAction.SHIP_ORDER, 5)
        created = self.event(AuditAction.CREATE_ORDER, 0)
        await audit_log.record(shipped)
        await audit_log.record(created)
        await audit_log.record(self.event(AuditAction.CREATE_ORDER, 1, entity_id="order-2"))

        found = await audit_log.list_for_entity(AuditEntityType.ORDER, "order-1")

        assert found == [created, shipped]

    @pytest.mark.asyncio
    async def test_list_events_newest_first(self, audit_log):
        first = self.event(AuditAction.CREATE_ORDER, 0)
        second = self.event(AuditAction.SHIP_ORDER, 1)
        third = self.event(AuditAction.CREATE_ORDER, 2, entity_id="order-2")
        for event in (first, second, third):
            await audit_log.record(event)

        assert await audit_log.list_events() == [third, second, first]
        assert await audit_log.list_events(action=AuditAction.CREATE_ORDER) == [third, first]
        assert await audit_log.list_events(limit=1) == [third]

    @pytest.mark.asyncio
    async def test_clear(self, audit_log):
        await audit_log.record(self.event(AuditAction.CREATE_ORDER, 0))

        await audit_log.clear()

        assert audit_log.events == []
