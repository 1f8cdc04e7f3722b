"""
Order creation saga.

Takes a cart from submission to a PAID order:

1. resolve_inputs: load addresses and active products
2. verify_age: age verification gateway, fail closed
3. evaluate_compliance: rule engine, BLOCK stops the saga
4. price_order: validate prices and quantities, compute taxes and total
5. authorize_payment: auth-only for the rounded total
6. persist_order: order, payment, snapshot and age record in one commit
7. publish_side_effects: notification and audit, best-effort

No order row exists before step 6. Once the authorization is sent the
remaining steps run to a terminal state even if the caller is cancelled.
"""

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic.alias_generators import to_camel

from orderflow.audit.side_channel import SideChannel
from orderflow.compliance import (
    ComplianceInput,
    ComplianceLineItem,
    ComplianceResult,
    calculate_age,
    derive_check_results,
    evaluate_compliance,
)
from orderflow.config import OrderFlowConfig
from orderflow.events import OrderCreated, ReconciliationOpened
from orderflow.exceptions import (
    ComplianceBlockedError,
    GatewayFailureError,
    InvalidInputError,
    ReconciliationRequiredError,
)
from orderflow.gateways.errors import GatewayError
from orderflow.gateways.interface import (
    AgeVerificationGateway,
    AgeVerificationOutcome,
    AgeVerificationRequest,
    Authorization,
    BillingDetails,
    CardDetails,
    PaymentGateway,
    VerificationAddress,
)
from orderflow.models import (
    Address,
    AgeVerificationRecord,
    AuditEvent,
    ComplianceSnapshot,
    Order,
    OrderItem,
    Payment,
    Principal,
    Product,
    ReconciliationCase,
)
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import (
    ATTR_COMPLIANCE_DECISION,
    ATTR_ITEM_COUNT,
    ATTR_JURISDICTION,
    ATTR_ORDER_ID,
    ATTR_SAGA_NAME,
)
from orderflow.repositories.catalog import CatalogRepository
from orderflow.repositories.orders import OrderBundle, OrderRepository
from orderflow.repositories.reconciliation import ReconciliationRepository
from orderflow.sagas.base import (
    SagaContext,
    SagaRunner,
    SagaStep,
    StepFailed,
    StepResult,
    StepSucceeded,
)
from orderflow.tax import TaxableWeight, TaxCalculation, calculate_taxes, round_money
from orderflow.types import (
    AuditAction,
    AuditEntityType,
    AuditResult,
    ComplianceDecision,
    OrderStatus,
    PaymentStatus,
    ReconciliationKind,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

_DOB_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CARD_NUMBER_PATTERN = re.compile(r"^\d{13,19}$")
_EXPIRATION_PATTERN = re.compile(r"^\d{2}/\d{2}$")
_CVV_PATTERN = re.compile(r"^\d{3,4}$")


def _secret_value(value: Any) -> Any:
    return value.get_secret_value() if isinstance(value, SecretStr) else value


class PaymentInput(BaseModel):
    """
    Card details submitted with the cart.

    Accepted in camelCase (``cardNumber``, ``expirationDate``, ``cvv``) or
    snake_case. Card number and CVV are held as ``SecretStr`` so they never
    show up in reprs or logs.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    card_number: SecretStr
    expiration_date: str
    cvv: SecretStr

    @field_validator("card_number", mode="before")
    @classmethod
    def _validate_card_number(cls, value: Any) -> Any:
        if not isinstance(_secret_value(value), str) or not _CARD_NUMBER_PATTERN.match(
            _secret_value(value)
        ):
            raise ValueError("Card number must be 13-19 digits")
        return value

    @field_validator("expiration_date")
    @classmethod
    def _validate_expiration(cls, value: str) -> str:
        if not _EXPIRATION_PATTERN.match(value):
            raise ValueError("Expiration date must be in MM/YY format")
        return value

    @field_validator("cvv", mode="before")
    @classmethod
    def _validate_cvv(cls, value: Any) -> Any:
        if not isinstance(_secret_value(value), str) or not _CVV_PATTERN.match(
            _secret_value(value)
        ):
            raise ValueError("CVV must be 3-4 digits")
        return value

    def to_card(self) -> CardDetails:
        """Gateway card details with the expiration converted to MMYY."""
        return CardDetails(
            number=self.card_number,
            expiration=self.expiration_date.replace("/", ""),
            cvv=self.cvv,
        )


class CreateOrderItem(BaseModel):
    """One requested line. Quantity is checked by the saga, not here."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    product_id: UUID
    quantity: int


class CreateOrderRequest(BaseModel):
    """
    Cart submission.

    Example:
        >>> request = CreateOrderRequest.model_validate({
        ...     "shippingAddressId": str(address.id),
        ...     "billingAddressId": str(address.id),
        ...     "items": [{"productId": str(product.id), "quantity": 1}],
        ...     "customerFirstName": "Ada",
        ...     "customerLastName": "Lovelace",
        ...     "customerDateOfBirth": "1990-01-15",
        ...     "isFirstTimeRecipient": False,
        ...     "payment": {
        ...         "cardNumber": "4111111111111111",
        ...         "expirationDate": "12/30",
        ...         "cvv": "123",
        ...     },
        ... })
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    shipping_address_id: UUID
    billing_address_id: UUID
    items: tuple[CreateOrderItem, ...] = Field(min_length=1)
    customer_first_name: str = Field(min_length=1)
    customer_last_name: str = Field(min_length=1)
    customer_date_of_birth: date
    is_first_time_recipient: bool = False
    payment: PaymentInput | None = None

    @field_validator("customer_date_of_birth", mode="before")
    @classmethod
    def _validate_dob_format(cls, value: Any) -> Any:
        if isinstance(value, str) and not _DOB_PATTERN.match(value):
            raise ValueError("Date of birth must be in YYYY-MM-DD format")
        return value

    @property
    def product_ids(self) -> list[UUID]:
        """Requested product ids in request order, de-duplicated."""
        return list(dict.fromkeys(item.product_id for item in self.items))


class OrderCreationResult(BaseModel):
    """
    Outcome of a successful checkout.

    Attributes:
        order_id: The new order, always PAID
        status: Order status after creation
        stake_call_required: True if the order cannot ship before a STAKE call
        compliance_snapshot_id: Snapshot written with the order
        payment_transaction_id: Authorization id from the payment gateway
        total_amount: Subtotal plus sales and excise tax
    """

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    status: OrderStatus
    stake_call_required: bool
    compliance_snapshot_id: UUID
    payment_transaction_id: str
    total_amount: Decimal


@dataclass
class CreationContext(SagaContext):
    """State carried between the order creation steps."""

    request: CreateOrderRequest = field(kw_only=True)
    order_id: UUID = field(default_factory=uuid4, kw_only=True)
    shipping_address: Address | None = None
    billing_address: Address | None = None
    products: dict[UUID, Product] = field(default_factory=dict)
    age_outcome: AgeVerificationOutcome | None = None
    compliance: ComplianceResult | None = None
    items: tuple[OrderItem, ...] = ()
    subtotal: Decimal = Decimal("0.00")
    taxes: TaxCalculation | None = None
    total_amount: Decimal = Decimal("0.00")
    authorization: Authorization | None = None
    order: Order | None = None
    compliance_snapshot: ComplianceSnapshot | None = None


def _today() -> date:
    return datetime.now(UTC).date()


class OrderCreationSaga:
    """
    Orchestrates order creation.

    Every collaborator is injected; the saga holds no global state.

    Example:
        >>> saga = OrderCreationSaga(
        ...     catalog=catalog,
        ...     orders=orders,
        ...     reconciliation=reconciliation,
        ...     age_verification=veriff,
        ...     payments=authorizenet,
        ...     side_channel=side_channel,
        ... )
        >>> result = await saga.execute(request, principal)
        >>> result.status
        <OrderStatus.PAID: 'PAID'>
    """

    name = "order_creation"

    def __init__(
        self,
        *,
        catalog: CatalogRepository,
        orders: OrderRepository,
        reconciliation: ReconciliationRepository,
        age_verification: AgeVerificationGateway,
        payments: PaymentGateway,
        side_channel: SideChannel,
        config: OrderFlowConfig | None = None,
        today: Callable[[], date] = _today,
        clock: Callable[[], datetime] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._catalog = catalog
        self._orders = orders
        self._reconciliation = reconciliation
        self._age_verification = age_verification
        self._payments = payments
        self._side_channel = side_channel
        self._config = config or OrderFlowConfig()
        self._today = today
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._runner: SagaRunner[CreationContext] = SagaRunner(
            self.name,
            [
                SagaStep("resolve_inputs", self._resolve_inputs, AuditAction.CREATE_ORDER),
                SagaStep("verify_age", self._verify_age, AuditAction.AGE_VERIFICATION),
                SagaStep(
                    "evaluate_compliance", self._evaluate_compliance, AuditAction.CREATE_ORDER
                ),
                SagaStep("price_order", self._price_order, AuditAction.CREATE_ORDER),
                SagaStep(
                    "authorize_payment",
                    self._authorize_payment,
                    AuditAction.PAYMENT_AUTHORIZATION,
                ),
                SagaStep("persist_order", self._persist_order, AuditAction.CREATE_ORDER),
                SagaStep(
                    "publish_side_effects",
                    self._publish_side_effects,
                    AuditAction.CREATE_ORDER,
                ),
            ],
            side_channel,
            tracer=self._tracer,
        )

    @property
    def step_names(self) -> list[str]:
        return self._runner.step_names

    async def execute(
        self, request: CreateOrderRequest, principal: Principal | None = None
    ) -> OrderCreationResult:
        """
        Run the saga for one cart.

        Args:
            request: Validated cart submission
            principal: Authenticated caller, or None for guest checkout

        Returns:
            OrderCreationResult for the PAID order

        Raises:
            SagaError: Terminal failure, already audited
        """
        context = CreationContext(principal=principal, request=request)

        with self._tracer.span(
            "orderflow.saga.order_creation",
            {ATTR_SAGA_NAME: self.name, ATTR_ITEM_COUNT: len(request.items)},
        ) as span:
            await self._runner.run(context, shield_from="authorize_payment")

            assert context.order is not None
            assert context.compliance_snapshot is not None
            assert context.authorization is not None
            if span:
                span.set_attribute(ATTR_ORDER_ID, str(context.order.id))
                span.set_attribute(ATTR_JURISDICTION, context.compliance_snapshot.shipping_state)
                span.set_attribute(
                    ATTR_COMPLIANCE_DECISION, context.compliance_snapshot.final_decision.value
                )

        logger.info(
            "Order %s created",
            context.order.id,
            extra={
                "order_id": str(context.order.id),
                "total_amount": str(context.order.total_amount),
                "stake_call_required": context.compliance_snapshot.stake_call_required,
            },
        )
        return OrderCreationResult(
            order_id=context.order.id,
            status=context.order.status,
            stake_call_required=context.compliance_snapshot.stake_call_required,
            compliance_snapshot_id=context.compliance_snapshot.id,
            payment_transaction_id=context.authorization.transaction_id,
            total_amount=context.order.total_amount,
        )

    async def _resolve_inputs(self, ctx: CreationContext) -> StepResult:
        request = ctx.request
        shipping, billing, products = await asyncio.gather(
            self._catalog.get_address(request.shipping_address_id),
            self._catalog.get_address(request.billing_address_id),
            self._catalog.get_active_products(request.product_ids),
        )

        if shipping is None:
            return StepFailed(
                InvalidInputError("SHIPPING_ADDRESS_NOT_FOUND", "Shipping address not found")
            )
        if billing is None:
            return StepFailed(
                InvalidInputError("BILLING_ADDRESS_NOT_FOUND", "Billing address not found")
            )

        by_id = {product.id: product for product in products}
        missing = [pid for pid in request.product_ids if pid not in by_id]
        if missing:
            return StepFailed(
                InvalidInputError(
                    "PRODUCTS_NOT_FOUND",
                    f"Products not found: {', '.join(str(pid) for pid in missing)}",
                    details={"product_ids": [str(pid) for pid in missing]},
                )
            )

        ctx.shipping_address = shipping
        ctx.billing_address = billing
        ctx.products = by_id
        return StepSucceeded()

    async def _verify_age(self, ctx: CreationContext) -> StepResult:
        assert ctx.shipping_address is not None
        request = ctx.request
        minimum_age = self._config.minimum_age

        try:
            outcome = await self._age_verification.verify(
                AgeVerificationRequest(
                    first_name=request.customer_first_name,
                    last_name=request.customer_last_name,
                    date_of_birth=request.customer_date_of_birth,
                    address=VerificationAddress.from_address(ctx.shipping_address),
                )
            )
        except GatewayError as e:
            return StepFailed(
                ComplianceBlockedError(
                    "AGE_VERIFICATION_FAILED",
                    "Age verification failed due to provider error or timeout",
                    reason_code=e.code,
                ),
                audit_result=AuditResult.FAIL,
            )

        if outcome.status is VerificationStatus.FAIL:
            return StepFailed(
                ComplianceBlockedError(
                    "AGE_VERIFICATION_FAILED",
                    "Age verification failed",
                    reason_code=outcome.reason_code or "VERIFICATION_DECLINED",
                    details={"reference_id": outcome.reference_id},
                ),
                audit_result=AuditResult.FAIL,
            )

        age = calculate_age(request.customer_date_of_birth, self._today())
        if age < minimum_age:
            return StepFailed(
                ComplianceBlockedError(
                    "AGE_VERIFICATION_FAILED",
                    f"Customer must be at least {minimum_age} years old",
                    reason_code=f"UNDER_{minimum_age}",
                    details={"reference_id": outcome.reference_id},
                ),
                audit_result=AuditResult.FAIL,
            )

        ctx.age_outcome = outcome
        return StepSucceeded(outcome.reference_id)

    async def _evaluate_compliance(self, ctx: CreationContext) -> StepResult:
        assert ctx.shipping_address is not None
        assert ctx.age_outcome is not None
        request = ctx.request

        result = evaluate_compliance(
            ComplianceInput(
                shipping_state=ctx.shipping_address.state,
                is_po_box=ctx.shipping_address.is_po_box,
                items=tuple(
                    ComplianceLineItem(
                        flavor_type=ctx.products[item.product_id].flavor_type,
                        ca_utl_approved=ctx.products[item.product_id].ca_utl_approved,
                        sensory_cooling=ctx.products[item.product_id].sensory_cooling,
                        quantity=item.quantity,
                    )
                    for item in request.items
                ),
                is_first_time_recipient=request.is_first_time_recipient,
                age_verification_status=ctx.age_outcome.status,
            ),
            self._config.jurisdiction_policies,
        )

        logger.debug(
            "Compliance decision %s",
            result.decision.value,
            extra={
                "jurisdiction": ctx.shipping_address.state,
                "reason_codes": list(result.reason_values),
            },
        )
        if not result.allowed:
            return StepFailed(
                ComplianceBlockedError(
                    "ORDER_BLOCKED",
                    "Order blocked by compliance rules",
                    reasons=result.reason_values,
                )
            )

        ctx.compliance = result
        return StepSucceeded(result.decision)

    async def _price_order(self, ctx: CreationContext) -> StepResult:
        assert ctx.shipping_address is not None

        for requested in ctx.request.items:
            product = ctx.products[requested.product_id]
            if product.price is None or product.price <= 0:
                return StepFailed(
                    InvalidInputError(
                        "INVALID_PRODUCT_PRICE",
                        f"Product {product.sku} has invalid or missing price",
                        details={"sku": product.sku},
                    )
                )
            if requested.quantity < 1:
                return StepFailed(
                    InvalidInputError(
                        "INVALID_QUANTITY",
                        f"Invalid quantity for product {product.sku}",
                        details={"sku": product.sku},
                    )
                )

        items = tuple(
            OrderItem(
                product_id=requested.product_id,
                sku=ctx.products[requested.product_id].sku,
                product_name=ctx.products[requested.product_id].name,
                quantity=requested.quantity,
                unit_price=ctx.products[requested.product_id].price,  # type: ignore[arg-type]
                net_weight_grams=ctx.products[requested.product_id].net_weight_grams,
            )
            for requested in ctx.request.items
        )
        subtotal = sum((item.line_total for item in items), Decimal("0"))
        taxes = calculate_taxes(
            subtotal,
            ctx.shipping_address.state,
            [
                TaxableWeight(net_weight_grams=item.net_weight_grams, quantity=item.quantity)
                for item in items
            ],
            self._config.tax_rates,
        )

        ctx.items = items
        ctx.subtotal = round_money(subtotal)
        ctx.taxes = taxes
        ctx.total_amount = ctx.subtotal + taxes.sales_tax_amount + taxes.excise_tax_amount
        return StepSucceeded(ctx.total_amount)

    async def _authorize_payment(self, ctx: CreationContext) -> StepResult:
        assert ctx.billing_address is not None
        request = ctx.request

        if request.payment is None:
            return StepFailed(
                InvalidInputError("PAYMENT_REQUIRED", "Payment details are required")
            )

        try:
            authorization = await self._payments.authorize(
                ctx.total_amount,
                request.payment.to_card(),
                BillingDetails.from_address(
                    request.customer_first_name,
                    request.customer_last_name,
                    ctx.billing_address,
                ),
            )
        except GatewayError as e:
            return StepFailed(
                GatewayFailureError(
                    "PAYMENT_AUTHORIZATION_FAILED",
                    "Payment authorization failed",
                    reason_code=e.code,
                )
            )

        ctx.authorization = authorization
        return StepSucceeded(authorization.transaction_id)

    async def _persist_order(self, ctx: CreationContext) -> StepResult:
        assert ctx.shipping_address is not None
        assert ctx.compliance is not None
        assert ctx.age_outcome is not None
        assert ctx.taxes is not None
        assert ctx.authorization is not None

        now = self._clock()
        order = Order(
            id=ctx.order_id,
            user_id=ctx.principal.user_id if ctx.principal else None,
            shipping_address_id=ctx.request.shipping_address_id,
            billing_address_id=ctx.request.billing_address_id,
            status=OrderStatus.PAID,
            subtotal=ctx.subtotal,
            tax_amount=ctx.taxes.sales_tax_amount,
            excise_tax_amount=ctx.taxes.excise_tax_amount,
            total_amount=ctx.total_amount,
            items=ctx.items,
            created_at=now,
            updated_at=now,
        )
        snapshot = ComplianceSnapshot(
            order_id=order.id,
            shipping_state=ctx.shipping_address.state.strip().upper(),
            stake_call_required=ctx.compliance.stake_call_required,
            final_decision=ComplianceDecision.ALLOW,
            reason_codes=ctx.compliance.reason_values,
            created_at=now,
            **derive_check_results(ctx.compliance.reason_codes),
        )
        bundle = OrderBundle(
            order=order,
            payment=Payment(
                order_id=order.id,
                provider=self._payments.provider_name,
                status=PaymentStatus.AUTHORIZED,
                amount=ctx.total_amount,
                transaction_id=ctx.authorization.transaction_id,
                avs_result=ctx.authorization.avs_result,
                cvv_result=ctx.authorization.cvv_result,
                created_at=now,
            ),
            compliance_snapshot=snapshot,
            age_verification=AgeVerificationRecord(
                order_id=order.id,
                provider=self._age_verification.provider_name,
                status=ctx.age_outcome.status,
                reference_id=ctx.age_outcome.reference_id,
                reason_code=ctx.age_outcome.reason_code,
                verified_at=now,
            ),
        )

        try:
            await self._orders.create_order_bundle(bundle)
        except Exception as e:
            case_id = await self._open_case(ctx, e)
            return StepFailed(
                ReconciliationRequiredError(
                    "ORDER_PERSISTENCE_FAILED",
                    "Payment was authorized but the order could not be saved",
                    transaction_id=ctx.authorization.transaction_id,
                    case_id=case_id,
                    details={"intended_order_id": str(order.id)},
                ),
                audit_metadata={
                    "transaction_id": ctx.authorization.transaction_id,
                    "exception": type(e).__name__,
                },
            )

        ctx.order = order
        ctx.compliance_snapshot = snapshot
        ctx.entity_id = order.id
        return StepSucceeded(order.id)

    async def _open_case(self, ctx: CreationContext, error: Exception) -> UUID | None:
        assert ctx.authorization is not None
        case = ReconciliationCase(
            kind=ReconciliationKind.AUTHORIZED_NOT_PERSISTED,
            transaction_id=ctx.authorization.transaction_id,
            amount=ctx.total_amount,
            reason_code="ORDER_PERSISTENCE_FAILED",
            details={"intended_order_id": str(ctx.order_id), "exception": type(error).__name__},
        )
        logger.critical(
            "Authorized transaction %s has no order",
            ctx.authorization.transaction_id,
            extra={
                "transaction_id": ctx.authorization.transaction_id,
                "intended_order_id": str(ctx.order_id),
            },
            exc_info=error,
        )
        try:
            await self._reconciliation.open_case(case)
        except Exception:
            logger.exception(
                "Failed to open reconciliation case for transaction %s",
                ctx.authorization.transaction_id,
                extra={"transaction_id": ctx.authorization.transaction_id},
            )
            return None

        await self._side_channel.publish(
            ReconciliationOpened(
                aggregate_id=case.id,
                kind=case.kind,
                transaction_id=case.transaction_id,
                reason_code=case.reason_code,
            )
        )
        return case.id

    async def _publish_side_effects(self, ctx: CreationContext) -> StepResult:
        assert ctx.order is not None
        assert ctx.compliance_snapshot is not None
        assert ctx.authorization is not None
        order = ctx.order

        await self._side_channel.publish(
            OrderCreated(
                aggregate_id=order.id,
                actor_id=str(ctx.principal.user_id) if ctx.principal else None,
                user_id=order.user_id,
                total_amount=order.total_amount,
                stake_call_required=ctx.compliance_snapshot.stake_call_required,
                payment_transaction_id=ctx.authorization.transaction_id,
            )
        )
        await self._side_channel.record(
            AuditEvent.for_principal(
                ctx.principal,
                action=AuditAction.CREATE_ORDER,
                entity_type=AuditEntityType.ORDER,
                entity_id=order.id,
                result=AuditResult.SUCCESS,
                metadata={
                    "total_amount": str(order.total_amount),
                    "stake_call_required": ctx.compliance_snapshot.stake_call_required,
                },
            )
        )
        return StepSucceeded()


__all__ = [
    "CreateOrderItem",
    "CreateOrderRequest",
    "CreationContext",
    "OrderCreationResult",
    "OrderCreationSaga",
    "PaymentInput",
]
