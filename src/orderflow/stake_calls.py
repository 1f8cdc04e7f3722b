"""
STAKE Act verification call recording.

Orders shipping to a first-time recipient in a jurisdiction that requires it
carry ``stake_call_required``; the fulfillment saga refuses to ship them
until an operator has logged a verification call here.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from orderflow.audit.side_channel import SideChannel
from orderflow.config import OrderFlowConfig
from orderflow.events import StakeCallLogged
from orderflow.exceptions import (
    GatewayFailureError,
    InvalidInputError,
    PermissionDeniedError,
    SagaError,
)
from orderflow.locks import LockAcquisitionError, LockManager, order_lock_key
from orderflow.models import AuditEvent, Principal, StakeCall
from orderflow.observability import Tracer, create_tracer
from orderflow.repositories.orders import OrderRepository
from orderflow.sagas.base import (
    SagaContext,
    SagaRunner,
    SagaStep,
    StepFailed,
    StepResult,
    StepSucceeded,
)
from orderflow.types import AuditAction, AuditEntityType, AuditResult

logger = logging.getLogger(__name__)


@dataclass
class StakeCallContext(SagaContext):
    notes: str = field(default="", kw_only=True)
    stake_call: StakeCall | None = None


class StakeCallService:
    """
    Logs STAKE Act verification calls.

    Example:
        >>> service = StakeCallService(orders=orders, locks=locks, side_channel=side)
        >>> call = await service.log_call(order_id, "Spoke with recipient", admin)
    """

    name = "stake_call"

    def __init__(
        self,
        *,
        orders: OrderRepository,
        locks: LockManager,
        side_channel: SideChannel,
        config: OrderFlowConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._orders = orders
        self._locks = locks
        self._side_channel = side_channel
        self._config = config or OrderFlowConfig()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._runner: SagaRunner[StakeCallContext] = SagaRunner(
            self.name,
            [
                SagaStep("load_order", self._load_order, AuditAction.STAKE_CALL),
                SagaStep("record_call", self._record_call, AuditAction.STAKE_CALL),
                SagaStep(
                    "publish_side_effects", self._publish_side_effects, AuditAction.STAKE_CALL
                ),
            ],
            side_channel,
            tracer=self._tracer,
        )

    async def log_call(self, order_id: UUID, notes: str, principal: Principal) -> StakeCall:
        """
        Record a verification call against an order.

        Raises:
            PermissionDeniedError: Caller is not an admin
            InvalidInputError: INVALID_NOTES, ORDER_NOT_FOUND
            GatewayFailureError: ORDER_LOCKED
        """
        context = StakeCallContext(principal=principal, entity_id=order_id, notes=notes.strip())

        error: SagaError | None = None
        if not principal.is_admin:
            error = PermissionDeniedError()
        elif not context.notes:
            error = InvalidInputError("INVALID_NOTES", "Call notes must not be empty")
        if error is not None:
            await self._runner.record_failure(
                context, "validate", AuditAction.STAKE_CALL, StepFailed(error)
            )
            raise error

        try:
            async with self._locks.acquire(
                order_lock_key(order_id), timeout=self._config.lock_timeout
            ):
                await self._runner.run(context)
        except LockAcquisitionError as e:
            locked = GatewayFailureError(
                "ORDER_LOCKED", "Order is being modified by another operation, retry later"
            )
            await self._runner.record_failure(
                context, "acquire_lock", AuditAction.STAKE_CALL, StepFailed(locked)
            )
            raise locked from e

        assert context.stake_call is not None
        logger.info(
            "STAKE call logged for order %s",
            order_id,
            extra={"order_id": str(order_id), "stake_call_id": str(context.stake_call.id)},
        )
        return context.stake_call

    async def _load_order(self, ctx: StakeCallContext) -> StepResult:
        if await self._orders.get_order(ctx.entity_id) is None:
            return StepFailed(InvalidInputError("ORDER_NOT_FOUND", "Order not found"))
        return StepSucceeded()

    async def _record_call(self, ctx: StakeCallContext) -> StepResult:
        assert ctx.principal is not None
        ctx.stake_call = await self._orders.add_stake_call(
            StakeCall(
                order_id=ctx.entity_id,
                admin_user_id=ctx.principal.user_id,
                notes=ctx.notes,
                called_at=self._clock(),
            )
        )
        return StepSucceeded(ctx.stake_call.id)

    async def _publish_side_effects(self, ctx: StakeCallContext) -> StepResult:
        assert ctx.stake_call is not None
        call = ctx.stake_call
        await self._side_channel.record(
            AuditEvent.for_principal(
                ctx.principal,
                action=AuditAction.STAKE_CALL,
                entity_type=AuditEntityType.ORDER,
                entity_id=call.order_id,
                result=AuditResult.SUCCESS,
                metadata={"stake_call_id": str(call.id)},
            )
        )
        await self._side_channel.publish(
            StakeCallLogged(
                aggregate_id=call.order_id,
                actor_id=str(call.admin_user_id),
                stake_call_id=call.id,
                admin_user_id=call.admin_user_id,
            )
        )
        return StepSucceeded()


__all__ = ["StakeCallContext", "StakeCallService"]
