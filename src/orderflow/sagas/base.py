"""
Saga step runner.

A saga is an explicit, ordered list of ``SagaStep`` objects sharing one
mutable context. Each step returns a tagged result:

- ``StepSucceeded``: continue with the next step
- ``StepSkipped``: nothing to do, continue
- ``StepFailed``: audit the failure, then raise its ``SagaError``

Audit-on-failure lives here so individual steps only decide *what* failed.
An unexpected exception is audited with result ERROR and the exception class
name, then re-raised unchanged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from orderflow.audit.side_channel import SideChannel
from orderflow.exceptions import ErrorCategory, SagaError
from orderflow.models import AuditEvent, Principal
from orderflow.observability import Tracer, create_tracer
from orderflow.observability.attributes import (
    ATTR_ERROR_CODE,
    ATTR_SAGA_NAME,
    ATTR_SAGA_STEP,
    ATTR_STEP_OUTCOME,
)
from orderflow.types import AuditAction, AuditEntityType, AuditResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StepSucceeded:
    """The step completed; ``value`` is informational."""

    value: Any = None


@dataclass(frozen=True)
class StepSkipped:
    """The step had nothing to do."""

    reason: str


@dataclass(frozen=True)
class StepFailed:
    """
    The step failed terminally.

    Attributes:
        error: Error raised to the caller once the failure is audited
        audit_result: Overrides the result derived from the error category
        audit_reason: Overrides ``error.audit_reason`` in the audit record
        audit_metadata: Extra audit metadata
    """

    error: SagaError
    audit_result: AuditResult | None = None
    audit_reason: str | None = None
    audit_metadata: dict[str, Any] = field(default_factory=dict)


StepResult = StepSucceeded | StepSkipped | StepFailed


@dataclass
class SagaContext:
    """
    State shared by the steps of one saga run.

    Subclasses add the fields their steps read and write.
    """

    principal: Principal | None
    entity_type: AuditEntityType = AuditEntityType.ORDER
    entity_id: Any = None


C = TypeVar("C", bound=SagaContext)


@dataclass(frozen=True)
class SagaStep(Generic[C]):
    """
    One named step.

    Attributes:
        name: Step name used in logs and spans
        run: Coroutine function taking the context
        audit_action: Action recorded when this step fails
    """

    name: str
    run: Callable[[C], Awaitable[StepResult]]
    audit_action: AuditAction


_LOG_LEVELS = {
    ErrorCategory.INPUT: logging.INFO,
    ErrorCategory.COMPLIANCE: logging.WARNING,
    ErrorCategory.GATEWAY: logging.ERROR,
    ErrorCategory.RECONCILIATION: logging.CRITICAL,
}


class SagaRunner(Generic[C]):
    """
    Runs saga steps strictly in order and fails fast.

    Example:
        >>> runner = SagaRunner("order_creation", steps, side_channel)
        >>> await runner.run(context)
    """

    def __init__(
        self,
        name: str,
        steps: Sequence[SagaStep[C]],
        side_channel: SideChannel,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self.name = name
        self.steps = tuple(steps)
        self._side_channel = side_channel
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]

    def split_at(self, step_name: str) -> tuple[list[SagaStep[C]], list[SagaStep[C]]]:
        """Steps before ``step_name`` and from ``step_name`` on."""
        names = self.step_names
        if step_name not in names:
            raise ValueError(f"Unknown step {step_name!r} in saga {self.name!r}")
        index = names.index(step_name)
        return list(self.steps[:index]), list(self.steps[index:])

    async def run(self, context: C, *, shield_from: str | None = None) -> C:
        """
        Run every step against ``context``.

        Args:
            context: Shared saga state
            shield_from: Name of the first step whose side effect must not be
                abandoned. That step and every later one run to a terminal
                state even if the caller is cancelled.

        Raises:
            SagaError: The first failed step's error, after it is audited
        """
        if shield_from is None:
            await self.run_steps(context, self.steps)
            return context

        head, tail = self.split_at(shield_from)
        await self.run_steps(context, head)
        await run_to_completion(self.run_steps(context, tail))
        return context

    async def run_steps(self, context: C, steps: Sequence[SagaStep[C]]) -> None:
        for step in steps:
            await self._run_step(context, step)

    async def _run_step(self, context: C, step: SagaStep[C]) -> None:
        logger.debug(
            "Saga %s entering step %s",
            self.name,
            step.name,
            extra={"saga": self.name, "step": step.name},
        )
        with self._tracer.span(
            "orderflow.saga.step",
            {ATTR_SAGA_NAME: self.name, ATTR_SAGA_STEP: step.name},
        ) as span:
            try:
                result = await step.run(context)
            except SagaError as e:
                result = StepFailed(error=e)
            except Exception as e:
                if span:
                    span.set_attribute(ATTR_STEP_OUTCOME, "error")
                    span.record_exception(e)
                logger.exception(
                    "Saga %s step %s raised %s",
                    self.name,
                    step.name,
                    type(e).__name__,
                    extra={"saga": self.name, "step": step.name},
                )
                await self._audit(
                    context,
                    step.audit_action,
                    AuditResult.ERROR,
                    type(e).__name__,
                    {"step": step.name},
                )
                raise

            if span:
                span.set_attribute(ATTR_STEP_OUTCOME, _outcome(result))

            if isinstance(result, StepFailed):
                if span:
                    span.set_attribute(ATTR_ERROR_CODE, result.error.code)
                await self.record_failure(context, step.name, step.audit_action, result)
                raise result.error

            if isinstance(result, StepSkipped):
                logger.debug(
                    "Saga %s skipped step %s: %s",
                    self.name,
                    step.name,
                    result.reason,
                    extra={"saga": self.name, "step": step.name},
                )

    async def record_failure(
        self, context: C, step_name: str, action: AuditAction, failure: StepFailed
    ) -> None:
        """
        Log and audit a terminal failure without raising it.

        Used by the runner for failed steps, and by sagas for failures
        detected outside a step (permission checks, lock timeouts).
        """
        error = failure.error
        logger.log(
            _LOG_LEVELS[error.category],
            "Saga %s failed at step %s: %s",
            self.name,
            step_name,
            error.code,
            extra={
                "saga": self.name,
                "step": step_name,
                "error_code": error.code,
                "reason_code": error.reason_code,
                "entity_id": str(context.entity_id) if context.entity_id else None,
            },
        )
        metadata = {"step": step_name, "error_code": error.code, **failure.audit_metadata}
        await self._audit(
            context,
            action,
            failure.audit_result or error.audit_result,
            failure.audit_reason or error.audit_reason,
            metadata,
        )

    async def _audit(
        self,
        context: C,
        action: AuditAction,
        result: AuditResult,
        reason: str,
        metadata: dict[str, Any],
    ) -> None:
        await self._side_channel.record(
            AuditEvent.for_principal(
                context.principal,
                action=action,
                entity_type=context.entity_type,
                entity_id=context.entity_id,
                result=result,
                reason_code=reason,
                metadata=metadata,
            )
        )


def _outcome(result: StepResult) -> str:
    if isinstance(result, StepFailed):
        return "failed"
    if isinstance(result, StepSkipped):
        return "skipped"
    return "succeeded"


async def run_to_completion(work: Awaitable[T]) -> T:
    """
    Await ``work`` so that caller cancellation cannot abandon it midway.

    If the caller is cancelled, the work still runs to its end before the
    ``CancelledError`` propagates, so locks held by the caller stay held
    until the work is finished.
    """
    task = asyncio.ensure_future(work)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait([task])
        raise


__all__ = [
    "SagaContext",
    "SagaRunner",
    "SagaStep",
    "StepFailed",
    "StepResult",
    "StepSkipped",
    "StepSucceeded",
    "run_to_completion",
]
