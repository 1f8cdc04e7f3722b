"""
Order lifecycle sagas.

Each saga is an explicit ordered list of steps run by ``SagaRunner``:

- ``OrderCreationSaga``: cart to PAID order
- ``FulfillmentSaga``: PAID order to SHIPPED

Example:
    >>> saga = OrderCreationSaga(
    ...     catalog=catalog,
    ...     orders=orders,
    ...     reconciliation=reconciliation,
    ...     age_verification=veriff,
    ...     payments=authorizenet,
    ...     side_channel=side_channel,
    ... )
    >>> result = await saga.execute(CreateOrderRequest.model_validate(body), principal)
"""

from orderflow.sagas.base import (
    SagaContext,
    SagaRunner,
    SagaStep,
    StepFailed,
    StepResult,
    StepSkipped,
    StepSucceeded,
    run_to_completion,
)
from orderflow.sagas.fulfillment import (
    FulfillmentContext,
    FulfillmentSaga,
    ShipmentResult,
    label_file_key,
    shipping_preconditions,
)
from orderflow.sagas.order_creation import (
    CreateOrderItem,
    CreateOrderRequest,
    CreationContext,
    OrderCreationResult,
    OrderCreationSaga,
    PaymentInput,
)

__all__ = [
    # Runner
    "SagaContext",
    "SagaRunner",
    "SagaStep",
    "StepFailed",
    "StepResult",
    "StepSkipped",
    "StepSucceeded",
    "run_to_completion",
    # Order creation
    "CreateOrderItem",
    "CreateOrderRequest",
    "CreationContext",
    "OrderCreationResult",
    "OrderCreationSaga",
    "PaymentInput",
    # Fulfillment
    "FulfillmentContext",
    "FulfillmentSaga",
    "ShipmentResult",
    "label_file_key",
    "shipping_preconditions",
]
