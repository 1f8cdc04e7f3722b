"""Typed errors raised by external gateways."""

from orderflow.exceptions import OrderFlowError


class GatewayError(OrderFlowError):
    """
    Base error for external gateway failures.

    Every gateway failure (decline, transport error, timeout, missing
    configuration) is reported as a stable ``code`` plus a message.

    Attributes:
        code: Stable gateway error code (e.g. ``SHIPPO_TIMEOUT``)
        message: Human readable description
    """

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


class AgeVerificationError(GatewayError):
    """Raised by the age verification gateway."""

    pass


class PaymentGatewayError(GatewayError):
    """Raised by the payment gateway on decline or failure."""

    pass


class LabelGatewayError(GatewayError):
    """Raised by the carrier label gateway."""

    pass


class StorageError(GatewayError):
    """Raised by object storage or the label downloader."""

    pass


__all__ = [
    "AgeVerificationError",
    "GatewayError",
    "LabelGatewayError",
    "PaymentGatewayError",
    "StorageError",
]
