"""
Testing utilities for orderflow.

Example:
    >>> from orderflow.testing import OrderFlowTestHarness
    >>>
    >>> harness = OrderFlowTestHarness()
    >>> harness.payments.fail_capture("CAPTURE_DECLINED")
"""

from orderflow.testing.fakes import (
    FakeAgeVerificationGateway,
    FakeLabelDownloader,
    FakeLabelGateway,
    FakeObjectStorage,
    FakePaymentGateway,
)
from orderflow.testing.harness import DEFAULT_NOW, OrderFlowTestHarness

__all__ = [
    "DEFAULT_NOW",
    "FakeAgeVerificationGateway",
    "FakeLabelDownloader",
    "FakeLabelGateway",
    "FakeObjectStorage",
    "FakePaymentGateway",
    "OrderFlowTestHarness",
]
