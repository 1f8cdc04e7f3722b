"""Notification events for the order lifecycle."""

from orderflow.events.base import DomainEvent
from orderflow.events.notifications import (
    OrderCreated,
    OrderShipped,
    ReconciliationOpened,
    RegulatoryReportGenerated,
    StakeCallLogged,
)

__all__ = [
    "DomainEvent",
    "OrderCreated",
    "OrderShipped",
    "ReconciliationOpened",
    "RegulatoryReportGenerated",
    "StakeCallLogged",
]
