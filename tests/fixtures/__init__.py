"""
Shared test fixtures for orderflow tests.

Example:
    >>> from tests.fixtures import make_order, make_payment
    >>>
    >>> order = make_order(address.id)
    >>> await orders.put_payment(make_payment(order))
"""

from tests.fixtures.orders import (
    FIXED_NOW,
    make_address,
    make_age_record,
    make_bundle,
    make_case,
    make_item,
    make_order,
    make_payment,
    make_report,
    make_snapshot,
)

__all__ = [
    "FIXED_NOW",
    "make_address",
    "make_age_record",
    "make_bundle",
    "make_case",
    "make_item",
    "make_order",
    "make_payment",
    "make_report",
    "make_snapshot",
]
