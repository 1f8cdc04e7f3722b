"""
Serialization utilities for orderflow.

JSON encoding for the types that appear in audit metadata, database
columns and outbound payloads: UUID, Decimal, datetime, date and Enum.

Example:
    >>> from decimal import Decimal
    >>> from orderflow.serialization import json_dumps
    >>> json_dumps({"amount": Decimal("29.99")})
    '{"amount": "29.99"}'
"""

from orderflow.serialization.json import (
    OrderFlowJSONEncoder,
    json_dumps,
    json_loads,
)

__all__ = [
    "OrderFlowJSONEncoder",
    "json_dumps",
    "json_loads",
]
