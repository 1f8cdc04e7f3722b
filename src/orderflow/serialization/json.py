"""JSON serialization for orderflow value types."""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class OrderFlowJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for UUID, Decimal, datetime, date and Enum values.

    Decimals are written as strings so money never passes through float.
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime | date):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """Serialize to a JSON string with sorted keys for stable output."""
    return json.dumps(obj, cls=OrderFlowJSONEncoder, sort_keys=True)


def json_loads(s: str | bytes) -> Any:
    """
    Deserialize a JSON string.

    UUID, Decimal and datetime strings are not converted back; that is the
    caller's responsibility.
    """
    return json.loads(s)


__all__ = [
    "OrderFlowJSONEncoder",
    "json_dumps",
    "json_loads",
]
