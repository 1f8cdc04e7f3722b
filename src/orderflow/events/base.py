"""
Base class for notification events.

Notification events are immutable facts published after a saga commits.
They drive emails and downstream projections; failure to publish one never
fails the saga that produced it.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DomainEvent(BaseModel):
    """
    Base class for all notification events.

    ``event_type`` is derived from the class name when not given explicitly.
    ``event_name`` is the routing name used by external consumers
    (e.g. ``order/created``).

    Attributes:
        event_id: Unique identifier for this event instance
        event_type: Type name of the event (auto-derived from class name)
        occurred_at: When the event occurred (UTC timestamp)
        aggregate_id: ID of the entity this event belongs to
        aggregate_type: Kind of entity (e.g. 'Order')
        actor_id: User or system that triggered this event
        correlation_id: ID linking related events
        metadata: Additional event metadata

    Example:
        >>> class OrderCreated(DomainEvent):
        ...     event_name: ClassVar[str] = "order/created"
        ...     aggregate_type: str = "Order"
        ...
        >>> event = OrderCreated(aggregate_id=uuid4())
        >>> event.event_type
        'OrderCreated'
    """

    model_config = ConfigDict(frozen=True)

    event_name: ClassVar[str] = ""

    event_id: UUID = Field(default_factory=uuid4, description="Unique event identifier")
    event_type: str = Field(default="", description="Type of event")
    occurred_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When event occurred (UTC)",
    )
    aggregate_id: UUID = Field(..., description="ID of the entity this event belongs to")
    aggregate_type: str = Field(..., description="Kind of entity (e.g., 'Order')")
    actor_id: str | None = Field(default=None, description="User/system that triggered this event")
    correlation_id: UUID = Field(default_factory=uuid4, description="ID linking related events")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional event metadata")

    @model_validator(mode="before")
    @classmethod
    def _ensure_event_type(cls, data: Any) -> Any:
        """Fill ``event_type`` from the class name when it is missing."""
        if isinstance(data, dict) and not data.get("event_type"):
            return {**data, "event_type": cls.__name__}
        return data

    def to_message(self) -> dict[str, Any]:
        """Payload for external delivery: routing name plus JSON-safe data."""
        return {
            "name": self.event_name or self.event_type,
            "data": self.model_dump(mode="json"),
        }


__all__ = ["DomainEvent"]
