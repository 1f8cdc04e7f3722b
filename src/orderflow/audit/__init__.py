"""
Best-effort audit and notification delivery.

Example:
    >>> from orderflow.audit import SideChannel
    >>> side = SideChannel(audit_log, bus)
"""

from orderflow.audit.side_channel import SideChannel

__all__ = ["SideChannel"]
