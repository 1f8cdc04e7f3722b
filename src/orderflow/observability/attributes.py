"""
Standard span attributes for orderflow.

Attribute names used across sagas, repositories and gateways so spans can
be filtered consistently. Database attributes follow OpenTelemetry
semantic conventions.
"""

# =============================================================================
# Order Attributes
# =============================================================================

ATTR_ORDER_ID = "orderflow.order.id"
"""Order identifier (UUID string)."""

ATTR_ORDER_STATUS = "orderflow.order.status"
"""Order status value (e.g., 'PAID')."""

ATTR_ITEM_COUNT = "orderflow.order.item_count"
"""Number of line items on the order (integer)."""

# =============================================================================
# Saga Attributes
# =============================================================================

ATTR_SAGA_NAME = "orderflow.saga.name"
"""Saga name (e.g., 'order_creation', 'fulfillment')."""

ATTR_SAGA_STEP = "orderflow.saga.step"
"""Name of the saga step being executed."""

ATTR_STEP_OUTCOME = "orderflow.saga.step_outcome"
"""Tagged step result: 'succeeded', 'failed' or 'skipped'."""

ATTR_ERROR_CODE = "orderflow.error.code"
"""Stable error code for a failed step or gateway call."""

# =============================================================================
# Compliance Attributes
# =============================================================================

ATTR_JURISDICTION = "orderflow.jurisdiction"
"""Two-letter jurisdiction code (e.g., 'CA')."""

ATTR_COMPLIANCE_DECISION = "orderflow.compliance.decision"
"""ALLOW or BLOCK."""

# =============================================================================
# Gateway Attributes
# =============================================================================

ATTR_GATEWAY = "orderflow.gateway.name"
"""External gateway name (e.g., 'veriff', 'authorizenet', 'shippo')."""

ATTR_GATEWAY_OPERATION = "orderflow.gateway.operation"
"""Gateway operation (e.g., 'authorize', 'capture', 'create_label')."""

ATTR_POLL_ATTEMPT = "orderflow.gateway.poll_attempt"
"""Decision poll attempt number, starting at 1 (integer)."""

# =============================================================================
# Report Attributes
# =============================================================================

ATTR_REPORT_ID = "orderflow.report.id"
"""Regulatory report identifier (UUID string)."""

ATTR_REPORT_REUSED = "orderflow.report.reused"
"""True when an existing report was served instead of generated."""

ATTR_ROW_COUNT = "orderflow.report.row_count"
"""Number of rows in a generated report (integer)."""

# =============================================================================
# Event Bus Attributes
# =============================================================================

ATTR_EVENT_ID = "orderflow.event.id"
"""Notification event identifier (UUID string)."""

ATTR_EVENT_TYPE = "orderflow.event.type"
"""Notification event class name (e.g., 'OrderShipped')."""

ATTR_HANDLER_NAME = "orderflow.handler.name"
"""Name of the handler receiving an event."""

ATTR_HANDLER_COUNT = "orderflow.handler.count"
"""Number of handlers an event was dispatched to (integer)."""

ATTR_HANDLER_SUCCESS = "orderflow.handler.success"
"""Whether a handler completed without raising (boolean)."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_KEY = "orderflow.lock.key"
"""Lock key (e.g., 'order:<uuid>')."""

# =============================================================================
# Database Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'postgresql', 'sqlite')."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation name (e.g., 'INSERT', 'SELECT')."""


__all__ = [
    "ATTR_COMPLIANCE_DECISION",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_ERROR_CODE",
    "ATTR_EVENT_ID",
    "ATTR_EVENT_TYPE",
    "ATTR_GATEWAY",
    "ATTR_GATEWAY_OPERATION",
    "ATTR_HANDLER_COUNT",
    "ATTR_HANDLER_NAME",
    "ATTR_HANDLER_SUCCESS",
    "ATTR_ITEM_COUNT",
    "ATTR_JURISDICTION",
    "ATTR_LOCK_KEY",
    "ATTR_ORDER_ID",
    "ATTR_ORDER_STATUS",
    "ATTR_POLL_ATTEMPT",
    "ATTR_REPORT_ID",
    "ATTR_REPORT_REUSED",
    "ATTR_ROW_COUNT",
    "ATTR_SAGA_NAME",
    "ATTR_SAGA_STEP",
    "ATTR_STEP_OUTCOME",
]
