"""
orderflow - Order lifecycle orchestration for age-restricted storefronts.

This library provides:
- Compliance rule engine and jurisdiction tax calculator
- Order creation saga: age verification, compliance, payment authorization
- Fulfillment saga: capture, carrier label, archival, shipment
- STAKE Act verification call logging
- Idempotent PACT-style regulatory reports
- Reconciliation queue for side effects that could not be completed
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("orderflow-py")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

# Side channel
from orderflow.audit.side_channel import SideChannel

# Event bus
from orderflow.bus import EventBus, InMemoryEventBus

# Compliance
from orderflow.compliance import (
    DEFAULT_POLICIES,
    ComplianceInput,
    ComplianceLineItem,
    ComplianceResult,
    JurisdictionPolicies,
    JurisdictionPolicy,
    ReasonCode,
    calculate_age,
    evaluate_compliance,
)

# Configuration
from orderflow.config import (
    AuthorizeNetSettings,
    OrderFlowConfig,
    ShippoSettings,
    VeriffSettings,
)

# Notification events
from orderflow.events import (
    DomainEvent,
    OrderCreated,
    OrderShipped,
    ReconciliationOpened,
    RegulatoryReportGenerated,
    StakeCallLogged,
)

# Exceptions
from orderflow.exceptions import (
    ComplianceBlockedError,
    ErrorCategory,
    GatewayFailureError,
    InvalidInputError,
    InvalidStateTransitionError,
    OrderFlowError,
    OrderNotFoundError,
    PermissionDeniedError,
    ReconciliationCaseNotFoundError,
    ReconciliationCaseResolvedError,
    ReconciliationRequiredError,
    SagaError,
    WriteOnceViolationError,
)

# Locks
from orderflow.locks import (
    InMemoryLockManager,
    LockAcquisitionError,
    LockManager,
    PostgreSQLLockManager,
)

# Domain records
from orderflow.models import (
    Address,
    AgeVerificationRecord,
    AuditEvent,
    ComplianceSnapshot,
    FileRef,
    Order,
    OrderItem,
    Payment,
    Principal,
    Product,
    ReconciliationCase,
    RegulatoryReport,
    StakeCall,
)

# Reports
from orderflow.reports import RegulatoryReportGenerator, ReportResult

# Sagas
from orderflow.sagas import (
    CreateOrderItem,
    CreateOrderRequest,
    FulfillmentSaga,
    OrderCreationResult,
    OrderCreationSaga,
    PaymentInput,
    ShipmentResult,
)
from orderflow.stake_calls import StakeCallService

# Tax
from orderflow.tax import TaxCalculation, TaxRates, TaxRateTable, calculate_taxes, round_money

# Enumerations
from orderflow.types import (
    AuditAction,
    AuditEntityType,
    AuditResult,
    CheckResult,
    ComplianceDecision,
    FlavorType,
    OrderStatus,
    PaymentStatus,
    ReconciliationKind,
    Role,
    VerificationStatus,
)

__all__ = [
    "__version__",
    # Side channel and bus
    "EventBus",
    "InMemoryEventBus",
    "SideChannel",
    # Compliance
    "DEFAULT_POLICIES",
    "ComplianceInput",
    "ComplianceLineItem",
    "ComplianceResult",
    "JurisdictionPolicies",
    "JurisdictionPolicy",
    "ReasonCode",
    "calculate_age",
    "evaluate_compliance",
    # Configuration
    "AuthorizeNetSettings",
    "OrderFlowConfig",
    "ShippoSettings",
    "VeriffSettings",
    # Events
    "DomainEvent",
    "OrderCreated",
    "OrderShipped",
    "ReconciliationOpened",
    "RegulatoryReportGenerated",
    "StakeCallLogged",
    # Exceptions
    "ComplianceBlockedError",
    "ErrorCategory",
    "GatewayFailureError",
    "InvalidInputError",
    "InvalidStateTransitionError",
    "OrderFlowError",
    "OrderNotFoundError",
    "PermissionDeniedError",
    "ReconciliationCaseNotFoundError",
    "ReconciliationCaseResolvedError",
    "ReconciliationRequiredError",
    "SagaError",
    "WriteOnceViolationError",
    # Locks
    "InMemoryLockManager",
    "LockAcquisitionError",
    "LockManager",
    "PostgreSQLLockManager",
    # Models
    "Address",
    "AgeVerificationRecord",
    "AuditEvent",
    "ComplianceSnapshot",
    "FileRef",
    "Order",
    "OrderItem",
    "Payment",
    "Principal",
    "Product",
    "ReconciliationCase",
    "RegulatoryReport",
    "StakeCall",
    # Sagas and services
    "CreateOrderItem",
    "CreateOrderRequest",
    "FulfillmentSaga",
    "OrderCreationResult",
    "OrderCreationSaga",
    "PaymentInput",
    "RegulatoryReportGenerator",
    "ReportResult",
    "ShipmentResult",
    "StakeCallService",
    # Tax
    "TaxCalculation",
    "TaxRateTable",
    "TaxRates",
    "calculate_taxes",
    "round_money",
    # Types
    "AuditAction",
    "AuditEntityType",
    "AuditResult",
    "CheckResult",
    "ComplianceDecision",
    "FlavorType",
    "OrderStatus",
    "PaymentStatus",
    "ReconciliationKind",
    "Role",
    "VerificationStatus",
]
