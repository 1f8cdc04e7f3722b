"""
External gateways consumed by the sagas.

Protocols live in ``orderflow.gateways.interface``; the HTTP clients here
implement them against Veriff, Authorize.Net and Shippo. In-memory fakes for
tests are in ``orderflow.testing``.

Example:
    >>> from orderflow.config import AuthorizeNetSettings
    >>> from orderflow.gateways import AuthorizeNetPaymentGateway
    >>>
    >>> payments = AuthorizeNetPaymentGateway(AuthorizeNetSettings.from_env())
"""

from orderflow.gateways.authorizenet import AuthorizeNetPaymentGateway
from orderflow.gateways.errors import (
    AgeVerificationError,
    GatewayError,
    LabelGatewayError,
    PaymentGatewayError,
    StorageError,
)
from orderflow.gateways.interface import (
    AgeVerificationGateway,
    AgeVerificationOutcome,
    AgeVerificationRequest,
    Authorization,
    BillingDetails,
    Capture,
    CardDetails,
    LabelDownloader,
    LabelGateway,
    ObjectStorage,
    Parcel,
    PaymentGateway,
    ShippingAddress,
    ShippingLabel,
    VerificationAddress,
)
from orderflow.gateways.shippo import ShippoLabelGateway, looks_like_po_box
from orderflow.gateways.storage import (
    FileSystemObjectStorage,
    HttpLabelDownloader,
    InMemoryObjectStorage,
    sha256_hex,
)
from orderflow.gateways.veriff import VeriffAgeVerificationGateway

__all__ = [
    # Errors
    "AgeVerificationError",
    "GatewayError",
    "LabelGatewayError",
    "PaymentGatewayError",
    "StorageError",
    # Protocols and value types
    "AgeVerificationGateway",
    "AgeVerificationOutcome",
    "AgeVerificationRequest",
    "Authorization",
    "BillingDetails",
    "Capture",
    "CardDetails",
    "LabelDownloader",
    "LabelGateway",
    "ObjectStorage",
    "Parcel",
    "PaymentGateway",
    "ShippingAddress",
    "ShippingLabel",
    "VerificationAddress",
    # Implementations
    "AuthorizeNetPaymentGateway",
    "FileSystemObjectStorage",
    "HttpLabelDownloader",
    "InMemoryObjectStorage",
    "ShippoLabelGateway",
    "VeriffAgeVerificationGateway",
    "looks_like_po_box",
    "sha256_hex",
]
