"""
Collaborator contracts consumed by the sagas.

Sagas depend only on these protocols; concrete HTTP clients and in-memory
fakes are injected at construction. Every method raises a ``GatewayError``
subclass on failure.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from pydantic import BaseModel, ConfigDict, SecretStr

from orderflow.models import Address, FileRef
from orderflow.types import VerificationStatus


class VerificationAddress(BaseModel):
    """Address details sent to the age verification provider."""

    model_config = ConfigDict(frozen=True)

    line1: str
    city: str
    state: str
    zip: str
    country: str = "US"

    @classmethod
    def from_address(cls, address: Address) -> VerificationAddress:
        return cls(
            line1=address.line1,
            city=address.city,
            state=address.state,
            zip=address.postal_code,
            country=address.country,
        )


class AgeVerificationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    first_name: str
    last_name: str
    date_of_birth: date
    address: VerificationAddress | None = None


class AgeVerificationOutcome(BaseModel):
    """
    Provider decision.

    ``status`` is the provider's verdict only; the caller still applies its
    own minimum-age check on PASS.
    """

    model_config = ConfigDict(frozen=True)

    status: VerificationStatus
    reference_id: str
    reason_code: str | None = None
    age: int | None = None
    message: str | None = None


@runtime_checkable
class AgeVerificationGateway(Protocol):
    """Age verification provider. Raises AgeVerificationError on failure."""

    provider_name: str

    async def verify(self, request: AgeVerificationRequest) -> AgeVerificationOutcome: ...


class BillingDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    first_name: str
    last_name: str
    address: str
    city: str
    state: str
    zip: str

    @classmethod
    def from_address(cls, first_name: str, last_name: str, address: Address) -> BillingDetails:
        return cls(
            first_name=first_name,
            last_name=last_name,
            address=address.street,
            city=address.city,
            state=address.state,
            zip=address.postal_code,
        )


class CardDetails(BaseModel):
    """
    Card data handed to the payment gateway.

    Held only in memory for the duration of the authorization call.
    ``expiration`` is ``MMYY``.
    """

    model_config = ConfigDict(frozen=True)

    number: SecretStr
    expiration: str
    cvv: SecretStr


class Authorization(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    avs_result: str | None = None
    cvv_result: str | None = None


class Capture(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Payment gateway with separate authorize and capture.

    Both methods raise PaymentGatewayError on decline or failure.
    """

    provider_name: str

    async def authorize(
        self, amount: Decimal, card: CardDetails, billing: BillingDetails
    ) -> Authorization: ...

    async def capture(self, transaction_id: str, amount: Decimal) -> Capture: ...


class ShippingAddress(BaseModel):
    """Carrier-facing postal address."""

    model_config = ConfigDict(frozen=True)

    name: str
    street1: str
    street2: str | None = None
    city: str
    state: str
    zip: str
    country: str = "US"
    phone: str = ""

    @classmethod
    def from_address(cls, address: Address) -> ShippingAddress:
        return cls(
            name=address.recipient_name,
            street1=address.line1,
            street2=address.line2,
            city=address.city,
            state=address.state,
            zip=address.postal_code,
            country=address.country,
            phone=address.phone or "",
        )


class Parcel(BaseModel):
    """Parcel dimensions; defaults are the fixed warehouse box."""

    model_config = ConfigDict(frozen=True)

    length: Decimal = Decimal("10")
    width: Decimal = Decimal("8")
    height: Decimal = Decimal("6")
    distance_unit: str = "in"
    weight: Decimal = Decimal("1")
    mass_unit: str = "lb"


class ShippingLabel(BaseModel):
    model_config = ConfigDict(frozen=True)

    label_url: str
    tracking_number: str
    carrier: str
    service_level: str


@runtime_checkable
class LabelGateway(Protocol):
    """
    Carrier label provider.

    Always requests adult signature service. Rejects PO-box destinations
    itself. Raises LabelGatewayError on failure.
    """

    async def create_label(
        self, from_address: ShippingAddress, to_address: ShippingAddress, parcel: Parcel
    ) -> ShippingLabel: ...


@runtime_checkable
class LabelDownloader(Protocol):
    """Fetches label bytes from a carrier URL. Raises StorageError."""

    async def download(self, url: str) -> bytes: ...


@runtime_checkable
class ObjectStorage(Protocol):
    """Object storage. Raises StorageError on failure."""

    bucket: str

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        created_by: UUID | None = None,
    ) -> FileRef: ...


__all__ = [
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
]
