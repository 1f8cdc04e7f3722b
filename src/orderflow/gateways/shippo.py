"""
Shippo label client.

Buys a UPS label with adult signature confirmation in three calls: create
the shipment, fetch the carrier's rates, purchase the first rate as a PDF
label. PO-box destinations are refused before any call is made.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from orderflow.gateways.errors import LabelGatewayError
from orderflow.gateways.interface import Parcel, ShippingAddress, ShippingLabel
from orderflow.observability import SpanKindEnum, Tracer, create_tracer
from orderflow.observability.attributes import ATTR_GATEWAY, ATTR_GATEWAY_OPERATION
from orderflow.serialization import json_dumps

if TYPE_CHECKING:
    from orderflow.config import ShippoSettings

logger = logging.getLogger(__name__)

LABEL_SUCCESS_STATUSES = frozenset({"SUCCESS", "SUCCESSFUL"})


def looks_like_po_box(street: str) -> bool:
    """True for street lines such as 'PO Box 12', 'P.O. Box 12' or 'po 12'."""
    lowered = street.lower()
    return "po box" in lowered or "p.o. box" in lowered or lowered.startswith("po ")


def _address_payload(address: ShippingAddress) -> dict[str, str]:
    return {
        "name": address.name,
        "street1": address.street1,
        "street2": address.street2 or "",
        "city": address.city,
        "state": address.state,
        "zip": address.zip,
        "country": address.country,
        "phone": address.phone,
    }


class ShippoLabelGateway:
    """
    Adult-signature UPS labels through Shippo.

    Example:
        >>> gateway = ShippoLabelGateway(ShippoSettings.from_env())
        >>> label = await gateway.create_label(ship_from, ship_to, Parcel())
        >>> label.carrier
        'UPS'
    """

    provider_name = "shippo"

    def __init__(
        self,
        settings: ShippoSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def create_label(
        self, from_address: ShippingAddress, to_address: ShippingAddress, parcel: Parcel
    ) -> ShippingLabel:
        if not self._settings.configured:
            raise LabelGatewayError("SHIPPO_NOT_CONFIGURED", "Shippo token not configured")
        if looks_like_po_box(to_address.street1):
            raise LabelGatewayError(
                "PO_BOX_NOT_ALLOWED", "PO boxes are not allowed for shipping"
            )

        with self._tracer.span_with_kind(
            "orderflow.gateway.shippo.create_label",
            SpanKindEnum.CLIENT,
            {ATTR_GATEWAY: self.provider_name, ATTR_GATEWAY_OPERATION: "create_label"},
        ):
            try:
                async with httpx.AsyncClient(
                    base_url=self._settings.base_url.rstrip("/"),
                    timeout=httpx.Timeout(self._settings.timeout),
                    headers={"Authorization": f"ShippoToken {self._settings.token}"},
                    transport=self._transport,
                ) as client:
                    shipment_id = await self._create_shipment(
                        client, from_address, to_address, parcel
                    )
                    rate = await self._first_rate(client, shipment_id)
                    transaction = await self._purchase(client, rate)
            except httpx.TimeoutException as e:
                raise LabelGatewayError(
                    "SHIPPO_TIMEOUT", "Shipping label generation timeout"
                ) from e
            except httpx.HTTPError as e:
                raise LabelGatewayError("SHIPPO_ERROR", str(e) or "Unknown Shippo error") from e

        servicelevel = rate.get("servicelevel") or {}
        label = ShippingLabel(
            label_url=str(transaction.get("label_url") or ""),
            tracking_number=str(transaction.get("tracking_number") or ""),
            carrier=self._settings.carrier,
            service_level=servicelevel.get("name") or servicelevel.get("token") or "UPS Ground",
        )
        if not label.label_url or not label.tracking_number:
            raise LabelGatewayError(
                "SHIPPO_LABEL_FAILED", "Label response has no label URL or tracking number"
            )
        logger.info(
            "Purchased %s label",
            label.carrier,
            extra={"tracking_number": label.tracking_number, "service_level": label.service_level},
        )
        return label

    async def _create_shipment(
        self,
        client: httpx.AsyncClient,
        from_address: ShippingAddress,
        to_address: ShippingAddress,
        parcel: Parcel,
    ) -> str:
        body = {
            "address_from": _address_payload(from_address),
            "address_to": _address_payload(to_address),
            "parcels": [
                {
                    "length": str(parcel.length),
                    "width": str(parcel.width),
                    "height": str(parcel.height),
                    "distance_unit": parcel.distance_unit,
                    "weight": str(parcel.weight),
                    "mass_unit": parcel.mass_unit,
                }
            ],
            "async": False,
        }
        response = await client.post(
            "/shipments", content=json_dumps(body), headers={"Content-Type": "application/json"}
        )
        if not response.is_success:
            raise LabelGatewayError(
                "SHIPPO_SHIPMENT_ERROR",
                _error_message(response) or f"Shippo API error: {response.status_code}",
            )
        shipment = _json(response)
        shipment_id = shipment.get("object_id") or shipment.get("id")
        if not shipment_id:
            raise LabelGatewayError("SHIPPO_SHIPMENT_ERROR", "Shipment response has no id")
        return str(shipment_id)

    async def _first_rate(self, client: httpx.AsyncClient, shipment_id: str) -> dict[str, Any]:
        response = await client.get(f"/shipments/{shipment_id}/rates/{self._settings.carrier}/")
        if not response.is_success:
            raise LabelGatewayError(
                "SHIPPO_RATES_ERROR", f"Failed to get {self._settings.carrier} rates"
            )
        try:
            rates = response.json()
        except ValueError:
            rates = []
        if isinstance(rates, dict):
            rates = rates.get("results") or []
        if not rates:
            raise LabelGatewayError(
                "SHIPPO_NO_UPS_RATES", f"No {self._settings.carrier} rates available"
            )
        return rates[0]

    async def _purchase(self, client: httpx.AsyncClient, rate: dict[str, Any]) -> dict[str, Any]:
        body = {
            "rate": rate.get("object_id"),
            "label_format": "PDF",
            "async": False,
            "metadata": "Adult signature required",
            "extra": {"signature_confirmation": "ADULT"},
        }
        response = await client.post(
            "/transactions", content=json_dumps(body), headers={"Content-Type": "application/json"}
        )
        if not response.is_success:
            raise LabelGatewayError(
                "SHIPPO_TRANSACTION_ERROR",
                _error_message(response) or "Failed to create shipping label",
            )
        transaction = _json(response)
        if transaction.get("status") not in LABEL_SUCCESS_STATUSES:
            messages = transaction.get("messages") or []
            message = (messages[0].get("text") if messages else None) or transaction.get("error")
            raise LabelGatewayError("SHIPPO_LABEL_FAILED", message or "Label generation failed")
        return transaction


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_message(response: httpx.Response) -> str | None:
    message = _json(response).get("message")
    return str(message) if message else None


__all__ = ["ShippoLabelGateway", "looks_like_po_box"]
