"""Unit tests for the Shippo label client, driven through httpx.MockTransport."""

import json

import httpx
import pytest

from orderflow.config import ShippoSettings
from orderflow.gateways import LabelGatewayError, Parcel, ShippingAddress, ShippoLabelGateway
from orderflow.gateways.shippo import looks_like_po_box
from orderflow.observability import MockTracer

SETTINGS = ShippoSettings(token="shippo_test_token")
SHIP_FROM = ShippingAddress(
    name="Lumi Fulfillment",
    street1="100 Warehouse Way",
    city="Albany",
    state="NY",
    zip="12205",
    phone="5185550100",
)
SHIP_TO = ShippingAddress(
    name="Ada Lovelace", street1="1 Main St", city="Albany", state="NY", zip="12207"
)
UPS_RATE = {"object_id": "rate-1", "servicelevel": {"name": "UPS Ground", "token": "ups_ground"}}
LABEL = {
    "status": "SUCCESS",
    "label_url": "https://shippo-delivery.example.test/label.pdf",
    "tracking_number": "1Z999AA10000000001",
}


class ShippoStub:
    """Routes the three label calls; individual responses can be overridden."""

    def __init__(self, **overrides: httpx.Response | Exception) -> None:
        self.responses = {
            "shipment": httpx.Response(201, json={"object_id": "shp-1"}),
            "rates": httpx.Response(200, json={"results": [UPS_RATE]}),
            "transaction": httpx.Response(201, json=LABEL),
        }
        self.responses.update(overrides)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path == "/shipments":
            response = self.responses["shipment"]
        elif request.method == "GET" and path == "/shipments/shp-1/rates/UPS/":
            response = self.responses["rates"]
        elif request.method == "POST" and path == "/transactions":
            response = self.responses["transaction"]
        else:
            return httpx.Response(404)
        if isinstance(response, Exception):
            raise response
        return response

    def body(self, index: int) -> dict:
        return json.loads(self.requests[index].content)


def make_gateway(stub: ShippoStub, settings: ShippoSettings = SETTINGS) -> ShippoLabelGateway:
    return ShippoLabelGateway(
        settings, transport=httpx.MockTransport(stub), enable_tracing=False
    )


class TestCreateLabel:
    @pytest.mark.asyncio
    async def test_purchases_label(self):
        stub = ShippoStub()

        label = await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert label.tracking_number == "1Z999AA10000000001"
        assert label.label_url == "https://shippo-delivery.example.test/label.pdf"
        assert label.carrier == "UPS"
        assert label.service_level == "UPS Ground"
        assert [r.method for r in stub.requests] == ["POST", "GET", "POST"]

    @pytest.mark.asyncio
    async def test_sends_token(self):
        stub = ShippoStub()

        await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert all(
            r.headers["Authorization"] == "ShippoToken shippo_test_token" for r in stub.requests
        )

    @pytest.mark.asyncio
    async def test_shipment_body(self):
        stub = ShippoStub()

        await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        body = stub.body(0)
        assert body["address_from"]["street1"] == "100 Warehouse Way"
        assert body["address_to"]["name"] == "Ada Lovelace"
        assert body["address_to"]["street2"] == ""
        assert body["parcels"] == [
            {
                "length": "10",
                "width": "8",
                "height": "6",
                "distance_unit": "in",
                "weight": "1",
                "mass_unit": "lb",
            }
        ]

    @pytest.mark.asyncio
    async def test_requests_adult_signature(self):
        stub = ShippoStub()

        await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        body = stub.body(2)
        assert body["rate"] == "rate-1"
        assert body["label_format"] == "PDF"
        assert body["extra"] == {"signature_confirmation": "ADULT"}

    @pytest.mark.asyncio
    async def test_rates_as_plain_list(self):
        stub = ShippoStub(rates=httpx.Response(200, json=[UPS_RATE]))

        label = await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert label.tracking_number == "1Z999AA10000000001"

    @pytest.mark.asyncio
    async def test_service_level_falls_back_to_token(self):
        rate = {"object_id": "rate-1", "servicelevel": {"token": "ups_next_day_air"}}
        stub = ShippoStub(rates=httpx.Response(200, json={"results": [rate]}))

        label = await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert label.service_level == "ups_next_day_air"

    @pytest.mark.asyncio
    async def test_traced(self):
        tracer = MockTracer()
        gateway = ShippoLabelGateway(
            SETTINGS, transport=httpx.MockTransport(ShippoStub()), tracer=tracer
        )

        await gateway.create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert tracer.span_names == ["orderflow.gateway.shippo.create_label"]


class TestRefusals:
    @pytest.mark.asyncio
    async def test_not_configured(self):
        stub = ShippoStub()

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub, ShippoSettings()).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_NOT_CONFIGURED"
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_po_box_destination(self):
        stub = ShippoStub()
        po_box = SHIP_TO.model_copy(update={"street1": "P.O. Box 12"})

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, po_box, Parcel())

        assert exc_info.value.code == "PO_BOX_NOT_ALLOWED"
        assert stub.requests == []

    @pytest.mark.parametrize(
        ("street", "expected"),
        [
            ("PO Box 12", True),
            ("p.o. box 7", True),
            ("po 44", True),
            ("1 Main St", False),
            ("12 Pobox Lane", False),
        ],
    )
    def test_looks_like_po_box(self, street, expected):
        assert looks_like_po_box(street) is expected


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_shipment_rejected(self):
        stub = ShippoStub(shipment=httpx.Response(400, json={"message": "Invalid address"}))

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_SHIPMENT_ERROR"
        assert exc_info.value.message == "Invalid address"

    @pytest.mark.asyncio
    async def test_rates_error(self):
        stub = ShippoStub(rates=httpx.Response(500))

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_RATES_ERROR"

    @pytest.mark.asyncio
    async def test_no_rates(self):
        stub = ShippoStub(rates=httpx.Response(200, json={"results": []}))

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_NO_UPS_RATES"
        assert len(stub.requests) == 2

    @pytest.mark.asyncio
    async def test_transaction_not_successful(self):
        failed = {"status": "ERROR", "messages": [{"text": "Rate expired"}]}
        stub = ShippoStub(transaction=httpx.Response(201, json=failed))

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_LABEL_FAILED"
        assert exc_info.value.message == "Rate expired"

    @pytest.mark.asyncio
    async def test_transaction_rejected(self):
        stub = ShippoStub(transaction=httpx.Response(402, json={}))

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_TRANSACTION_ERROR"

    @pytest.mark.asyncio
    async def test_label_without_tracking_number(self):
        stub = ShippoStub(
            transaction=httpx.Response(201, json={**LABEL, "tracking_number": None})
        )

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_LABEL_FAILED"

    @pytest.mark.asyncio
    async def test_timeout(self):
        stub = ShippoStub(rates=httpx.ReadTimeout("timed out"))

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_TIMEOUT"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        stub = ShippoStub(shipment=httpx.ConnectError("connection refused"))

        with pytest.raises(LabelGatewayError) as exc_info:
            await make_gateway(stub).create_label(SHIP_FROM, SHIP_TO, Parcel())

        assert exc_info.value.code == "SHIPPO_ERROR"
