"""
Authorize.Net payment client.

Uses the JSON flavour of the ``createTransactionRequest`` API with
``authOnlyTransaction`` at order time and ``priorAuthCaptureTransaction`` at
fulfillment. Card data is sent once and never logged or stored; only the
transaction id and AVS/CVV result codes come back.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import httpx

from orderflow.gateways.errors import PaymentGatewayError
from orderflow.gateways.interface import Authorization, BillingDetails, Capture, CardDetails
from orderflow.observability import SpanKindEnum, Tracer, create_tracer
from orderflow.observability.attributes import ATTR_GATEWAY, ATTR_GATEWAY_OPERATION
from orderflow.serialization import json_dumps, json_loads

if TYPE_CHECKING:
    from orderflow.config import AuthorizeNetSettings

logger = logging.getLogger(__name__)

APPROVED = "1"


class AuthorizeNetPaymentGateway:
    """
    Authorize-then-capture payments through Authorize.Net.

    Example:
        >>> gateway = AuthorizeNetPaymentGateway(AuthorizeNetSettings.from_env())
        >>> auth = await gateway.authorize(Decimal("32.39"), card, billing)
        >>> capture = await gateway.capture(auth.transaction_id, Decimal("32.39"))
    """

    provider_name = "authorizenet"

    def __init__(
        self,
        settings: AuthorizeNetSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def _merchant_authentication(self) -> dict[str, str]:
        return {
            "name": self._settings.api_login_id,
            "transactionKey": self._settings.transaction_key,
        }

    async def authorize(
        self, amount: Decimal, card: CardDetails, billing: BillingDetails
    ) -> Authorization:
        payload = {
            "createTransactionRequest": {
                "merchantAuthentication": self._merchant_authentication(),
                "transactionRequest": {
                    "transactionType": "authOnlyTransaction",
                    "amount": _format_amount(amount),
                    "payment": {
                        "creditCard": {
                            "cardNumber": card.number.get_secret_value(),
                            "expirationDate": card.expiration,
                            "cardCode": card.cvv.get_secret_value(),
                        }
                    },
                    "billTo": {
                        "firstName": billing.first_name,
                        "lastName": billing.last_name,
                        "address": billing.address,
                        "city": billing.city,
                        "state": billing.state,
                        "zip": billing.zip,
                    },
                    "transactionSettings": {
                        "setting": [{"settingName": "emailCustomer", "settingValue": "false"}]
                    },
                },
            }
        }

        data = await self._send("authorize", payload, "Payment authorization timeout")
        result = data.get("transactionResponse") or {}
        transaction_id = result.get("transId")
        if result.get("responseCode") == APPROVED and transaction_id:
            logger.info(
                "Payment authorized",
                extra={"transaction_id": transaction_id, "avs_result": result.get("avsResultCode")},
            )
            return Authorization(
                transaction_id=str(transaction_id),
                avs_result=result.get("avsResultCode") or None,
                cvv_result=result.get("cvvResultCode") or None,
            )

        reason_code, message = _decline_details(data, result)
        logger.warning(
            "Payment authorization declined: %s",
            reason_code or "AUTHORIZATION_DECLINED",
            extra={"response_code": result.get("responseCode")},
        )
        raise PaymentGatewayError(
            reason_code or "AUTHORIZATION_DECLINED",
            message or "Payment authorization declined",
        )

    async def capture(self, transaction_id: str, amount: Decimal) -> Capture:
        payload = {
            "createTransactionRequest": {
                "merchantAuthentication": self._merchant_authentication(),
                "transactionRequest": {
                    "transactionType": "priorAuthCaptureTransaction",
                    "amount": _format_amount(amount),
                    "refTransId": transaction_id,
                },
            }
        }

        data = await self._send("capture", payload, "Payment capture timeout")
        result = data.get("transactionResponse") or {}
        capture_id = result.get("transId")
        if result.get("responseCode") == APPROVED and capture_id:
            logger.info(
                "Payment captured",
                extra={"transaction_id": transaction_id, "capture_transaction_id": capture_id},
            )
            return Capture(transaction_id=str(capture_id))

        _, message = _decline_details(data, result)
        raise PaymentGatewayError("CAPTURE_FAILED", message or "Payment capture failed")

    async def _send(
        self, operation: str, payload: dict[str, Any], timeout_message: str
    ) -> dict[str, Any]:
        if not self._settings.configured:
            raise PaymentGatewayError(
                "AUTHORIZENET_NOT_CONFIGURED", "Authorize.Net credentials not configured"
            )

        with self._tracer.span_with_kind(
            f"orderflow.gateway.authorizenet.{operation}",
            SpanKindEnum.CLIENT,
            {ATTR_GATEWAY: self.provider_name, ATTR_GATEWAY_OPERATION: operation},
        ):
            try:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self._settings.timeout), transport=self._transport
                ) as client:
                    response = await client.post(
                        self._settings.endpoint,
                        content=json_dumps(payload),
                        headers={"Content-Type": "application/json"},
                    )
            except httpx.TimeoutException as e:
                raise PaymentGatewayError("AUTHORIZENET_TIMEOUT", timeout_message) from e
            except httpx.HTTPError as e:
                raise PaymentGatewayError(
                    "AUTHORIZENET_ERROR", str(e) or "Unknown Authorize.Net error"
                ) from e

        if not response.is_success:
            raise PaymentGatewayError(
                "AUTHORIZENET_GATEWAY_ERROR",
                f"Authorize.Net API error: {response.status_code} {response.reason_phrase}",
            )

        # The JSON endpoint prefixes its body with a UTF-8 BOM.
        try:
            data = json_loads(response.content.decode("utf-8-sig"))
        except ValueError as e:
            raise PaymentGatewayError(
                "AUTHORIZENET_ERROR", "Unreadable Authorize.Net response"
            ) from e
        return data if isinstance(data, dict) else {}


def _format_amount(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _decline_details(data: dict[str, Any], result: dict[str, Any]) -> tuple[str | None, str | None]:
    """Reason code and message from a non-approved response."""
    errors = result.get("errors") or []
    if errors:
        first = errors[0]
        return first.get("errorCode"), first.get("errorText")
    messages = result.get("messages") or []
    if messages:
        return messages[0].get("code"), messages[0].get("description")
    top = (data.get("messages") or {}).get("message") or []
    if top:
        return top[0].get("code"), top[0].get("text")
    return None, None


__all__ = ["AuthorizeNetPaymentGateway"]
