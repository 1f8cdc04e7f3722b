"""
Veriff Station API age verification client.

Creates a verification session, then polls the decision endpoint at a fixed
interval for a bounded number of attempts. Every request is signed with
HMAC-SHA256 over ``METHOD\\nPATH\\nTIMESTAMP\\nBODY``.

The client fails closed: missing credentials, transport errors, non-OK
responses and polling exhaustion all raise ``AgeVerificationError``. No
personal data is logged.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

import httpx

from orderflow.compliance.age import calculate_age
from orderflow.gateways.errors import AgeVerificationError
from orderflow.gateways.interface import AgeVerificationOutcome, AgeVerificationRequest
from orderflow.observability import SpanKindEnum, Tracer, create_tracer
from orderflow.observability.attributes import (
    ATTR_GATEWAY,
    ATTR_GATEWAY_OPERATION,
    ATTR_POLL_ATTEMPT,
)
from orderflow.serialization import json_dumps
from orderflow.types import VerificationStatus

if TYPE_CHECKING:
    from orderflow.config import VeriffSettings

logger = logging.getLogger(__name__)

SESSIONS_PATH = "/v1/sessions"
PENDING_STATUSES = frozenset({"pending", "processing"})
APPROVED_STATUSES = frozenset({"approved", "success"})


def sign(signature_key: str, method: str, path: str, timestamp: str, body: str) -> str:
    """Hex HMAC-SHA256 signature of a Veriff request."""
    message = f"{method}\n{path}\n{timestamp}\n{body}"
    return hmac.new(signature_key.encode(), message.encode(), hashlib.sha256).hexdigest()


def _today() -> date:
    return datetime.now(UTC).date()


class VeriffAgeVerificationGateway:
    """
    Age verification through Veriff.

    Example:
        >>> gateway = VeriffAgeVerificationGateway(VeriffSettings.from_env())
        >>> outcome = await gateway.verify(request)
        >>> outcome.status
        <VerificationStatus.PASS: 'PASS'>

    Args:
        settings: Credentials, base URL and polling bounds
        minimum_age: Age required for an approved decision to PASS
        transport: Optional httpx transport (``httpx.MockTransport`` in tests)
        sleep: Awaitable used between polls
        clock: Returns unix seconds for the ``X-TIMESTAMP`` header
        today: Returns the date used for age arithmetic
    """

    provider_name = "veriff"

    def __init__(
        self,
        settings: VeriffSettings,
        *,
        minimum_age: int = 21,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = _today,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._settings = settings
        self._minimum_age = minimum_age
        self._transport = transport
        self._sleep = sleep
        self._clock = clock
        self._today = today
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    def _headers(self, method: str, path: str, body: str) -> dict[str, str]:
        timestamp = str(int(self._clock()))
        return {
            "Content-Type": "application/json",
            "X-AUTH-CLIENT": self._settings.api_key,
            "X-TIMESTAMP": timestamp,
            "X-SIGNATURE": sign(self._settings.signature_key, method, path, timestamp, body),
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._settings.base_url.rstrip("/"),
            timeout=httpx.Timeout(self._settings.request_timeout),
            transport=self._transport,
        )

    async def verify(self, request: AgeVerificationRequest) -> AgeVerificationOutcome:
        if not self._settings.configured:
            raise AgeVerificationError(
                "VERIFF_NOT_CONFIGURED", "Veriff credentials not configured"
            )

        with self._tracer.span_with_kind(
            "orderflow.gateway.veriff.verify",
            SpanKindEnum.CLIENT,
            {ATTR_GATEWAY: self.provider_name, ATTR_GATEWAY_OPERATION: "verify"},
        ):
            async with self._client() as client:
                session_id = await self._create_session(client, request)
                decision = await self._poll_decision(client, session_id)

        outcome = self._interpret(decision, session_id, request)
        logger.info(
            "Veriff decision %s for session %s",
            outcome.status.value,
            session_id,
            extra={"reference_id": session_id, "reason_code": outcome.reason_code},
        )
        return outcome

    async def _create_session(
        self, client: httpx.AsyncClient, request: AgeVerificationRequest
    ) -> str:
        verification: dict[str, Any] = {
            "person": {
                "firstName": request.first_name,
                "lastName": request.last_name,
                "dateOfBirth": request.date_of_birth.isoformat(),
            }
        }
        if request.address is not None:
            a = request.address
            verification["address"] = {
                "fullAddress": f"{a.line1}, {a.city}, {a.state} {a.zip}",
                "country": a.country,
            }
        body = json_dumps({"verification": verification})

        try:
            response = await client.post(
                SESSIONS_PATH,
                content=body,
                headers=self._headers("POST", SESSIONS_PATH, body),
            )
        except httpx.TimeoutException as e:
            raise AgeVerificationError("VERIFF_TIMEOUT", "Veriff session creation timeout") from e
        except httpx.HTTPError as e:
            raise AgeVerificationError("VERIFF_ERROR", str(e) or "Unknown Veriff error") from e

        if not response.is_success:
            raise AgeVerificationError(
                "VERIFF_SESSION_ERROR",
                _error_message(response) or f"Veriff API error: {response.status_code}",
            )

        session_id = _json(response).get("id")
        if not session_id:
            raise AgeVerificationError(
                "VERIFF_SESSION_ERROR", "Veriff session response has no id"
            )
        return str(session_id)

    async def _poll_decision(self, client: httpx.AsyncClient, session_id: str) -> dict[str, Any]:
        path = f"{SESSIONS_PATH}/{session_id}/decision"
        attempts = self._settings.max_poll_attempts

        for attempt in range(attempts):
            with self._tracer.span(
                "orderflow.gateway.veriff.poll",
                {ATTR_GATEWAY: self.provider_name, ATTR_POLL_ATTEMPT: attempt + 1},
            ):
                try:
                    response = await client.get(path, headers=self._headers("GET", path, ""))
                except httpx.TimeoutException as e:
                    raise AgeVerificationError(
                        "VERIFF_TIMEOUT", "Veriff decision polling timeout"
                    ) from e
                except httpx.HTTPError as e:
                    if attempt < attempts - 1:
                        logger.debug(
                            "Veriff poll transport error, retrying",
                            extra={"reference_id": session_id, "attempt": attempt + 1},
                        )
                        await self._sleep(self._settings.poll_interval)
                        continue
                    raise AgeVerificationError(
                        "VERIFF_ERROR", str(e) or "Unknown Veriff error"
                    ) from e

            if response.status_code == 404:
                await self._sleep(self._settings.poll_interval)
                continue
            if not response.is_success:
                raise AgeVerificationError(
                    "VERIFF_DECISION_ERROR",
                    _error_message(response) or f"Veriff API error: {response.status_code}",
                )

            data = _json(response)
            if data.get("status") not in PENDING_STATUSES:
                return data
            await self._sleep(self._settings.poll_interval)

        raise AgeVerificationError(
            "VERIFF_TIMEOUT", "Veriff decision polling timeout - no final decision received"
        )

    def _interpret(
        self, data: dict[str, Any], session_id: str, request: AgeVerificationRequest
    ) -> AgeVerificationOutcome:
        decision = data.get("decision") or {}
        verification = data.get("verification") or {}
        status = decision.get("status") or verification.get("status") or data.get("status")

        if status in APPROVED_STATUSES:
            age = self._resolve_age(decision.get("person") or {}, request)
            if age >= self._minimum_age:
                return AgeVerificationOutcome(
                    status=VerificationStatus.PASS, reference_id=session_id, age=age
                )
            return AgeVerificationOutcome(
                status=VerificationStatus.FAIL,
                reference_id=session_id,
                reason_code=f"UNDER_{self._minimum_age}",
                age=age,
                message=f"Age verification approved but customer is under {self._minimum_age}",
            )

        code = data.get("code")
        reason = str(code) if code is not None else (status or "VERIFF_DECLINED")
        return AgeVerificationOutcome(
            status=VerificationStatus.FAIL,
            reference_id=session_id,
            reason_code=reason,
            message=f"Veriff decision: {status}",
        )

    def _resolve_age(self, person: dict[str, Any], request: AgeVerificationRequest) -> int:
        if person.get("age") is not None:
            return int(person["age"])
        dob = request.date_of_birth
        if person.get("dateOfBirth"):
            try:
                dob = date.fromisoformat(str(person["dateOfBirth"])[:10])
            except ValueError:
                logger.debug("Unparseable dateOfBirth in Veriff decision, using request DOB")
        return calculate_age(dob, self._today())


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _error_message(response: httpx.Response) -> str | None:
    message = _json(response).get("message")
    return str(message) if message else None


__all__ = ["VeriffAgeVerificationGateway", "sign"]
