"""
Configuration classes for orderflow.

This module provides:
- OrderFlowConfig: Saga, storage and policy settings
- VeriffSettings: Age verification provider credentials and polling
- AuthorizeNetSettings: Payment gateway credentials and timeout
- ShippoSettings: Carrier label provider credentials and timeout

All classes are frozen dataclasses validated in ``__post_init__`` and can
be loaded from environment variables with ``from_env()``.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from orderflow.compliance.rules import DEFAULT_POLICIES, JurisdictionPolicies
from orderflow.gateways.interface import Parcel, ShippingAddress
from orderflow.tax import TaxRateTable

DEFAULT_SHIP_FROM = ShippingAddress(
    name="Lumi Commerce",
    street1="123 Warehouse St",
    city="Los Angeles",
    state="CA",
    zip="90001",
    country="US",
    phone="555-0000",
)


def _env(environ: Mapping[str, str] | None) -> Mapping[str, str]:
    return os.environ if environ is None else environ


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class OrderFlowConfig:
    """
    Settings shared by the sagas and the report generator.

    Attributes:
        minimum_age: Age gate enforced by the order creation saga even when
            the provider approves
        lock_timeout: Seconds to wait for a per-order or per-report lock
        storage_bucket: Bucket recorded on stored file references
        label_key_prefix: Object key prefix for archived shipping labels
        report_key_prefix: Object key prefix for regulatory reports
        ship_from: Warehouse address printed on shipping labels
        parcel: Fixed parcel profile used for every label
        tax_rates: Jurisdiction-keyed sales and excise tax rates
        jurisdiction_policies: Compliance restrictions per jurisdiction
        side_channel_timeout: Seconds to wait for best-effort audit and
            notification tasks on shutdown

    Example:
        >>> config = OrderFlowConfig(minimum_age=21, lock_timeout=5.0)
        >>> config.label_key_prefix
        'shipping-labels'
    """

    minimum_age: int = 21
    lock_timeout: float = 10.0
    storage_bucket: str = "lumi-files"
    label_key_prefix: str = "shipping-labels"
    report_key_prefix: str = "pact-reports"
    ship_from: ShippingAddress = DEFAULT_SHIP_FROM
    parcel: Parcel = field(default_factory=Parcel)
    tax_rates: TaxRateTable = field(default_factory=TaxRateTable)
    jurisdiction_policies: JurisdictionPolicies = DEFAULT_POLICIES
    side_channel_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.minimum_age < 1:
            raise ValueError(
                f"minimum_age must be positive, got {self.minimum_age}. "
                "Use 21 (default) for US federal nicotine sales."
            )
        if self.lock_timeout <= 0:
            raise ValueError(
                f"lock_timeout must be positive, got {self.lock_timeout}. "
                "Use a value like 10.0 (default)."
            )
        if self.side_channel_timeout <= 0:
            raise ValueError(
                f"side_channel_timeout must be positive, got {self.side_channel_timeout}."
            )
        if not self.storage_bucket:
            raise ValueError("storage_bucket must not be empty.")
        for name in ("label_key_prefix", "report_key_prefix"):
            value = getattr(self, name)
            if not value or value.startswith("/") or value.endswith("/"):
                raise ValueError(
                    f"{name} must be a non-empty key prefix without leading or "
                    f"trailing slashes, got {value!r}."
                )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> OrderFlowConfig:
        """
        Load configuration from environment variables.

        Variables:
            ORDERFLOW_MINIMUM_AGE, ORDERFLOW_LOCK_TIMEOUT, R2_BUCKET_NAME,
            SHIPPING_FROM_ADDRESS (JSON object), SALES_TAX_RATE,
            EXCISE_TAX_PER_GRAM
        """
        env = _env(environ)
        ship_from = DEFAULT_SHIP_FROM
        raw_from = env.get("SHIPPING_FROM_ADDRESS")
        if raw_from:
            ship_from = parse_ship_from(json.loads(raw_from))
        return cls(
            minimum_age=_int(env, "ORDERFLOW_MINIMUM_AGE", 21),
            lock_timeout=_float(env, "ORDERFLOW_LOCK_TIMEOUT", 10.0),
            storage_bucket=env.get("R2_BUCKET_NAME") or "lumi-files",
            ship_from=ship_from,
            tax_rates=TaxRateTable.from_env(env),
        )


def parse_ship_from(data: Mapping[str, Any]) -> ShippingAddress:
    """
    Build a ship-from address, falling back per field to the warehouse default.

    Accepts ``zip`` or ``postalCode`` and ``street1`` or ``line1``.
    """
    default = DEFAULT_SHIP_FROM
    return ShippingAddress(
        name=data.get("name") or default.name,
        street1=data.get("street1") or data.get("line1") or default.street1,
        street2=data.get("street2") or data.get("line2"),
        city=data.get("city") or default.city,
        state=data.get("state") or default.state,
        zip=data.get("zip") or data.get("postalCode") or default.zip,
        country=data.get("country") or default.country,
        phone=data.get("phone") or default.phone,
    )


@dataclass(frozen=True)
class VeriffSettings:
    """
    Age verification provider settings.

    Attributes:
        api_key: Sent as X-AUTH-CLIENT
        signature_key: HMAC-SHA256 key for request signatures
        base_url: Provider API root
        request_timeout: Per-request timeout in seconds
        poll_interval: Seconds between decision polls
        max_poll_attempts: Decision polls before failing closed
    """

    api_key: str = ""
    signature_key: str = ""
    base_url: str = "https://stationapi.veriff.com"
    request_timeout: float = 30.0
    poll_interval: float = 2.0
    max_poll_attempts: int = 15

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}.")
        if self.poll_interval < 0:
            raise ValueError(f"poll_interval must be non-negative, got {self.poll_interval}.")
        if self.max_poll_attempts < 1:
            raise ValueError(
                f"max_poll_attempts must be at least 1, got {self.max_poll_attempts}. "
                "Use 15 (default) for roughly 30 seconds of polling."
            )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.signature_key)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> VeriffSettings:
        env = _env(environ)
        return cls(
            api_key=env.get("VERIFF_API_KEY", ""),
            signature_key=env.get("VERIFF_SIGNATURE_KEY", ""),
            base_url=env.get("VERIFF_BASE_URL") or "https://stationapi.veriff.com",
            request_timeout=_float(env, "VERIFF_REQUEST_TIMEOUT", 30.0),
            poll_interval=_float(env, "VERIFF_POLL_INTERVAL", 2.0),
            max_poll_attempts=_int(env, "VERIFF_MAX_POLL_ATTEMPTS", 15),
        )


@dataclass(frozen=True)
class AuthorizeNetSettings:
    """
    Payment gateway settings.

    Attributes:
        api_login_id: Merchant login id
        transaction_key: Merchant transaction key
        environment: 'sandbox' or 'production'
        timeout: Per-request timeout in seconds
    """

    api_login_id: str = ""
    transaction_key: str = ""
    environment: str = "sandbox"
    timeout: float = 15.0

    def __post_init__(self) -> None:
        if self.environment not in ("sandbox", "production"):
            raise ValueError(
                f"environment must be 'sandbox' or 'production', got {self.environment!r}."
            )
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}.")

    @property
    def configured(self) -> bool:
        return bool(self.api_login_id and self.transaction_key)

    @property
    def endpoint(self) -> str:
        if self.environment == "production":
            return "https://api.authorize.net/xml/v1/request.api"
        return "https://apitest.authorize.net/xml/v1/request.api"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AuthorizeNetSettings:
        env = _env(environ)
        return cls(
            api_login_id=env.get("AUTHORIZENET_API_LOGIN_ID", ""),
            transaction_key=env.get("AUTHORIZENET_TRANSACTION_KEY", ""),
            environment=env.get("AUTHORIZENET_ENV") or "sandbox",
            timeout=_float(env, "AUTHORIZENET_TIMEOUT", 15.0),
        )


@dataclass(frozen=True)
class ShippoSettings:
    """
    Carrier label provider settings.

    Attributes:
        token: API token sent as ``ShippoToken <token>``
        base_url: Provider API root
        carrier: Carrier whose rates are requested
        timeout: Per-request timeout in seconds
        download_timeout: Timeout for fetching label PDFs
    """

    token: str = ""
    base_url: str = "https://api.goshippo.com"
    carrier: str = "UPS"
    timeout: float = 30.0
    download_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}.")
        if self.download_timeout <= 0:
            raise ValueError(f"download_timeout must be positive, got {self.download_timeout}.")

    @property
    def configured(self) -> bool:
        return bool(self.token)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ShippoSettings:
        env = _env(environ)
        return cls(
            token=env.get("SHIPPO_TOKEN", ""),
            timeout=_float(env, "SHIPPO_TIMEOUT", 30.0),
        )


__all__ = [
    "DEFAULT_SHIP_FROM",
    "AuthorizeNetSettings",
    "OrderFlowConfig",
    "ShippoSettings",
    "VeriffSettings",
    "parse_ship_from",
]
