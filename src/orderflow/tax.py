"""
Sales and excise tax calculation.

Pure functions over ``Decimal``. Each amount is rounded to two places with
ROUND_HALF_UP independently; callers sum the rounded parts.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict

from orderflow.compliance.rules import normalize_state

CENT = Decimal("0.01")


def round_money(value: Decimal | int | str) -> Decimal:
    """Round to two decimal places, half up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxRates:
    """
    Rates for one jurisdiction.

    Attributes:
        sales_tax_rate: Fraction of the subtotal (0.0725 for 7.25%)
        excise_tax_per_gram: Currency amount per gram of net product weight
    """

    sales_tax_rate: Decimal = Decimal("0")
    excise_tax_per_gram: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.sales_tax_rate < 0:
            raise ValueError(f"sales_tax_rate must be non-negative, got {self.sales_tax_rate}")
        if self.excise_tax_per_gram < 0:
            raise ValueError(
                f"excise_tax_per_gram must be non-negative, got {self.excise_tax_per_gram}"
            )


@dataclass(frozen=True)
class TaxRateTable:
    """
    Jurisdiction-keyed tax rates with a default for unlisted jurisdictions.

    Example:
        >>> table = TaxRateTable(rates={"CA": TaxRates(Decimal("0.0725"))})
        >>> table.for_state("ca").sales_tax_rate
        Decimal('0.0725')
        >>> table.for_state("NY").sales_tax_rate
        Decimal('0')
    """

    default: TaxRates = field(default_factory=TaxRates)
    rates: Mapping[str, TaxRates] = field(default_factory=dict)

    def for_state(self, state: str) -> TaxRates:
        return self.rates.get(normalize_state(state), self.default)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> TaxRateTable:
        """
        Build a table whose default comes from environment variables.

        Reads ``SALES_TAX_RATE`` and ``EXCISE_TAX_PER_GRAM``; both default to 0.
        """
        env = os.environ if environ is None else environ
        return cls(
            default=TaxRates(
                sales_tax_rate=Decimal(env.get("SALES_TAX_RATE") or "0"),
                excise_tax_per_gram=Decimal(env.get("EXCISE_TAX_PER_GRAM") or "0"),
            )
        )


class TaxableWeight(BaseModel):
    """Net weight of one line (grams per unit) and its quantity."""

    model_config = ConfigDict(frozen=True)

    net_weight_grams: Decimal
    quantity: int


class TaxCalculation(BaseModel):
    """Result of a tax calculation; every amount is already rounded."""

    model_config = ConfigDict(frozen=True)

    sales_tax_amount: Decimal
    excise_tax_amount: Decimal
    total_tax_amount: Decimal
    total_weight_grams: Decimal
    sales_tax_rate: Decimal
    excise_tax_per_gram: Decimal


def calculate_taxes(
    subtotal: Decimal,
    shipping_state: str,
    items: Iterable[TaxableWeight],
    rates: TaxRateTable | None = None,
) -> TaxCalculation:
    """
    Compute sales and excise tax for an order.

    Args:
        subtotal: Sum of unit price times quantity
        shipping_state: Destination jurisdiction
        items: Net weight and quantity of each line
        rates: Rate table; an all-zero table when omitted

    Returns:
        TaxCalculation with each amount rounded half up to two places
    """
    table_rates = (rates or TaxRateTable()).for_state(shipping_state)
    total_weight = sum(
        (Decimal(item.net_weight_grams) * item.quantity for item in items),
        Decimal("0"),
    )

    sales_tax = round_money(Decimal(subtotal) * table_rates.sales_tax_rate)
    excise_tax = round_money(total_weight * table_rates.excise_tax_per_gram)

    return TaxCalculation(
        sales_tax_amount=sales_tax,
        excise_tax_amount=excise_tax,
        total_tax_amount=sales_tax + excise_tax,
        total_weight_grams=total_weight,
        sales_tax_rate=table_rates.sales_tax_rate,
        excise_tax_per_gram=table_rates.excise_tax_per_gram,
    )


__all__ = [
    "CENT",
    "TaxCalculation",
    "TaxRateTable",
    "TaxRates",
    "TaxableWeight",
    "calculate_taxes",
    "round_money",
]
