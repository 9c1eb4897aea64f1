"""
Tax Rate Resolver - effective sales-tax rate for a client.

Pure function with no I/O. The rule is binary, not a jurisdiction table:
clients billed inside the configured home jurisdiction (or whose
jurisdiction is unknown) pay the default rate; clients billed anywhere else
are not taxed by this engine.

Usage:
    from studio_engines.tax import resolve_tax_rate

    resolution = resolve_tax_rate(
        client_state="NV",
        home_state="CA",
        default_rate=Decimal("8.25"),
    )
    print(resolution.rate)    # Decimal("0")
    print(resolution.source)  # TaxRateSource.OUT_OF_STATE

The same resolver serves the editor (live settings) and display of saved
invoices; for the latter, callers price with the rate frozen on the invoice
(see ``studio_engines.pricing.PricingMode.HISTORICAL``).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from studio_kernel.domain.money import ZERO, parse_amount
from studio_kernel.logging_config import get_logger

logger = get_logger("engines.tax")


class TaxRateSource(str, Enum):
    """Why a given rate applied."""

    DEFAULT = "default"
    OUT_OF_STATE = "out_of_state"


@dataclass(frozen=True)
class TaxRateResolution:
    """Effective rate (percent, e.g. 8.25) and its provenance."""

    rate: Decimal
    source: TaxRateSource

    @property
    def is_default(self) -> bool:
        return self.source == TaxRateSource.DEFAULT


def _normalize(jurisdiction: str | None) -> str:
    return jurisdiction.strip().upper() if jurisdiction else ""


def resolve_tax_rate(
    client_state: str | None,
    home_state: str | None,
    default_rate: Decimal | str | int,
) -> TaxRateResolution:
    """
    Resolve the effective tax rate for a client.

    Args:
        client_state: Client billing jurisdiction; None/blank means unknown.
        home_state: Configured home jurisdiction; None/blank disables the
            out-of-state rule.
        default_rate: Rate in percent, must be >= 0.

    Returns:
        TaxRateResolution

    Raises:
        ValueError: If the default rate is negative.
    """
    rate = parse_amount(default_rate)
    if rate < ZERO:
        raise ValueError("Default tax rate cannot be negative")

    client = _normalize(client_state)
    home = _normalize(home_state)

    if client and home and client != home:
        logger.debug("tax_rate_out_of_state", extra={
            "client_state": client,
            "home_state": home,
        })
        return TaxRateResolution(rate=ZERO, source=TaxRateSource.OUT_OF_STATE)

    return TaxRateResolution(rate=rate, source=TaxRateSource.DEFAULT)
