"""
Module: studio_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    invoice calculation engines.  This is the canonical import surface for
    higher layers (studio_modules, studio_services) and for read-only
    consumers such as list views and reporting, which must never re-derive
    totals with their own formulas.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import studio_kernel (domain helpers, logging) and sibling
    engine modules.  MUST NOT import studio_modules or studio_services.

Invariants enforced:
    - Purity: engines never read the clock; ``now`` is passed in.
    - Decimal-only arithmetic; floats are converted through ``str``.
    - Determinism: identical inputs always produce identical outputs.
"""

from studio_engines.aggregation import (
    DiscountKind,
    DiscountRule,
    DisplayStatus,
    InvoiceStatus,
    InvoiceTotals,
    aggregate_invoice,
    aggregate_line_items,
    derive_display_status,
    derive_persisted_status,
)
from studio_engines.ledger import LedgerEntry, PaymentLedger
from studio_engines.pricing import (
    CustomLine,
    LineItem,
    LineKind,
    PricedLine,
    PriceList,
    PricingMode,
    ProductLine,
    line_item_from_dict,
    line_item_to_dict,
    price_item,
    price_items,
    rate_for_mode,
)
from studio_engines.tax import TaxRateResolution, TaxRateSource, resolve_tax_rate

__all__ = [
    # aggregation
    "DiscountKind",
    "DiscountRule",
    "DisplayStatus",
    "InvoiceStatus",
    "InvoiceTotals",
    "aggregate_invoice",
    "aggregate_line_items",
    "derive_display_status",
    "derive_persisted_status",
    # ledger
    "LedgerEntry",
    "PaymentLedger",
    # pricing
    "CustomLine",
    "LineItem",
    "LineKind",
    "PricedLine",
    "PriceList",
    "PricingMode",
    "ProductLine",
    "line_item_from_dict",
    "line_item_to_dict",
    "price_item",
    "price_items",
    "rate_for_mode",
    # tax
    "TaxRateResolution",
    "TaxRateSource",
    "resolve_tax_rate",
]
