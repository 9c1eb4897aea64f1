"""
Invoice summaries for list rows and detail views.

Every read-only surface that shows invoice figures goes through
``summarize_invoice`` so list rows, the detail view and the public payment
page can never disagree on totals or status.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from studio_engines.aggregation import (
    DisplayStatus,
    InvoiceTotals,
    aggregate_line_items,
    derive_display_status,
)
from studio_engines.pricing import PriceList, PricingMode, rate_for_mode
from studio_modules.invoicing.models import Invoice


@dataclass(frozen=True)
class InvoiceSummary:
    """Display-ready figures for one saved invoice (rounded to cents)."""

    invoice_id: UUID
    label: str
    client_name: str | None
    tax_rate: Decimal
    totals: InvoiceTotals
    display_status: DisplayStatus

    @property
    def balance_due(self) -> Decimal:
        return self.totals.balance_due

    @property
    def is_settled(self) -> bool:
        return self.display_status == DisplayStatus.PAID


def summarize_invoice(
    invoice: Invoice,
    price_list: PriceList,
    live_rate: Decimal,
    now: datetime,
) -> InvoiceSummary:
    """
    Price a saved invoice in historical mode and derive its display status.

    Args:
        invoice: Saved invoice snapshot (items, discount, payments)
        price_list: Catalog prices for product rows
        live_rate: Today's resolved rate, used only when the invoice has no
            frozen rate
        now: Current time from the caller's clock
    """
    rate = rate_for_mode(PricingMode.HISTORICAL, live_rate, invoice.tax_rate)
    totals = aggregate_line_items(
        invoice.items,
        rate,
        price_list,
        invoice.discount,
        invoice.payments,
        mode=PricingMode.HISTORICAL,
    ).rounded()
    status = derive_display_status(
        invoice.status,
        totals.balance_due,
        invoice.due_date,
        now,
    )
    return InvoiceSummary(
        invoice_id=invoice.id,
        label=invoice.label,
        client_name=invoice.client_name,
        tax_rate=rate,
        totals=totals,
        display_status=status,
    )
