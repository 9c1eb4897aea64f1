"""
Invoice Aggregator - totals, balance and status for one invoice.

Pure functions with deterministic behavior. No I/O.

This is the ONLY place invoice totals and statuses are derived. The editor,
list rows, the public payment page, the server-side recalculation and the
client-side reconciliation fallback all call into this module so the
formulas can never diverge between call sites.

Discount / tax rule:
    Tax is not recomputed per row after a discount. The discount is treated
    as applying uniformly to the whole invoice and total tax is rescaled by
    the same ratio the subtotal was reduced:

        tax = tax_before_discount * subtotal_after_discount / subtotal

    (zero when there is no tax or no subtotal). The discount is not clamped
    to the subtotal, so an oversized discount yields a negative subtotal and
    a negative tax contribution.

Usage:
    from studio_engines.aggregation import DiscountRule, aggregate_invoice

    totals = aggregate_invoice(priced_lines, DiscountRule.percent(10), payments)
    print(totals.total, totals.balance_due)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from studio_engines.ledger import LedgerEntry, PaymentLedger
from studio_engines.pricing import LineItem, PricedLine, PriceList, PricingMode, price_items
from studio_kernel.domain.clock import ensure_aware
from studio_kernel.domain.money import ONE_HUNDRED, ZERO, parse_amount, to_cents
from studio_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")


# ============================================================================
# Statuses
# ============================================================================


class InvoiceStatus(str, Enum):
    """Write-time payment status snapshot stored on the invoice."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class DisplayStatus(str, Enum):
    """Status shown to users; re-derived on every render."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


# ============================================================================
# Discount
# ============================================================================


class DiscountKind(str, Enum):
    PERCENT = "percent"
    FIXED = "fixed"


@dataclass(frozen=True)
class DiscountRule:
    """Percent-of-subtotal or fixed-amount reduction."""

    kind: DiscountKind = DiscountKind.PERCENT
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        value = parse_amount(self.value)
        # Negative input is treated like unparseable input
        if value < ZERO:
            value = ZERO
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "kind", DiscountKind(self.kind))

    @classmethod
    def parse(cls, kind: Any, raw_value: Any) -> DiscountRule:
        """Build from editor/stored values; unknown kinds mean percent."""
        raw_kind = getattr(kind, "value", kind)
        try:
            parsed_kind = (
                DiscountKind(str(raw_kind).strip().lower()) if raw_kind else DiscountKind.PERCENT
            )
        except ValueError:
            parsed_kind = DiscountKind.PERCENT
        return cls(kind=parsed_kind, value=parse_amount(raw_value))

    @classmethod
    def none(cls) -> DiscountRule:
        return cls()

    @classmethod
    def percent(cls, value: Decimal | str | int) -> DiscountRule:
        return cls(kind=DiscountKind.PERCENT, value=parse_amount(value))

    @classmethod
    def fixed(cls, value: Decimal | str | int) -> DiscountRule:
        return cls(kind=DiscountKind.FIXED, value=parse_amount(value))

    def amount_for(self, subtotal: Decimal) -> Decimal:
        if self.kind == DiscountKind.PERCENT:
            return subtotal * self.value / ONE_HUNDRED
        return self.value


# ============================================================================
# Totals
# ============================================================================


@dataclass(frozen=True)
class InvoiceTotals:
    """
    Aggregated figures for one invoice.

    Invariant: balance_due == total - paid_amount.
    """

    subtotal: Decimal
    tax_before_discount: Decimal
    discount_amount: Decimal
    subtotal_after_discount: Decimal
    tax: Decimal
    total: Decimal
    paid_amount: Decimal
    balance_due: Decimal

    def rounded(self) -> InvoiceTotals:
        """Two-decimal display copy; balance is re-derived from rounded figures."""
        total = to_cents(self.total)
        paid = to_cents(self.paid_amount)
        return replace(
            self,
            subtotal=to_cents(self.subtotal),
            tax_before_discount=to_cents(self.tax_before_discount),
            discount_amount=to_cents(self.discount_amount),
            subtotal_after_discount=to_cents(self.subtotal_after_discount),
            tax=to_cents(self.tax),
            total=total,
            paid_amount=paid,
            balance_due=total - paid,
        )

    @property
    def persisted_status(self) -> InvoiceStatus:
        return derive_persisted_status(self.paid_amount, self.total)


def aggregate_invoice(
    priced_lines: Iterable[PricedLine],
    discount: DiscountRule,
    payments: Iterable[LedgerEntry],
) -> InvoiceTotals:
    """
    Reduce priced rows, a discount and payments to invoice totals.

    Args:
        priced_lines: Output of ``price_item`` for every row
        discount: Discount rule owned by the invoice
        payments: Payment ledger (or any iterable of entries with ``amount``)

    Returns:
        InvoiceTotals (unrounded)
    """
    subtotal = ZERO
    tax_before_discount = ZERO
    for line in priced_lines:
        subtotal += line.base_price
        tax_before_discount += line.tax_on_item

    discount_amount = discount.amount_for(subtotal)
    subtotal_after_discount = subtotal - discount_amount

    if tax_before_discount > ZERO and subtotal > ZERO:
        tax = tax_before_discount * subtotal_after_discount / subtotal
    else:
        tax = ZERO

    total = subtotal_after_discount + tax
    ledger = payments if isinstance(payments, PaymentLedger) else PaymentLedger.of(payments)
    paid_amount = ledger.total_paid()

    return InvoiceTotals(
        subtotal=subtotal,
        tax_before_discount=tax_before_discount,
        discount_amount=discount_amount,
        subtotal_after_discount=subtotal_after_discount,
        tax=tax,
        total=total,
        paid_amount=paid_amount,
        balance_due=total - paid_amount,
    )


def aggregate_line_items(
    items: Iterable[LineItem],
    tax_rate: Decimal,
    price_list: PriceList,
    discount: DiscountRule,
    payments: Iterable[LedgerEntry] = (),
    mode: PricingMode = PricingMode.LIVE,
) -> InvoiceTotals:
    """Price every row with ``tax_rate`` in ``mode`` and aggregate."""
    return aggregate_invoice(
        price_items(items, tax_rate, price_list, mode), discount, payments,
    )


# ============================================================================
# Status derivation
# ============================================================================


def derive_persisted_status(paid_amount: Decimal, total: Decimal) -> InvoiceStatus:
    """Write-time status: paid >= total -> paid; paid > 0 -> partial."""
    if paid_amount >= total:
        return InvoiceStatus.PAID
    if paid_amount > ZERO:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return ensure_aware(value)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def derive_display_status(
    persisted_status: InvoiceStatus | str | None,
    balance_due: Decimal,
    due_date: date | datetime | None,
    now: datetime,
) -> DisplayStatus:
    """
    Status to show for an invoice.

    1. Nothing left to pay -> paid, whatever the stored status says.
    2. Due date in the past -> overdue.
    3. Otherwise the stored status (pending when unknown).
    """
    if balance_due <= ZERO:
        return DisplayStatus.PAID
    if due_date is not None and _as_datetime(due_date) < ensure_aware(now):
        return DisplayStatus.OVERDUE
    if persisted_status is None:
        return DisplayStatus.PENDING
    try:
        return DisplayStatus(InvoiceStatus(persisted_status).value)
    except ValueError:
        logger.warning("unknown_persisted_status", extra={
            "persisted_status": str(persisted_status),
        })
        return DisplayStatus.PENDING
