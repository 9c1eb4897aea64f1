"""
Property-based tests for the invoice aggregator.

Properties:
- Determinism: identical inputs give identical totals.
- Balance: balance_due == total - paid_amount, raw and rounded.
- Paid override: paid >= total always displays as paid.
- Proportional tax: with one uniform rate r on every row and a percent
  discount d, tax == subtotal * (1 - d/100) * r/100.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from hypothesis import given, settings
from hypothesis import strategies as st

from studio_engines.aggregation import (
    DiscountRule,
    DisplayStatus,
    InvoiceStatus,
    aggregate_line_items,
    derive_display_status,
)
from studio_engines.pricing import CustomLine, PriceList

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
EMPTY_PRICES = PriceList()

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("99999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
rates = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("25"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)
percents = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("100"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@st.composite
def custom_lines(draw, taxable=st.booleans()):
    return CustomLine(
        name="row",
        price=draw(amounts),
        quantity=draw(st.integers(min_value=1, max_value=20)),
        is_taxable=draw(taxable),
    )


@st.composite
def discounts(draw):
    kind = draw(st.sampled_from(["percent", "fixed"]))
    value = draw(percents) if kind == "percent" else draw(amounts)
    return DiscountRule.parse(kind, value)


def _payments(values):
    return [SimpleNamespace(id=uuid4(), amount=v) for v in values]


class TestAggregationProperties:

    @given(
        items=st.lists(custom_lines(), max_size=8),
        rate=rates,
        discount=discounts(),
        paid=st.lists(amounts, max_size=5),
    )
    @settings(max_examples=200)
    def test_deterministic(self, items, rate, discount, paid):
        payments = _payments(paid)
        first = aggregate_line_items(items, rate, EMPTY_PRICES, discount, payments)
        second = aggregate_line_items(items, rate, EMPTY_PRICES, discount, payments)
        assert first == second

    @given(
        items=st.lists(custom_lines(), max_size=8),
        rate=rates,
        discount=discounts(),
        paid=st.lists(amounts, max_size=5),
    )
    @settings(max_examples=200)
    def test_balance_is_total_minus_paid(self, items, rate, discount, paid):
        totals = aggregate_line_items(items, rate, EMPTY_PRICES, discount, _payments(paid))
        assert totals.balance_due == totals.total - totals.paid_amount
        rounded = totals.rounded()
        assert rounded.balance_due == rounded.total - rounded.paid_amount

    @given(
        items=st.lists(custom_lines(), min_size=1, max_size=8),
        rate=rates,
        discount=discounts(),
        extra=st.decimals(min_value=Decimal("0"), max_value=Decimal("500"), places=2),
        stored=st.sampled_from(list(InvoiceStatus)),
        days_overdue=st.integers(min_value=-30, max_value=365),
    )
    @settings(max_examples=200)
    def test_fully_paid_always_displays_paid(
        self, items, rate, discount, extra, stored, days_overdue,
    ):
        unpaid = aggregate_line_items(items, rate, EMPTY_PRICES, discount).rounded()
        payment = max(unpaid.total, Decimal("0")) + extra
        paid_values = [payment] if payment > 0 else []
        totals = aggregate_line_items(
            items, rate, EMPTY_PRICES, discount, _payments(paid_values),
        ).rounded()
        assert totals.paid_amount >= totals.total
        status = derive_display_status(
            stored, totals.balance_due, NOW - timedelta(days=days_overdue), NOW,
        )
        assert status == DisplayStatus.PAID

    @given(
        items=st.lists(custom_lines(taxable=st.just(True)), min_size=1, max_size=8),
        rate=rates,
        percent=percents,
    )
    @settings(max_examples=200)
    def test_proportional_tax_law(self, items, rate, percent):
        totals = aggregate_line_items(
            items, rate, EMPTY_PRICES, DiscountRule.percent(percent),
        )
        expected = totals.subtotal * (1 - percent / 100) * rate / 100
        assert abs(totals.tax - expected) <= Decimal("0.000001")
