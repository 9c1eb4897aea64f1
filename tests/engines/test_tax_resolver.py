"""Tests for the in-state / out-of-state tax rate rule."""

from decimal import Decimal

import pytest

from studio_engines.tax import TaxRateSource, resolve_tax_rate


class TestResolveTaxRate:

    def test_in_state_client_gets_default_rate(self):
        resolution = resolve_tax_rate("CA", "CA", Decimal("8.25"))
        assert resolution.rate == Decimal("8.25")
        assert resolution.source == TaxRateSource.DEFAULT
        assert resolution.is_default

    def test_out_of_state_client_is_not_taxed(self):
        resolution = resolve_tax_rate("NV", "CA", Decimal("8.25"))
        assert resolution.rate == Decimal("0")
        assert resolution.source == TaxRateSource.OUT_OF_STATE
        assert not resolution.is_default

    def test_unknown_client_jurisdiction_gets_default_rate(self):
        """A client with no billing state is treated as in-state."""
        for client_state in (None, "", "   "):
            resolution = resolve_tax_rate(client_state, "CA", "7.5")
            assert resolution.rate == Decimal("7.5")
            assert resolution.source == TaxRateSource.DEFAULT

    def test_no_home_jurisdiction_taxes_everyone(self):
        resolution = resolve_tax_rate("NV", None, 10)
        assert resolution.rate == Decimal("10")
        assert resolution.source == TaxRateSource.DEFAULT

    def test_jurisdictions_compared_case_and_space_insensitive(self):
        resolution = resolve_tax_rate(" ca ", "CA", "10")
        assert resolution.source == TaxRateSource.DEFAULT

    def test_zero_default_rate_is_allowed(self):
        resolution = resolve_tax_rate("CA", "CA", 0)
        assert resolution.rate == Decimal("0")
        assert resolution.source == TaxRateSource.DEFAULT

    def test_negative_default_rate_rejected(self):
        with pytest.raises(ValueError, match="negative"):
            resolve_tax_rate("CA", "CA", Decimal("-1"))

    def test_pure_and_deterministic(self):
        first = resolve_tax_rate("NV", "CA", "9")
        second = resolve_tax_rate("NV", "CA", "9")
        assert first == second
