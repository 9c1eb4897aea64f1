"""Tests for line item pricing and the stored item shape."""

from decimal import Decimal

import pytest

from studio_engines.pricing import (
    CustomLine,
    LineKind,
    PriceList,
    PricingMode,
    ProductLine,
    line_item_from_dict,
    line_item_to_dict,
    price_item,
    price_items,
    rate_for_mode,
)


@pytest.fixture
def prices() -> PriceList:
    return PriceList({"p-1": Decimal("100"), "p-2": "12.50"})


class TestProductPricing:

    def test_taxable_product_line(self, prices):
        """One taxable product, unit 100, qty 2, rate 10%."""
        priced = price_item(
            ProductLine(product_id="p-1", quantity=2, is_taxable=True),
            Decimal("10"),
            prices,
        )
        assert priced.unit_price == Decimal("100")
        assert priced.base_price == Decimal("200")
        assert priced.tax_on_item == Decimal("20")
        assert priced.total == Decimal("220")
        assert priced.resolved

    def test_non_taxable_product_has_no_tax(self, prices):
        priced = price_item(ProductLine(product_id="p-2", quantity=3), Decimal("10"), prices)
        assert priced.base_price == Decimal("37.50")
        assert priced.tax_on_item == Decimal("0")
        assert priced.total == Decimal("37.50")

    def test_missing_product_prices_to_zero(self, prices):
        priced = price_item(
            ProductLine(product_id="deleted", quantity=5, is_taxable=True),
            Decimal("10"),
            prices,
        )
        assert priced.unit_price == Decimal("0")
        assert priced.base_price == Decimal("0")
        assert priced.tax_on_item == Decimal("0")
        assert priced.total == Decimal("0")
        assert not priced.resolved

    def test_product_id_compared_as_string(self):
        prices = PriceList({42: "5"})
        priced = price_item(ProductLine(product_id=42), Decimal("0"), prices)
        assert priced.unit_price == Decimal("5")


class TestCustomPricing:

    def test_custom_line_uses_inline_price(self, prices):
        priced = price_item(
            CustomLine(name="Retouching", price="45.00", quantity=2, is_taxable=True),
            Decimal("8.25"),
            prices,
        )
        assert priced.base_price == Decimal("90.00")
        assert priced.tax_on_item == Decimal("7.425")
        assert priced.total == Decimal("97.425")

    def test_unparseable_price_defaults_to_zero(self, prices):
        priced = price_item(CustomLine(name="Misc", price="abc"), Decimal("10"), prices)
        assert priced.unit_price == Decimal("0")
        assert priced.total == Decimal("0")
        assert priced.resolved

    def test_leading_number_in_price_is_used(self):
        line = CustomLine(name="Misc", price="12.5abc")
        assert line.price == Decimal("12.5")


class TestQuantityDefaults:

    @pytest.mark.parametrize("raw", [None, "", "abc", 0, -3, "0", "-2", True])
    def test_bad_quantity_defaults_to_one(self, raw):
        assert ProductLine(product_id="p-1", quantity=raw).quantity == 1

    def test_quantity_leading_integer(self):
        assert CustomLine(name="x", quantity="3 hrs").quantity == 3
        assert CustomLine(name="x", quantity="2.7").quantity == 2


class TestUnsupportedItem:

    def test_unknown_variant_raises(self, prices):
        with pytest.raises(TypeError):
            price_item({"type": "product"}, Decimal("10"), prices)


class TestPricingMode:

    def test_live_mode_ignores_frozen_rate(self):
        assert rate_for_mode(PricingMode.LIVE, Decimal("10"), Decimal("7")) == Decimal("10")

    def test_historical_mode_uses_frozen_rate(self):
        assert rate_for_mode(PricingMode.HISTORICAL, Decimal("10"), Decimal("7")) == Decimal("7")

    def test_historical_mode_falls_back_when_frozen_rate_unset(self):
        assert rate_for_mode(PricingMode.HISTORICAL, Decimal("10"), None) == Decimal("10")
        assert rate_for_mode(PricingMode.HISTORICAL, Decimal("10"), Decimal("0")) == Decimal("10")

    def test_price_items_prices_every_row(self, prices):
        rows = price_items(
            [ProductLine(product_id="p-1"), CustomLine(name="x", price="5")],
            Decimal("0"),
            prices,
        )
        assert [r.total for r in rows] == [Decimal("100"), Decimal("5")]


class TestStoredShape:

    def test_missing_type_means_product(self):
        item = line_item_from_dict({"productId": "p-1", "qty": "2", "isTaxable": True})
        assert isinstance(item, ProductLine)
        assert item.product_id == "p-1"
        assert item.quantity == 2
        assert item.is_taxable

    def test_snake_case_keys_accepted(self):
        item = line_item_from_dict({
            "type": "custom",
            "name": "Album",
            "price": "300",
            "quantity": 1,
            "is_taxable": True,
        })
        assert isinstance(item, CustomLine)
        assert item.price == Decimal("300")
        assert item.is_taxable

    def test_to_dict_writes_stored_keys(self):
        data = line_item_to_dict(CustomLine(name="Album", price="300", quantity=2))
        assert data["type"] == LineKind.CUSTOM.value
        assert data["qty"] == 2
        assert data["price"] == "300"
        assert line_item_from_dict(data) == CustomLine(name="Album", price="300", quantity=2)


class TestSavedUnitPrice:

    def test_historical_mode_prefers_saved_price(self, prices):
        line = ProductLine(product_id="p-1", quantity=2, stored_unit_price="80")
        assert price_item(line, Decimal("0"), prices, PricingMode.HISTORICAL).base_price == Decimal("160")
        assert price_item(line, Decimal("0"), prices, PricingMode.LIVE).base_price == Decimal("200")

    def test_historical_mode_prices_deleted_product_from_saved_price(self, prices):
        line = ProductLine(
            product_id="deleted", quantity=3, is_taxable=True, stored_unit_price="10",
        )
        priced = price_item(line, Decimal("10"), prices, PricingMode.HISTORICAL)
        assert priced.resolved
        assert priced.base_price == Decimal("30")
        assert priced.total == Decimal("33")

    def test_live_mode_still_zeroes_deleted_product(self, prices):
        line = ProductLine(product_id="deleted", stored_unit_price="10")
        assert not price_item(line, Decimal("10"), prices).resolved

    def test_historical_mode_without_saved_price_uses_catalog(self, prices):
        priced = price_items(
            [ProductLine(product_id="p-2"), ProductLine(product_id="deleted")],
            Decimal("0"),
            prices,
            PricingMode.HISTORICAL,
        )
        assert [r.total for r in priced] == [Decimal("12.50"), Decimal("0")]

    def test_saved_price_read_from_stored_row(self):
        item = line_item_from_dict({"type": "product", "productId": "p-1", "price": "99.5"})
        assert item.stored_unit_price == Decimal("99.5")
        assert line_item_to_dict(item)["price"] == "99.5"

    def test_saved_price_ignored_by_equality(self):
        assert ProductLine(product_id="p-1", stored_unit_price="5") == ProductLine(product_id="p-1")
