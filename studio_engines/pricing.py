"""
Line Item Pricer - price one invoice row.

Pure functions with deterministic behavior. No I/O.

A line item is either a catalog product (priced from a supplied price list)
or a free-form custom charge (priced inline). Pricing never raises for bad
input: quantities default to 1, prices to 0, and a product reference that
is missing from the price list prices the whole row at zero so one orphaned
row cannot abort the invoice.

A saved product row also carries the unit price it was saved with. Live
pricing (the editor) ignores it and always asks the catalog; historical
pricing (display of a saved invoice) uses it first, so a later catalog
edit or deletion does not change what the document says.

Usage:
    from studio_engines.pricing import PriceList, ProductLine, price_item

    prices = PriceList({"p-1": Decimal("100")})
    line = ProductLine(product_id="p-1", quantity=2, is_taxable=True)
    priced = price_item(line, Decimal("10"), prices)
    print(priced.total)  # Decimal("220")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Union

from studio_kernel.domain.money import ONE_HUNDRED, ZERO, parse_amount, parse_quantity
from studio_kernel.logging_config import get_logger

logger = get_logger("engines.pricing")


class LineKind(str, Enum):
    """Stored discriminant for line items."""

    PRODUCT = "product"
    CUSTOM = "custom"


class PricingMode(str, Enum):
    """Which tax rate a row is priced with."""

    LIVE = "live"  # Rate resolved from today's settings (editor)
    HISTORICAL = "historical"  # Rate frozen on the saved invoice (display)


# ============================================================================
# Line items (tagged union)
# ============================================================================


@dataclass(frozen=True)
class ProductLine:
    """Catalog-backed row; unit price comes from the price list.

    ``stored_unit_price`` is the price frozen on a saved row. It does not
    take part in equality: two rows for the same product are the same row.
    """

    product_id: str
    description: str | None = None
    quantity: int = 1
    is_taxable: bool = False
    stored_unit_price: Decimal | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "product_id", str(self.product_id))
        object.__setattr__(self, "quantity", parse_quantity(self.quantity))
        if self.stored_unit_price is not None:
            object.__setattr__(
                self, "stored_unit_price", parse_amount(self.stored_unit_price),
            )

    @property
    def kind(self) -> LineKind:
        return LineKind.PRODUCT


@dataclass(frozen=True)
class CustomLine:
    """Free-form row with an inline name and price."""

    name: str
    price: Decimal = ZERO
    description: str | None = None
    quantity: int = 1
    is_taxable: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "price", parse_amount(self.price))
        object.__setattr__(self, "quantity", parse_quantity(self.quantity))

    @property
    def kind(self) -> LineKind:
        return LineKind.CUSTOM


LineItem = Union[ProductLine, CustomLine]


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def line_item_from_dict(data: Mapping[str, Any]) -> LineItem:
    """
    Build a line item from the stored/editor dict shape.

    Accepts camelCase and snake_case keys. A missing ``type`` means product.
    On a product row, ``price`` is the unit price stored when it was saved.
    """
    kind = str(data.get("type") or LineKind.PRODUCT.value).lower()
    quantity = _first(data, "qty", "quantity")
    is_taxable = bool(_first(data, "isTaxable", "is_taxable", "taxable") or False)
    description = data.get("description")

    if kind == LineKind.CUSTOM.value:
        return CustomLine(
            name=data.get("name") or "",
            price=parse_amount(data.get("price")),
            description=description,
            quantity=quantity,
            is_taxable=is_taxable,
        )
    stored_price = data.get("price")
    return ProductLine(
        product_id=_first(data, "productId", "product_id") or "",
        description=description,
        quantity=quantity,
        is_taxable=is_taxable,
        stored_unit_price=None if stored_price is None else parse_amount(stored_price),
    )


def line_item_to_dict(item: LineItem) -> dict[str, Any]:
    """Inverse of ``line_item_from_dict`` (stored shape)."""
    match item:
        case ProductLine():
            data = {
                "type": LineKind.PRODUCT.value,
                "productId": item.product_id,
                "description": item.description,
                "qty": item.quantity,
                "isTaxable": item.is_taxable,
            }
            if item.stored_unit_price is not None:
                data["price"] = str(item.stored_unit_price)
            return data
        case CustomLine():
            return {
                "type": LineKind.CUSTOM.value,
                "name": item.name,
                "price": str(item.price),
                "description": item.description,
                "qty": item.quantity,
                "isTaxable": item.is_taxable,
            }
        case _:
            raise TypeError(f"Unsupported line item type: {type(item).__name__}")


# ============================================================================
# Price list
# ============================================================================


@dataclass(frozen=True)
class PriceList:
    """Catalog id -> unit price."""

    prices: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "prices",
            {str(k): parse_amount(v) for k, v in self.prices.items()},
        )

    @classmethod
    def from_products(cls, products: Iterable[Any]) -> PriceList:
        """Build from catalog objects exposing ``id`` and ``retail_price``."""
        return cls({str(p.id): p.retail_price for p in products})

    def unit_price(self, product_id: str) -> Decimal | None:
        return self.prices.get(str(product_id))

    def __contains__(self, product_id: object) -> bool:
        return str(product_id) in self.prices


# ============================================================================
# Pricing
# ============================================================================


@dataclass(frozen=True)
class PricedLine:
    """Result of pricing one row. All amounts unrounded."""

    unit_price: Decimal
    base_price: Decimal
    tax_on_item: Decimal
    total: Decimal
    resolved: bool = True  # False when a product reference was not found

    @classmethod
    def zero(cls) -> PricedLine:
        return cls(
            unit_price=ZERO,
            base_price=ZERO,
            tax_on_item=ZERO,
            total=ZERO,
            resolved=False,
        )


def rate_for_mode(
    mode: PricingMode,
    live_rate: Decimal,
    frozen_rate: Decimal | None = None,
) -> Decimal:
    """
    Pick the tax rate for a pricing mode.

    Historical mode uses the invoice's frozen rate; an unset or zero frozen
    rate falls back to the live rate.
    """
    if mode == PricingMode.HISTORICAL and frozen_rate:
        return frozen_rate
    return live_rate


def price_item(
    item: LineItem,
    tax_rate: Decimal,
    price_list: PriceList,
    mode: PricingMode = PricingMode.LIVE,
) -> PricedLine:
    """
    Price one line item.

    Args:
        item: ProductLine or CustomLine
        tax_rate: Rate in percent (e.g. 10 for 10%)
        price_list: Catalog prices for product rows
        mode: HISTORICAL prices a product row from its stored unit price
            when it has one; LIVE always uses the price list

    Returns:
        PricedLine; all-zero with ``resolved=False`` for an unknown product.

    Raises:
        TypeError: If ``item`` is not a known line-item variant.
    """
    match item:
        case ProductLine(product_id=product_id):
            unit_price = None
            if mode == PricingMode.HISTORICAL:
                unit_price = item.stored_unit_price
            if unit_price is None:
                unit_price = price_list.unit_price(product_id)
            if unit_price is None:
                logger.warning("pricing_product_not_found", extra={
                    "product_id": product_id,
                    "mode": mode.value,
                })
                return PricedLine.zero()
        case CustomLine(price=price):
            unit_price = price
        case _:
            raise TypeError(f"Unsupported line item type: {type(item).__name__}")

    base_price = unit_price * item.quantity
    tax_on_item = base_price * tax_rate / ONE_HUNDRED if item.is_taxable else ZERO
    return PricedLine(
        unit_price=unit_price,
        base_price=base_price,
        tax_on_item=tax_on_item,
        total=base_price + tax_on_item,
    )


def price_items(
    items: Iterable[LineItem],
    tax_rate: Decimal,
    price_list: PriceList,
    mode: PricingMode = PricingMode.LIVE,
) -> tuple[PricedLine, ...]:
    """Price every row with the same rate and mode."""
    return tuple(price_item(item, tax_rate, price_list, mode) for item in items)
