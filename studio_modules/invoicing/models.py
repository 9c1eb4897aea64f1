"""
Invoicing Domain Models (``studio_modules.invoicing.models``).

Responsibility
--------------
Frozen dataclass value objects for the nouns of studio invoicing: clients,
catalog products, invoices, payments and client credits.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Returned by
``InvoicingService`` and carried over the remote API to the client side.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Payment amounts are positive; a payment is never edited in place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from studio_engines.aggregation import DiscountRule, InvoiceStatus
from studio_engines.pricing import LineItem
from studio_kernel.domain.money import ZERO
from studio_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.models")


class PaymentMethod(str, Enum):
    """Recorded payment methods. Online methods carry a gateway reference."""
    CASH = "Cash"
    CHECK = "Check"
    BANK_TRANSFER = "Bank Transfer"
    CARD = "Stripe"
    WALLET = "PayPal"


@dataclass(frozen=True)
class Client:
    """A studio client; billing_state drives the tax rule."""
    id: UUID
    name: str
    email: str | None = None
    billing_state: str | None = None


@dataclass(frozen=True)
class Product:
    """A catalog product."""
    id: UUID
    name: str
    retail_price: Decimal
    product_type: str | None = None


@dataclass(frozen=True)
class Payment:
    """A payment recorded against an invoice."""
    id: UUID
    invoice_id: UUID
    amount: Decimal
    method: str
    payment_date: datetime
    gateway_charge_id: str | None = None  # card payment intent id
    gateway_order_id: str | None = None  # wallet order id

    def __post_init__(self):
        if self.amount <= 0:
            logger.warning(
                "payment_invalid_amount",
                extra={"payment_id": str(self.id), "amount": str(self.amount)},
            )
            raise ValueError("Payment amount must be positive")

    @property
    def is_online(self) -> bool:
        """Captured through the card or wallet gateway."""
        return (
            (self.method == PaymentMethod.CARD.value and bool(self.gateway_charge_id))
            or (self.method == PaymentMethod.WALLET.value and bool(self.gateway_order_id))
        )

    @property
    def transaction_id(self) -> str | None:
        return self.gateway_charge_id or self.gateway_order_id


@dataclass(frozen=True)
class ClientCredit:
    """Money held on account for a client."""
    id: UUID
    client_id: UUID
    amount: Decimal
    reason: str | None = None
    source_invoice_number: int | None = None
    created_by: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Invoice:
    """
    A saved invoice snapshot.

    ``tax_rate`` is the rate frozen at save time. ``status`` is the
    write-time snapshot; the displayed status is always re-derived.
    """
    id: UUID
    invoice_number: int
    due_date: datetime | None
    tax_rate: Decimal
    subtotal: Decimal
    tax: Decimal
    discount: DiscountRule
    discount_amount: Decimal
    total: Decimal
    paid_amount: Decimal = ZERO
    status: InvoiceStatus = InvoiceStatus.PENDING
    client_id: UUID | None = None
    client_name: str | None = None
    items: tuple[LineItem, ...] = field(default_factory=tuple)
    payments: tuple[Payment, ...] = field(default_factory=tuple)
    payment_token: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    @property
    def label(self) -> str:
        """Human-readable document label (``Invoice #00042``)."""
        return invoice_label(self.invoice_number)

    @property
    def has_online_payment(self) -> bool:
        return any(p.is_online for p in self.payments)


@dataclass(frozen=True)
class InvoiceDraft:
    """Editor state submitted for save. ``id`` is None for a new invoice."""
    items: tuple[LineItem, ...]
    discount: DiscountRule = field(default_factory=DiscountRule.none)
    id: UUID | None = None
    client_id: UUID | None = None
    due_date: datetime | None = None
    notes: str | None = None


def invoice_label(invoice_number: int | None) -> str:
    if not invoice_number:
        return ""
    return f"Invoice #{invoice_number:05d}"
