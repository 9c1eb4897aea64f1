"""
Invoicing ORM Models (``studio_modules.invoicing.orm``).

Responsibility
--------------
SQLAlchemy persistence models for the invoicing module.  Maps the frozen
domain dataclasses from ``models.py`` to database tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``studio_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``studio_kernel``;
importing this module is what registers the invoicing tables for
``create_tables``.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from studio_engines.aggregation import DiscountRule, InvoiceStatus
from studio_engines.pricing import CustomLine, LineItem, LineKind, ProductLine, line_item_from_dict
from studio_kernel.db.base import TrackedBase


# ---------------------------------------------------------------------------
# 1. ClientModel
# ---------------------------------------------------------------------------


class ClientModel(TrackedBase):
    """ORM model for studio clients (only the fields invoicing reads)."""

    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    billing_state: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self):
        from studio_modules.invoicing.models import Client

        return Client(
            id=self.id,
            name=self.name,
            email=self.email,
            billing_state=self.billing_state,
        )

    def __repr__(self) -> str:
        return f"<ClientModel {self.name}>"


# ---------------------------------------------------------------------------
# 2. ProductModel
# ---------------------------------------------------------------------------


class ProductModel(TrackedBase):
    """ORM model for catalog products."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    retail_price: Mapped[Decimal] = mapped_column(nullable=False)
    product_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    def to_dto(self):
        from studio_modules.invoicing.models import Product

        return Product(
            id=self.id,
            name=self.name,
            retail_price=self.retail_price,
            product_type=self.product_type,
        )

    def __repr__(self) -> str:
        return f"<ProductModel {self.name}: {self.retail_price}>"


# ---------------------------------------------------------------------------
# 3. InvoiceModel
# ---------------------------------------------------------------------------


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    Guarantees:
        - invoice_number is unique (uq_invoices_invoice_number).
        - payment_token is unique when set (uq_invoices_payment_token).
        - tax_rate is the rate frozen at save time.
        - items and payments are deleted with the invoice.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        UniqueConstraint("payment_token", name="uq_invoices_payment_token"),
        Index("idx_invoices_client_id", "client_id"),
        Index("idx_invoices_status", "status"),
    )

    invoice_number: Mapped[int] = mapped_column(Integer, nullable=False)
    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("clients.id"), nullable=True
    )
    client_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.PENDING.value
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    subtotal: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    tax_rate: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    discount_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    discount_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    discount_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    paid_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_token: Mapped[str | None] = mapped_column(String(64), nullable=True)

    items: Mapped[list["InvoiceItemModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItemModel.sort_order",
    )
    payments: Mapped[list["PaymentModel"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="PaymentModel.seq",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from studio_modules.invoicing.models import Invoice

        return Invoice(
            id=self.id,
            invoice_number=self.invoice_number,
            due_date=self.due_date,
            tax_rate=self.tax_rate,
            subtotal=self.subtotal,
            tax=self.tax,
            discount=DiscountRule.parse(self.discount_type, self.discount_value),
            discount_amount=self.discount_amount or Decimal("0"),
            total=self.total,
            paid_amount=self.paid_amount,
            status=InvoiceStatus(self.status),
            client_id=self.client_id,
            client_name=self.client_name,
            items=tuple(item.to_line_item() for item in self.items),
            payments=tuple(p.to_dto() for p in self.payments),
            payment_token=self.payment_token,
            notes=self.notes,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<InvoiceModel #{self.invoice_number}: {self.total} [{self.status}]>"


# ---------------------------------------------------------------------------
# 4. InvoiceItemModel
# ---------------------------------------------------------------------------


class InvoiceItemModel(TrackedBase):
    """
    ORM model for invoice line items.

    Rows are replaced wholesale on every save; ``total`` and ``price`` are
    the figures at save time.
    """

    __tablename__ = "invoice_items"

    __table_args__ = (
        Index("idx_invoice_items_invoice_id", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    qty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal | None] = mapped_column(nullable=True)
    total: Mapped[Decimal] = mapped_column(default=Decimal("0"))
    is_taxable: Mapped[bool] = mapped_column(Boolean, default=False)
    product_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    product_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="items")

    def to_line_item(self) -> LineItem:
        return line_item_from_dict({
            "type": self.item_type,
            "productId": self.product_id,
            "name": self.name,
            "price": self.price,
            "qty": self.qty,
            "isTaxable": self.is_taxable,
            "description": self.description,
        })

    @classmethod
    def from_line_item(
        cls,
        item: LineItem,
        sort_order: int,
        name: str,
        unit_price: Decimal,
        base_price: Decimal,
        product_type: str | None = None,
    ) -> "InvoiceItemModel":
        match item:
            case ProductLine():
                item_type, product_id = LineKind.PRODUCT.value, item.product_id
            case CustomLine():
                item_type, product_id = LineKind.CUSTOM.value, None
            case _:
                raise TypeError(f"Unsupported line item type: {type(item).__name__}")
        return cls(
            sort_order=sort_order,
            item_type=item_type,
            name=name or "Unnamed Item",
            description=item.description,
            qty=item.quantity,
            price=unit_price,
            total=base_price,
            is_taxable=item.is_taxable,
            product_id=product_id,
            product_type=product_type,
        )


# ---------------------------------------------------------------------------
# 5. PaymentModel
# ---------------------------------------------------------------------------


class PaymentModel(TrackedBase):
    """
    ORM model for payments.

    Guarantees:
        - seq preserves insertion order within an invoice.
        - gateway_charge_id / gateway_order_id are unique when set, which
          backs idempotent gateway confirmation.
        - Rows are inserted or deleted, never updated.
    """

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("gateway_charge_id", name="uq_payments_gateway_charge_id"),
        UniqueConstraint("gateway_order_id", name="uq_payments_gateway_order_id"),
        Index("idx_payments_invoice_id", "invoice_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(nullable=False)
    gateway_charge_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gateway_order_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="payments")

    def to_dto(self):
        from studio_modules.invoicing.models import Payment

        return Payment(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            method=self.method,
            payment_date=self.payment_date,
            gateway_charge_id=self.gateway_charge_id,
            gateway_order_id=self.gateway_order_id,
        )

    def __repr__(self) -> str:
        return f"<PaymentModel {self.amount} via {self.method}>"


# ---------------------------------------------------------------------------
# 6. ClientCreditModel
# ---------------------------------------------------------------------------


class ClientCreditModel(TrackedBase):
    """ORM model for client credits (money held on account)."""

    __tablename__ = "client_credits"

    __table_args__ = (
        Index("idx_client_credits_client_id", "client_id"),
    )

    client_id: Mapped[UUID] = mapped_column(
        ForeignKey("clients.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    source_invoice_number: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def to_dto(self):
        from studio_modules.invoicing.models import ClientCredit

        return ClientCredit(
            id=self.id,
            client_id=self.client_id,
            amount=self.amount,
            reason=self.reason,
            source_invoice_number=self.source_invoice_number,
            created_by=self.created_by,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<ClientCreditModel {self.amount} for {self.client_id}>"
