"""
Invoicing Module Service - authoritative source of truth for invoices.

Thin glue layer that:
1. Calls resolve_tax_rate for the live rate of the invoice's client
2. Calls price_item / aggregate_invoice for every stored figure
3. Keeps the payment ledger and persisted status consistent after every
   payment mutation (``recalculate``)
4. Converts paid amounts into client credits when an invoice is deleted

All computation lives in engines. This service owns the transaction
boundary: every mutation commits on success and rolls back (re-raising) on
failure.

Usage:
    service = InvoicingService(session, config, clock)
    invoice = service.save_invoice(InvoiceDraft(
        items=(ProductLine(product_id=str(product.id), quantity=2),),
        client_id=client.id,
    ))
    service.add_payment(invoice.id, Decimal("100.00"))
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from studio_engines.aggregation import (
    aggregate_invoice,
    derive_persisted_status,
)
from studio_engines.ledger import PaymentLedger
from studio_engines.pricing import (
    CustomLine,
    LineItem,
    PricedLine,
    PriceList,
    ProductLine,
    price_item,
)
from studio_engines.tax import TaxRateResolution, resolve_tax_rate
from studio_kernel.domain.clock import Clock, SystemClock
from studio_kernel.domain.money import ZERO, parse_amount, to_cents, to_minor_units
from studio_kernel.exceptions import (
    CreditNotFoundError,
    EmptyInvoiceError,
    GatewayRefundUnavailableError,
    InvalidPaymentAmountError,
    InvoiceNotFoundError,
    PaymentNotFoundError,
)
from studio_kernel.logging_config import LogContext, get_logger
from studio_modules.invoicing.config import InvoicingConfig
from studio_modules.invoicing.models import (
    ClientCredit,
    Invoice,
    InvoiceDraft,
    Payment,
    PaymentMethod,
    invoice_label,
)
from studio_modules.invoicing.orm import (
    ClientCreditModel,
    ClientModel,
    InvoiceItemModel,
    InvoiceModel,
    PaymentModel,
    ProductModel,
)
from studio_modules.invoicing.summary import InvoiceSummary, summarize_invoice

if TYPE_CHECKING:
    from studio_services.gateways import CardGateway, CardRefund

logger = get_logger("modules.invoicing.service")

FIRST_INVOICE_NUMBER = 100


class InvoicingService:
    """
    Invoice persistence and payment bookkeeping.

    Engine composition:
    - resolve_tax_rate: live rate at save time (frozen onto the invoice)
    - price_item / aggregate_invoice: stored subtotal, tax, discount, total
    - PaymentLedger / derive_persisted_status: paid amount and status

    Transaction boundary: this service commits on success, rolls back on
    failure.
    """

    def __init__(
        self,
        session: Session,
        config: InvoicingConfig | None = None,
        clock: Clock | None = None,
        actor: str | None = None,
    ):
        self._session = session
        self._config = config or InvoicingConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._actor = actor

    # =========================================================================
    # Lookups
    # =========================================================================

    def price_list(self) -> PriceList:
        """Current catalog prices."""
        return PriceList.from_products(self._session.scalars(select(ProductModel)))

    def resolve_rate(self, client_id: UUID | None) -> TaxRateResolution:
        """Live tax rate for a client under today's settings."""
        client = self._session.get(ClientModel, client_id) if client_id else None
        return resolve_tax_rate(
            client.billing_state if client else None,
            self._config.tax_home_state,
            self._config.default_tax_rate,
        )

    def _get_invoice_model(self, invoice_id: UUID) -> InvoiceModel:
        model = self._session.get(InvoiceModel, invoice_id)
        if model is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return model

    def _get_payment_model(self, payment_id: UUID) -> PaymentModel:
        model = self._session.get(PaymentModel, payment_id)
        if model is None:
            raise PaymentNotFoundError(str(payment_id))
        return model

    def _next_invoice_number(self) -> int:
        current = self._session.scalar(select(func.max(InvoiceModel.invoice_number)))
        return FIRST_INVOICE_NUMBER if current is None else current + 1

    def _next_payment_seq(self, invoice_id: UUID) -> int:
        current = self._session.scalar(
            select(func.max(PaymentModel.seq)).where(PaymentModel.invoice_id == invoice_id)
        )
        return 1 if current is None else current + 1

    def _ledger(self, invoice_id: UUID) -> PaymentLedger[PaymentModel]:
        return PaymentLedger.of(self._session.scalars(
            select(PaymentModel)
            .where(PaymentModel.invoice_id == invoice_id)
            .order_by(PaymentModel.seq)
        ))

    # =========================================================================
    # Invoices
    # =========================================================================

    def save_invoice(self, draft: InvoiceDraft) -> Invoice:
        """
        Create or update an invoice from editor state.

        Rows that price to zero, reference a missing product, or are custom
        rows without a name are dropped. The live tax rate is frozen onto
        the invoice; stored figures are rounded to cents.

        Raises:
            EmptyInvoiceError: No billable rows remain.
            InvoiceNotFoundError: ``draft.id`` is set but unknown.
        """
        try:
            client = (
                self._session.get(ClientModel, draft.client_id)
                if draft.client_id else None
            )
            if draft.client_id and client is None:
                logger.warning("invoice_client_not_found", extra={
                    "client_id": str(draft.client_id),
                })

            resolution = resolve_tax_rate(
                client.billing_state if client else None,
                self._config.tax_home_state,
                self._config.default_tax_rate,
            )
            products = {
                str(p.id): p for p in self._session.scalars(select(ProductModel))
            }
            price_list = PriceList.from_products(products.values())

            kept = self._billable_rows(draft.items, resolution.rate, price_list, products)
            if not kept:
                raise EmptyInvoiceError(len(draft.items))

            if draft.id is not None:
                model = self._get_invoice_model(draft.id)
                model.items.clear()
                self._session.flush()
                if draft.due_date is not None:
                    model.due_date = draft.due_date
                created = False
            else:
                model = InvoiceModel(
                    invoice_number=self._next_invoice_number(),
                    payment_token=secrets.token_hex(16),
                    due_date=draft.due_date or (
                        self._clock.now() + timedelta(days=self._config.payment_terms_days)
                    ),
                    created_by=self._actor,
                )
                self._session.add(model)
                created = True

            ledger = self._ledger(model.id) if not created else PaymentLedger()
            totals = aggregate_invoice(
                [priced for _, priced, _, _ in kept],
                draft.discount,
                ledger,
            ).rounded()

            model.client_id = client.id if client else None
            model.client_name = client.name if client else None
            model.notes = draft.notes
            model.tax_rate = resolution.rate
            model.subtotal = totals.subtotal
            model.tax = totals.tax
            model.discount_type = draft.discount.kind.value
            model.discount_value = draft.discount.value
            model.discount_amount = totals.discount_amount
            model.total = totals.total
            model.paid_amount = totals.paid_amount
            model.status = totals.persisted_status.value

            for position, (item, priced, name, product_type) in enumerate(kept):
                model.items.append(InvoiceItemModel.from_line_item(
                    item,
                    sort_order=position,
                    name=name,
                    unit_price=priced.unit_price,
                    base_price=to_cents(priced.base_price),
                    product_type=product_type,
                ))

            self._session.commit()
            logger.info("invoice_created" if created else "invoice_updated", extra={
                "invoice_id": str(model.id),
                "invoice_number": model.invoice_number,
                "items": len(kept),
                "dropped_items": len(draft.items) - len(kept),
                "tax_rate": str(resolution.rate),
                "tax_rate_source": resolution.source.value,
                "total": str(model.total),
                "status": model.status,
            })
            return model.to_dto()

        except Exception:
            self._session.rollback()
            raise

    @staticmethod
    def _billable_rows(
        items: tuple[LineItem, ...],
        rate: Decimal,
        price_list: PriceList,
        products: dict[str, ProductModel],
    ) -> list[tuple[LineItem, PricedLine, str, str | None]]:
        kept = []
        for item in items:
            priced = price_item(item, rate, price_list)
            if not priced.resolved or priced.base_price <= ZERO:
                continue
            match item:
                case ProductLine(product_id=product_id):
                    product = products[product_id]
                    kept.append((item, priced, product.name, product.product_type))
                case CustomLine(name=name) if name.strip():
                    kept.append((item, priced, name.strip(), None))
        return kept

    def get_snapshot(self, invoice_id: UUID) -> Invoice:
        """Invoice with items and payments (payments in insertion order)."""
        return self._get_invoice_model(invoice_id).to_dto()

    def get_by_token(self, token: str) -> Invoice | None:
        model = self._session.scalar(
            select(InvoiceModel).where(InvoiceModel.payment_token == token)
        )
        return model.to_dto() if model else None

    def list_invoices(self, client_id: UUID | None = None) -> list[Invoice]:
        """Invoices, newest number first, optionally for one client."""
        stmt = select(InvoiceModel).order_by(InvoiceModel.invoice_number.desc())
        if client_id is not None:
            stmt = stmt.where(InvoiceModel.client_id == client_id)
        return [m.to_dto() for m in self._session.scalars(stmt)]

    def summarize(self, invoice_id: UUID) -> InvoiceSummary:
        invoice = self.get_snapshot(invoice_id)
        return summarize_invoice(
            invoice,
            self.price_list(),
            self.resolve_rate(invoice.client_id).rate,
            self._clock.now(),
        )

    def list_summaries(self, client_id: UUID | None = None) -> list[InvoiceSummary]:
        """List-row figures, derived exactly as the detail view derives them."""
        price_list = self.price_list()
        now = self._clock.now()
        return [
            summarize_invoice(
                invoice,
                price_list,
                self.resolve_rate(invoice.client_id).rate,
                now,
            )
            for invoice in self.list_invoices(client_id)
        ]

    def delete_invoice(self, invoice_id: UUID) -> tuple[bool, Decimal]:
        """
        Delete an invoice with its items and payments.

        When the invoice has a client and money was paid on it, the paid
        amount is converted into a client credit.

        Returns:
            (credit_created, credit_amount)
        """
        try:
            model = self._get_invoice_model(invoice_id)
            invoice_number = model.invoice_number
            client_id = model.client_id
            credit_amount = ZERO
            credit_created = False

            if client_id is not None and model.paid_amount > ZERO:
                credit_amount = model.paid_amount
                self._session.add(ClientCreditModel(
                    client_id=client_id,
                    amount=credit_amount,
                    reason=f"{invoice_label(invoice_number)} deleted - payments converted to credit",
                    source_invoice_number=invoice_number,
                    created_by=self._actor,
                ))
                credit_created = True

            self._session.delete(model)
            self._session.commit()

            if credit_created:
                logger.info("client_credit_created", extra={
                    "client_id": str(client_id),
                    "amount": str(credit_amount),
                    "source_invoice_number": invoice_number,
                })
            logger.info("invoice_deleted", extra={
                "invoice_id": str(invoice_id),
                "invoice_number": invoice_number,
                "credit_created": credit_created,
            })
            return credit_created, credit_amount

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Payments
    # =========================================================================

    def add_payment(
        self,
        invoice_id: UUID,
        amount: Decimal | str | int,
        method: str = PaymentMethod.CASH.value,
        payment_date: datetime | None = None,
        gateway_charge_id: str | None = None,
        gateway_order_id: str | None = None,
    ) -> Payment:
        """
        Record a payment and recalculate the invoice.

        Raises:
            InvalidPaymentAmountError: amount is not positive.
            InvoiceNotFoundError: invoice does not exist.
        """
        amount = parse_amount(amount)
        if amount <= ZERO:
            raise InvalidPaymentAmountError(str(amount))

        try:
            model = self._get_invoice_model(invoice_id)
            with LogContext.bind(invoice_id=str(invoice_id)):
                payment = PaymentModel(
                    seq=self._next_payment_seq(model.id),
                    amount=amount,
                    method=method or PaymentMethod.CASH.value,
                    payment_date=payment_date or self._clock.now(),
                    gateway_charge_id=gateway_charge_id,
                    gateway_order_id=gateway_order_id,
                    created_by=self._actor,
                )
                model.payments.append(payment)
                self._session.flush()
                self._recalculate(model)
                self._session.commit()

                logger.info("payment_added", extra={
                    "payment_id": str(payment.id),
                    "invoice_number": model.invoice_number,
                    "amount": str(amount),
                    "method": payment.method,
                    "status": model.status,
                })
                return payment.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def delete_payment(self, payment_id: UUID) -> Payment:
        """Remove a payment record and recalculate its invoice."""
        try:
            payment = self._get_payment_model(payment_id)
            removed = payment.to_dto()
            model = self._get_invoice_model(payment.invoice_id)
            model.payments.remove(payment)
            self._session.flush()
            self._recalculate(model)
            self._session.commit()

            logger.info("payment_deleted", extra={
                "payment_id": str(payment_id),
                "invoice_number": model.invoice_number,
                "amount": str(removed.amount),
                "status": model.status,
            })
            return removed

        except Exception:
            self._session.rollback()
            raise

    def find_payment_by_charge(self, charge_id: str) -> Payment | None:
        model = self._session.scalar(
            select(PaymentModel).where(PaymentModel.gateway_charge_id == charge_id)
        )
        return model.to_dto() if model else None

    def find_payment_by_order(self, order_id: str) -> Payment | None:
        model = self._session.scalar(
            select(PaymentModel).where(PaymentModel.gateway_order_id == order_id)
        )
        return model.to_dto() if model else None

    def recalculate(self, invoice_id: UUID) -> Invoice:
        """Recompute paid amount and persisted status from stored payments."""
        try:
            model = self._get_invoice_model(invoice_id)
            self._recalculate(model)
            self._session.commit()
            return model.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def _recalculate(self, model: InvoiceModel) -> None:
        paid = self._ledger(model.id).total_paid()
        status = derive_persisted_status(paid, model.total)
        model.paid_amount = paid
        model.status = status.value
        logger.debug("invoice_recalculated", extra={
            "invoice_id": str(model.id),
            "paid_amount": str(paid),
            "status": status.value,
        })

    def refund_card_payment(
        self,
        payment_id: UUID,
        card_gateway: CardGateway,
    ) -> CardRefund:
        """
        Refund a card payment in full through the card gateway.

        The payment record is removed once the gateway accepts the refund.

        Raises:
            GatewayRefundUnavailableError: payment has no gateway charge id.
        """
        try:
            payment = self._get_payment_model(payment_id)
            if not payment.gateway_charge_id:
                raise GatewayRefundUnavailableError(str(payment_id))

            model = self._get_invoice_model(payment.invoice_id)
            amount = payment.amount
            refund = card_gateway.refund(
                payment.gateway_charge_id,
                to_minor_units(amount),
            )

            model.payments.remove(payment)
            self._session.flush()
            self._recalculate(model)
            self._session.commit()

            logger.info("payment_card_refunded", extra={
                "payment_id": str(payment_id),
                "refund_id": refund.id,
                "invoice_number": model.invoice_number,
                "amount": str(amount),
                "status": model.status,
            })
            return refund

        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Client credits
    # =========================================================================

    def create_credit(
        self,
        client_id: UUID,
        amount: Decimal | str | int,
        reason: str | None = None,
        source_invoice_number: int | None = None,
    ) -> ClientCredit:
        """Hold money on account for a client."""
        if client_id is None:
            raise ValueError("A client credit requires a client")
        amount = parse_amount(amount)
        if amount <= ZERO:
            raise InvalidPaymentAmountError(str(amount))

        try:
            credit = ClientCreditModel(
                client_id=client_id,
                amount=amount,
                reason=reason or None,
                source_invoice_number=source_invoice_number,
                created_by=self._actor,
            )
            self._session.add(credit)
            self._session.commit()

            logger.info("client_credit_created", extra={
                "credit_id": str(credit.id),
                "client_id": str(client_id),
                "amount": str(amount),
            })
            return credit.to_dto()

        except Exception:
            self._session.rollback()
            raise

    def list_credits(self, client_id: UUID) -> list[ClientCredit]:
        """Credits for a client, newest first."""
        stmt = (
            select(ClientCreditModel)
            .where(ClientCreditModel.client_id == client_id)
            .order_by(ClientCreditModel.created_at.desc())
        )
        return [c.to_dto() for c in self._session.scalars(stmt)]

    def delete_credit(self, credit_id: UUID) -> ClientCredit:
        try:
            credit = self._session.get(ClientCreditModel, credit_id)
            if credit is None:
                raise CreditNotFoundError(str(credit_id))
            removed = credit.to_dto()
            self._session.delete(credit)
            self._session.commit()

            logger.info("client_credit_deleted", extra={
                "credit_id": str(credit_id),
                "amount": str(removed.amount),
            })
            return removed

        except Exception:
            self._session.rollback()
            raise
