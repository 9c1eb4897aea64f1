"""
PublicPaymentService -- server side of the unauthenticated payment page.

Responsibility:
    Resolves an opaque payment token to an invoice and drives the card and
    wallet gateways on the payer's behalf: public invoice summary, payment
    intent creation and confirmation, wallet order creation and capture,
    and receipt generation for the most recent online payment.

Architecture position:
    Services -- stateful orchestration over ``InvoicingService`` and the
    gateway protocols.  Payments are always recorded through
    ``InvoicingService.add_payment`` so recalculation happens in exactly
    one place.

Invariants enforced:
    - Tokens are opaque capabilities: a malformed token and an unknown token
      raise the same ``PaymentLinkError``; tokens are never logged in full.
    - Confirmation and capture are idempotent: a payment already recorded
      for an intent or order id is returned with ``already_recorded=True``
      and never counted twice.
    - Nothing is recorded until the gateway reports the money captured.
    - The payable amount is bounded to ``0 < amount <= balance + tolerance``.

Failure modes:
    - PaymentLinkError: malformed or unknown token.
    - InvoiceAlreadyPaidError: nothing left to pay.
    - InvalidPaymentAmountError: amount outside the payable bound.
    - CardDeclinedError: CVC check failed (intent is cancelled, no charge).
    - CaptureFailedError: wallet capture did not complete.
    - GatewayError: intent not confirmed, or intent belongs to another invoice.
    - GatewayNotConfiguredError: gateway requested but not wired.
    - ReceiptNotFoundError: no online payment on the invoice.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from studio_engines.aggregation import InvoiceStatus
from studio_engines.ledger import PaymentLedger
from studio_kernel.domain.clock import Clock, SystemClock, ensure_aware
from studio_kernel.domain.money import (
    ZERO,
    format_money,
    from_minor_units,
    parse_amount,
    to_cents,
    to_minor_units,
)
from studio_kernel.exceptions import (
    CaptureFailedError,
    CardDeclinedError,
    GatewayError,
    GatewayNotConfiguredError,
    InvalidPaymentAmountError,
    InvoiceAlreadyPaidError,
    PaymentLinkError,
    ReceiptNotFoundError,
)
from studio_kernel.logging_config import LogContext, get_logger, token_hint
from studio_modules.invoicing.config import InvoicingConfig
from studio_modules.invoicing.models import Invoice, Payment, PaymentMethod
from studio_modules.invoicing.service import InvoicingService
from studio_services.gateways import (
    CVC_CHECK_FAIL,
    WALLET_CAPTURE_COMPLETED,
    CardGateway,
    CardIntentStatus,
    WalletGateway,
)

logger = get_logger("services.public_payment")

TOKEN_PATTERN = re.compile(r"^[a-f0-9]{32}$")
CARD_CURRENCY = "usd"
PAYMENT_SOURCE = "pay_online"


# =============================================================================
# Views
# =============================================================================


@dataclass(frozen=True)
class PublicInvoice:
    """What the payer may see about an invoice."""

    id: UUID
    invoice_number: int
    label: str
    client_name: str
    total: Decimal
    paid_amount: Decimal
    balance_due: Decimal
    has_online_payment: bool
    status: InvoiceStatus
    created_at: datetime | None = None

    @property
    def is_settled(self) -> bool:
        return self.balance_due <= ZERO or self.status == InvoiceStatus.PAID


@dataclass(frozen=True)
class GatewayAvailability:
    card_enabled: bool = False
    card_publishable_key: str | None = None
    wallet_enabled: bool = False
    wallet_client_id: str | None = None

    @property
    def card_available(self) -> bool:
        return self.card_enabled and bool(self.card_publishable_key)

    @property
    def wallet_available(self) -> bool:
        return self.wallet_enabled and bool(self.wallet_client_id)

    @property
    def any_available(self) -> bool:
        return self.card_available or self.wallet_available


@dataclass(frozen=True)
class Branding:
    company_name: str = ""
    app_name: str = "Studio"
    accent_color: str = "#8b5cf6"


@dataclass(frozen=True)
class PublicInvoiceView:
    invoice: PublicInvoice
    gateways: GatewayAvailability
    branding: Branding


@dataclass(frozen=True)
class PaymentIntentHandle:
    intent_id: str
    client_secret: str | None
    amount: Decimal


@dataclass(frozen=True)
class WalletOrderHandle:
    order_id: str
    amount: Decimal


@dataclass(frozen=True)
class ConfirmationResult:
    payment: Payment
    already_recorded: bool = False


# =============================================================================
# Receipts
# =============================================================================


@dataclass(frozen=True)
class ReceiptData:
    invoice_number: int
    client_name: str
    amount: Decimal
    invoice_total: Decimal
    previously_paid: Decimal
    payment_date: datetime
    transaction_id: str
    payment_method: str
    company_name: str = ""

    @property
    def remaining_balance(self) -> Decimal:
        return max(ZERO, to_cents(self.invoice_total - self.previously_paid - self.amount))


@dataclass(frozen=True)
class ReceiptDocument:
    file_name: str
    content_type: str
    content: bytes


class ReceiptRenderer(Protocol):
    """Turns receipt data into a document (PDF renderers live outside the engine)."""

    content_type: str
    file_extension: str

    def render(self, data: ReceiptData) -> bytes: ...


class TextReceiptRenderer:
    """Plain-text receipt."""

    content_type = "text/plain; charset=utf-8"
    file_extension = "txt"

    def render(self, data: ReceiptData) -> bytes:
        lines = [
            data.company_name,
            "Payment Receipt",
            f"Invoice #{data.invoice_number:05d}",
            f"Billed to: {data.client_name}",
            f"Payment date: {ensure_aware(data.payment_date).date().isoformat()}",
            f"Payment method: {data.payment_method}",
            f"Transaction ID: {data.transaction_id}",
            "",
            f"Invoice total: {format_money(data.invoice_total)}",
            f"Previously paid: {format_money(data.previously_paid)}",
            f"Amount paid: {format_money(data.amount)}",
            f"Remaining balance: {format_money(data.remaining_balance)}",
        ]
        return ("\n".join(lines).strip() + "\n").encode("utf-8")


def receipt_method_label(payment: Payment) -> str:
    if payment.method == PaymentMethod.WALLET.value:
        return "PayPal"
    return "Stripe (Credit Card)"


# =============================================================================
# Service
# =============================================================================


class PublicPaymentService:
    """
    Token-addressed payment operations for the public payment page.

    Transaction boundary: payments are committed by ``InvoicingService``;
    this service never writes directly.
    """

    def __init__(
        self,
        session: Session,
        config: InvoicingConfig | None = None,
        card_gateway: CardGateway | None = None,
        wallet_gateway: WalletGateway | None = None,
        receipt_renderer: ReceiptRenderer | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._config = config or InvoicingConfig.with_defaults()
        self._card = card_gateway
        self._wallet = wallet_gateway
        self._renderer = receipt_renderer or TextReceiptRenderer()
        self._clock = clock or SystemClock()
        self._invoicing = InvoicingService(
            session, self._config, self._clock, actor="online-payment",
        )

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def _find_invoice(self, token: str) -> Invoice:
        if not isinstance(token, str) or not TOKEN_PATTERN.match(token):
            logger.warning("payment_link_malformed", extra={
                "token_hint": token_hint(token if isinstance(token, str) else None),
            })
            raise PaymentLinkError()
        invoice = self._invoicing.get_by_token(token)
        if invoice is None:
            logger.warning("payment_link_unknown", extra={
                "token_hint": token_hint(token),
            })
            raise PaymentLinkError()
        return invoice

    @staticmethod
    def _paid(invoice: Invoice) -> Decimal:
        return PaymentLedger.of(invoice.payments).total_paid()

    def _balance(self, invoice: Invoice) -> Decimal:
        return max(ZERO, to_cents(invoice.total - self._paid(invoice)))

    def _payable_amount(self, invoice: Invoice, amount: Decimal | str | None) -> Decimal:
        balance = self._balance(invoice)
        if balance <= ZERO:
            raise InvoiceAlreadyPaidError(str(invoice.id))
        if amount is None or amount == "":
            return balance
        pay = parse_amount(amount)
        if pay <= ZERO or pay > balance + self._config.amount_tolerance:
            raise InvalidPaymentAmountError(
                str(pay), minimum="0", maximum=str(balance),
            )
        return pay

    def _card_gateway(self) -> CardGateway:
        if self._card is None:
            raise GatewayNotConfiguredError("Card payments are not configured", gateway="card")
        return self._card

    def _wallet_gateway(self) -> WalletGateway:
        if self._wallet is None:
            raise GatewayNotConfiguredError("Wallet payments are not configured", gateway="wallet")
        return self._wallet

    # -------------------------------------------------------------------------
    # Public invoice
    # -------------------------------------------------------------------------

    def get_public_invoice(self, token: str) -> PublicInvoiceView:
        invoice = self._find_invoice(token)
        config = self._config
        return PublicInvoiceView(
            invoice=PublicInvoice(
                id=invoice.id,
                invoice_number=invoice.invoice_number,
                label=invoice.label,
                client_name=invoice.client_name or "",
                total=invoice.total,
                paid_amount=self._paid(invoice),
                balance_due=self._balance(invoice),
                has_online_payment=invoice.has_online_payment,
                status=invoice.status,
                created_at=invoice.created_at,
            ),
            gateways=GatewayAvailability(
                card_enabled=config.stripe_enabled,
                card_publishable_key=config.active_stripe_publishable_key,
                wallet_enabled=config.paypal_enabled,
                wallet_client_id=config.active_paypal_client_id,
            ),
            branding=Branding(
                company_name=config.company_name,
                app_name=config.app_name,
                accent_color=config.accent_color,
            ),
        )

    # -------------------------------------------------------------------------
    # Card path
    # -------------------------------------------------------------------------

    def create_payment_intent(
        self,
        token: str,
        amount: Decimal | str | None = None,
    ) -> PaymentIntentHandle:
        """Create a manual-capture card intent for ``amount`` (default: balance)."""
        invoice = self._find_invoice(token)
        with LogContext.bind(invoice_id=str(invoice.id), token_hint=token_hint(token)):
            pay = self._payable_amount(invoice, amount)
            intent = self._card_gateway().create_intent(
                to_minor_units(pay),
                CARD_CURRENCY,
                {
                    "invoice_id": str(invoice.id),
                    "invoice_number": str(invoice.invoice_number),
                    "source": PAYMENT_SOURCE,
                },
                capture_method="manual",
            )
            logger.info("payment_intent_created", extra={
                "intent_id": intent.id,
                "amount": str(pay),
            })
            return PaymentIntentHandle(
                intent_id=intent.id,
                client_secret=intent.client_secret,
                amount=pay,
            )

    def confirm_payment_intent(self, token: str, intent_id: str) -> ConfirmationResult:
        """
        Verify an intent with the card gateway, capture it and record it.

        Replaying for an intent that already has a payment returns that
        payment with ``already_recorded=True``.
        """
        invoice = self._find_invoice(token)
        if not intent_id:
            raise GatewayError("Missing payment intent id", gateway="card")

        with LogContext.bind(invoice_id=str(invoice.id), token_hint=token_hint(token)):
            existing = self._invoicing.find_payment_by_charge(intent_id)
            if existing is not None:
                logger.info("payment_intent_already_recorded", extra={
                    "intent_id": intent_id,
                    "payment_id": str(existing.id),
                })
                return ConfirmationResult(payment=existing, already_recorded=True)

            card = self._card_gateway()
            intent = card.retrieve_intent(intent_id)

            if intent.metadata.get("invoice_id") != str(invoice.id):
                logger.warning("payment_intent_invoice_mismatch", extra={
                    "intent_id": intent_id,
                })
                raise GatewayError(
                    "Payment intent does not match this invoice",
                    gateway="card", reference=intent_id,
                )

            if intent.status == CardIntentStatus.REQUIRES_CAPTURE.value:
                if intent.cvc_check == CVC_CHECK_FAIL:
                    card.cancel_intent(intent_id)
                    logger.warning("payment_intent_cvc_failed", extra={
                        "intent_id": intent_id,
                    })
                    raise CardDeclinedError(
                        "Card security code (CVC) is incorrect. "
                        "Payment was not charged. Please try again.",
                        gateway="card", reference=intent_id,
                    )
                intent = card.capture_intent(intent_id)
            elif intent.status != CardIntentStatus.SUCCEEDED.value:
                logger.warning("payment_intent_not_confirmed", extra={
                    "intent_id": intent_id,
                    "intent_status": intent.status,
                })
                raise GatewayError(
                    "Payment has not been confirmed by the card processor",
                    gateway="card", reference=intent_id,
                )

            amount = from_minor_units(intent.amount_minor)
            try:
                payment = self._invoicing.add_payment(
                    invoice.id,
                    amount,
                    method=PaymentMethod.CARD.value,
                    payment_date=self._clock.now(),
                    gateway_charge_id=intent_id,
                )
            except IntegrityError:
                # Concurrent confirmation recorded it first
                existing = self._invoicing.find_payment_by_charge(intent_id)
                if existing is None:
                    raise
                return ConfirmationResult(payment=existing, already_recorded=True)

            logger.info("online_payment_recorded", extra={
                "payment_id": str(payment.id),
                "gateway": "card",
                "amount": str(amount),
            })
            return ConfirmationResult(payment=payment)

    # -------------------------------------------------------------------------
    # Wallet path
    # -------------------------------------------------------------------------

    def create_wallet_order(
        self,
        token: str,
        amount: Decimal | str | None = None,
    ) -> WalletOrderHandle:
        invoice = self._find_invoice(token)
        with LogContext.bind(invoice_id=str(invoice.id), token_hint=token_hint(token)):
            pay = self._payable_amount(invoice, amount)
            order = self._wallet_gateway().create_order(
                pay, str(invoice.id), invoice.label,
            )
            logger.info("wallet_order_created", extra={
                "order_id": order.id,
                "amount": str(pay),
            })
            return WalletOrderHandle(order_id=order.id, amount=pay)

    def capture_wallet_order(self, token: str, order_id: str) -> ConfirmationResult:
        """Capture an approved wallet order; idempotent by order id."""
        invoice = self._find_invoice(token)
        if not order_id:
            raise GatewayError("Missing wallet order id", gateway="wallet")

        with LogContext.bind(invoice_id=str(invoice.id), token_hint=token_hint(token)):
            existing = self._invoicing.find_payment_by_order(order_id)
            if existing is not None:
                logger.info("wallet_order_already_recorded", extra={
                    "order_id": order_id,
                    "payment_id": str(existing.id),
                })
                return ConfirmationResult(payment=existing, already_recorded=True)

            capture = self._wallet_gateway().capture_order(order_id)
            if capture.status != WALLET_CAPTURE_COMPLETED:
                logger.warning("wallet_capture_incomplete", extra={
                    "order_id": order_id,
                    "capture_status": capture.status,
                })
                raise CaptureFailedError(
                    f"Wallet capture did not complete (status {capture.status})",
                    gateway="wallet", reference=order_id,
                )

            try:
                payment = self._invoicing.add_payment(
                    invoice.id,
                    capture.amount,
                    method=PaymentMethod.WALLET.value,
                    payment_date=self._clock.now(),
                    gateway_order_id=order_id,
                )
            except IntegrityError:
                existing = self._invoicing.find_payment_by_order(order_id)
                if existing is None:
                    raise
                return ConfirmationResult(payment=existing, already_recorded=True)

            logger.info("online_payment_recorded", extra={
                "payment_id": str(payment.id),
                "gateway": "wallet",
                "amount": str(capture.amount),
            })
            return ConfirmationResult(payment=payment)

    # -------------------------------------------------------------------------
    # Receipt
    # -------------------------------------------------------------------------

    def get_receipt(self, token: str) -> ReceiptDocument:
        """Receipt for the most recent online payment on the invoice."""
        invoice = self._find_invoice(token)
        online = [p for p in invoice.payments if p.is_online]
        if not online:
            raise ReceiptNotFoundError(str(invoice.id))

        latest = max(online, key=lambda p: ensure_aware(p.payment_date))
        previously_paid = PaymentLedger.of(invoice.payments).without(latest.id).total_paid()

        data = ReceiptData(
            invoice_number=invoice.invoice_number,
            client_name=invoice.client_name or "Customer",
            amount=latest.amount,
            invoice_total=invoice.total,
            previously_paid=previously_paid,
            payment_date=latest.payment_date,
            transaction_id=latest.transaction_id or "N/A",
            payment_method=receipt_method_label(latest),
            company_name=self._config.company_name,
        )
        content = self._renderer.render(data)
        logger.info("receipt_generated", extra={
            "invoice_id": str(invoice.id),
            "payment_id": str(latest.id),
            "bytes": len(content),
        })
        return ReceiptDocument(
            file_name=f"Receipt-{invoice.invoice_number:05d}.{self._renderer.file_extension}",
            content_type=self._renderer.content_type,
            content=content,
        )
