"""
OnlinePaymentSession -- payer-side state machine for the public payment page.

    loading --> error
            --> already_paid
            --> no_gateway
            --> checkout --(card intent)--> paying --(confirm)--> success
                         --(wallet capture)-------------------> success

Rules:
    - A settled invoice (balance <= 0 or persisted status paid) goes straight
      to ``already_paid`` and can never be paid again.
    - The payer picks an amount in ``[min_online_payment, balance + tolerance]``;
      anything else is rejected before any network call.
    - Card: create intent -> hosted checkout -> server-side confirm -> success.
      Success is only entered after the server confirms.
    - Wallet: create order -> payer approval -> server-side capture -> success.
    - Gateway failures keep the current state and set ``inline_error``; a
      timed-out confirmation is a failure and is not retried.
    - ``receipt_available`` turns on as soon as any online payment exists on
      the invoice, whether or not the balance is now zero.

Tokens are opaque: every lookup failure lands in ``error`` with a message
that does not say whether an invoice exists behind the token.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from studio_kernel.domain.clock import Clock, SystemClock
from studio_kernel.domain.money import ZERO, format_money, parse_amount
from studio_kernel.exceptions import (
    GatewayError,
    GatewayNotConfiguredError,
    InvalidPaymentAmountError,
    PaymentLinkError,
    PaymentSessionStateError,
    ReceiptNotFoundError,
    StudioError,
)
from studio_kernel.logging_config import LogContext, get_logger, token_hint
from studio_modules.invoicing.config import InvoicingConfig
from studio_modules.invoicing.models import Payment
from studio_services.api import PublicPaymentApi, run_mutation
from studio_services.gateways import CardIntentStatus, HostedCardCheckout, WalletApprover
from studio_services.public_payment_service import (
    PaymentIntentHandle,
    PublicInvoiceView,
    ReceiptDocument,
)

logger = get_logger("services.online_payment")

LOAD_FAILED_MESSAGE = "Unable to load this invoice. Please try again later."
INTENT_FAILED_MESSAGE = "Failed to initialize payment."

_CONFIRMABLE_STATUSES = {
    CardIntentStatus.REQUIRES_CAPTURE.value,
    CardIntentStatus.SUCCEEDED.value,
}


class SessionState(str, Enum):
    LOADING = "loading"
    ERROR = "error"
    ALREADY_PAID = "already_paid"
    NO_GATEWAY = "no_gateway"
    CHECKOUT = "checkout"
    PAYING = "paying"
    SUCCESS = "success"


class OnlinePaymentSession:
    """One payer's visit to the payment page for ``token``."""

    def __init__(
        self,
        token: str,
        api: PublicPaymentApi,
        config: InvoicingConfig | None = None,
        clock: Clock | None = None,
    ):
        self._token = token
        self._api = api
        self._config = config or InvoicingConfig.with_defaults()
        self._clock = clock or SystemClock()

        self.state = SessionState.LOADING
        self.view: PublicInvoiceView | None = None
        self.amount: Decimal | None = None
        self.intent: PaymentIntentHandle | None = None
        self.error_message: str | None = None
        self.inline_error: str | None = None
        self.payment: Payment | None = None
        self.completed_at: datetime | None = None
        self._online_payment_seen = False

    # -------------------------------------------------------------------------
    # Derived
    # -------------------------------------------------------------------------

    @property
    def balance_due(self) -> Decimal:
        return self.view.invoice.balance_due if self.view else ZERO

    @property
    def minimum(self) -> Decimal:
        return self._config.min_online_payment

    @property
    def maximum(self) -> Decimal:
        return self.balance_due + self._config.amount_tolerance

    @property
    def receipt_available(self) -> bool:
        return self._online_payment_seen

    def amount_error(self, amount: Decimal | str | None) -> str | None:
        """Inline validation message for a typed amount, None when valid."""
        value = parse_amount(amount)
        if value < self.minimum:
            return f"Minimum payment is {format_money(self.minimum)}"
        if value > self.maximum:
            return f"Maximum is {format_money(self.balance_due)}"
        return None

    def is_valid_amount(self, amount: Decimal | str | None) -> bool:
        return self.amount_error(amount) is None

    def _require(self, step: str, *states: SessionState) -> None:
        if self.state not in states:
            raise PaymentSessionStateError(step, self.state.value)

    def _checked_amount(self, amount: Decimal | str | None) -> Decimal:
        value = self.balance_due if amount is None else parse_amount(amount)
        if not self.is_valid_amount(value):
            raise InvalidPaymentAmountError(
                str(value), minimum=str(self.minimum), maximum=str(self.balance_due),
            )
        return value

    def _log_context(self):
        return LogContext.bind(token_hint=token_hint(self._token))

    # -------------------------------------------------------------------------
    # Entry
    # -------------------------------------------------------------------------

    async def load(self) -> SessionState:
        """Fetch the public invoice and pick the entry state."""
        self.state = SessionState.LOADING
        self.inline_error = None
        self.intent = None
        with self._log_context():
            try:
                view = await self._api.fetch_public_invoice(self._token)
            except PaymentLinkError as exc:
                return self._fail(str(exc), exc)
            except StudioError as exc:
                return self._fail(LOAD_FAILED_MESSAGE, exc)

            self.view = view
            self.amount = view.invoice.balance_due
            if view.invoice.has_online_payment:
                self._online_payment_seen = True

            if view.invoice.is_settled:
                self.state = SessionState.ALREADY_PAID
            elif not view.gateways.any_available:
                self.state = SessionState.NO_GATEWAY
            else:
                self.state = SessionState.CHECKOUT

            logger.info("payment_session_loaded", extra={
                "state": self.state.value,
                "balance_due": str(view.invoice.balance_due),
            })
            return self.state

    def _fail(self, message: str, exc: StudioError) -> SessionState:
        self.state = SessionState.ERROR
        self.error_message = message
        logger.warning("payment_session_error", extra={"error_code": exc.code})
        return self.state

    # -------------------------------------------------------------------------
    # Card path
    # -------------------------------------------------------------------------

    async def start_card_payment(self, amount: Decimal | str | None = None) -> SessionState:
        """
        Create a card intent for ``amount`` and move to ``paying``.

        Raises:
            InvalidPaymentAmountError: amount outside the payable bound.
            PaymentSessionStateError: not in ``checkout``.
            GatewayNotConfiguredError: card payments are not offered.
        """
        self._require("start a card payment", SessionState.CHECKOUT)
        if not self.view.gateways.card_available:
            raise GatewayNotConfiguredError("Card payments are not available", gateway="card")
        value = self._checked_amount(amount)
        self.inline_error = None

        with self._log_context():
            result = await run_mutation(
                "create_payment_intent",
                self._api.create_payment_intent(self._token, value),
            )
            if not result.succeeded:
                return self._fail(str(result.error) or INTENT_FAILED_MESSAGE, result.error)

            self.amount = value
            self.intent = result.value
            self.state = SessionState.PAYING
            return self.state

    async def complete_card_payment(self, checkout: HostedCardCheckout) -> SessionState:
        """Run hosted card entry, then have the server confirm the intent."""
        self._require("complete a card payment", SessionState.PAYING)
        self.inline_error = None

        with self._log_context():
            try:
                status = await checkout.confirm(self.intent.client_secret)
            except GatewayError as exc:
                self.inline_error = str(exc)
                logger.warning("card_checkout_failed", extra={"error_code": exc.code})
                return self.state

            if status not in _CONFIRMABLE_STATUSES:
                self.inline_error = f"Unexpected status: {status}. Please try again."
                return self.state

            result = await run_mutation(
                "confirm_payment_intent",
                self._api.confirm_payment_intent(self._token, self.intent.intent_id),
            )
            if not result.succeeded:
                self.inline_error = str(result.error)
                return self.state

            return self._succeed(result.value.payment)

    # -------------------------------------------------------------------------
    # Wallet path
    # -------------------------------------------------------------------------

    async def pay_with_wallet(
        self,
        approver: WalletApprover,
        amount: Decimal | str | None = None,
    ) -> SessionState:
        """Create a wallet order, get payer approval, capture on the server."""
        self._require("pay with the wallet", SessionState.CHECKOUT)
        if not self.view.gateways.wallet_available:
            raise GatewayNotConfiguredError("Wallet payments are not available", gateway="wallet")
        value = self._checked_amount(amount)
        self.inline_error = None

        with self._log_context():
            order = await run_mutation(
                "create_wallet_order",
                self._api.create_wallet_order(self._token, value),
            )
            if not order.succeeded:
                self.inline_error = str(order.error)
                return self.state

            self.amount = value
            if not await approver.approve(order.value.order_id):
                logger.info("wallet_order_cancelled_by_payer")
                return self.state

            capture = await run_mutation(
                "capture_wallet_order",
                self._api.capture_wallet_order(self._token, order.value.order_id),
            )
            if not capture.succeeded:
                self.inline_error = str(capture.error)
                return self.state

            return self._succeed(capture.value.payment)

    def _succeed(self, payment: Payment) -> SessionState:
        self.payment = payment
        self.state = SessionState.SUCCESS
        self.completed_at = self._clock.now()
        self._online_payment_seen = True
        logger.info("payment_session_succeeded", extra={
            "payment_id": str(payment.id),
            "amount": str(payment.amount),
        })
        return self.state

    # -------------------------------------------------------------------------
    # Receipt
    # -------------------------------------------------------------------------

    async def fetch_receipt(self) -> ReceiptDocument:
        if not self.receipt_available:
            raise ReceiptNotFoundError(str(self.view.invoice.id) if self.view else "")
        return await self._api.fetch_receipt(self._token)
