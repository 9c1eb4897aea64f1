"""
Payment reconciliation on the client side of the invoice editor.

Responsibility:
    Applies payment mutations against the source of truth and refreshes the
    editor's local view afterwards.  Hosts the payment removal decision
    table (delete / credit / refund / stripe_refund).

Architecture position:
    Services -- client-side orchestration.  Depends on the ``InvoiceApi``
    protocol and the pure engines; never touches a database session.

Every mutation follows the same sequence:

    1. issue the mutation and await it
    2. on failure, return a FAILED ``MutationResult`` and do nothing else
    3. otherwise issue exactly ONE reconciliation fetch
    4. if that fetch fails, recompute locally with the aggregator, using the
       same formulas the source of truth uses

The local fallback only differs from the remote path in data freshness;
the mutation's effect is never applied locally as final truth when the
fetch succeeds.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Sequence
from uuid import UUID

from studio_engines.aggregation import (
    DiscountRule,
    DisplayStatus,
    InvoiceStatus,
    InvoiceTotals,
    aggregate_line_items,
    derive_display_status,
)
from studio_engines.ledger import PaymentLedger
from studio_engines.pricing import LineItem, PriceList, PricingMode, rate_for_mode
from studio_kernel.domain.money import ZERO, format_money, parse_amount
from studio_kernel.exceptions import (
    CreditRequiresClientError,
    GatewayRefundUnavailableError,
    InvalidPaymentAmountError,
    PaymentNotFoundError,
    RemovalActionUnavailableError,
    StudioError,
)
from studio_kernel.logging_config import LogContext, get_logger
from studio_modules.invoicing.models import Invoice, Payment, PaymentMethod
from studio_services.api import InvoiceApi, MutationResult, run_mutation

logger = get_logger("services.reconciliation")

CREDIT_REASON = "Payment deleted - converted to client credit"


class RemovalAction(str, Enum):
    """What to do with a payment being removed."""

    DELETE = "delete"  # Remove the record only
    CREDIT = "credit"  # Remove and hold the amount as client credit
    REFUND = "refund"  # Remove; money was returned outside the system
    STRIPE_REFUND = "stripe_refund"  # Refund through the card gateway


class ReconcileSource(str, Enum):
    REMOTE = "remote"
    LOCAL_FALLBACK = "local_fallback"


# =============================================================================
# Workspace
# =============================================================================


@dataclass(frozen=True)
class InvoiceWorkspace:
    """
    Client-side view of one invoice.

    ``totals()`` always goes through the aggregator so the editor, list rows
    and the reconciliation fallback can never disagree.
    """

    invoice_id: UUID
    items: tuple[LineItem, ...]
    discount: DiscountRule
    payments: tuple[Payment, ...]
    price_list: PriceList
    live_rate: Decimal
    frozen_rate: Decimal | None = None
    mode: PricingMode = PricingMode.HISTORICAL
    due_date: datetime | None = None
    persisted_status: InvoiceStatus = InvoiceStatus.PENDING
    client_id: UUID | None = None
    snapshot: Invoice | None = field(default=None, compare=False)

    @classmethod
    def from_invoice(
        cls,
        invoice: Invoice,
        price_list: PriceList,
        live_rate: Decimal,
    ) -> InvoiceWorkspace:
        return cls(
            invoice_id=invoice.id,
            items=invoice.items,
            discount=invoice.discount,
            payments=invoice.payments,
            price_list=price_list,
            live_rate=live_rate,
            frozen_rate=invoice.tax_rate,
            due_date=invoice.due_date,
            persisted_status=invoice.status,
            client_id=invoice.client_id,
            snapshot=invoice,
        )

    @property
    def tax_rate(self) -> Decimal:
        return rate_for_mode(self.mode, self.live_rate, self.frozen_rate)

    @property
    def ledger(self) -> PaymentLedger[Payment]:
        return PaymentLedger.of(self.payments)

    def totals(self) -> InvoiceTotals:
        return aggregate_line_items(
            self.items,
            self.tax_rate,
            self.price_list,
            self.discount,
            self.payments,
            mode=self.mode,
        )

    def display_status(self, now: datetime) -> DisplayStatus:
        return derive_display_status(
            self.persisted_status,
            self.totals().rounded().balance_due,
            self.due_date,
            now,
        )

    def with_snapshot(self, invoice: Invoice) -> InvoiceWorkspace:
        """Replace local state with an authoritative snapshot."""
        return replace(
            self,
            items=invoice.items,
            discount=invoice.discount,
            payments=invoice.payments,
            frozen_rate=invoice.tax_rate,
            due_date=invoice.due_date,
            persisted_status=invoice.status,
            client_id=invoice.client_id,
            snapshot=invoice,
        )

    def with_payments(self, payments: Sequence[Payment]) -> InvoiceWorkspace:
        """Local recompute: new payment list, status re-derived from it."""
        updated = replace(self, payments=tuple(payments))
        totals = updated.totals()
        return replace(updated, persisted_status=totals.persisted_status)


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of mutate-then-reconcile."""

    workspace: InvoiceWorkspace
    mutation: MutationResult
    source: ReconcileSource | None = None  # None when no fetch was issued
    fetch_error: StudioError | None = None

    @property
    def succeeded(self) -> bool:
        return self.mutation.succeeded

    @property
    def totals(self) -> InvoiceTotals:
        return self.workspace.totals()


# =============================================================================
# Reconciler
# =============================================================================


class PaymentReconciler:
    """Mutate, then refresh from the source of truth exactly once."""

    def __init__(self, api: InvoiceApi):
        self._api = api

    async def reconcile(
        self,
        workspace: InvoiceWorkspace,
        mutation: MutationResult,
        fallback_payments: Sequence[Payment],
    ) -> ReconcileOutcome:
        """
        Issue the single reconciliation fetch after a mutation.

        Args:
            workspace: State before the mutation
            mutation: The completed mutation
            fallback_payments: Payment list to recompute from if the fetch
                fails
        """
        if not mutation.changed_source_of_truth:
            return ReconcileOutcome(workspace=workspace, mutation=mutation)

        try:
            snapshot = await self._api.fetch_invoice_snapshot(workspace.invoice_id)
        except StudioError as exc:
            logger.warning("reconcile_fetch_failed", extra={
                "invoice_id": str(workspace.invoice_id),
                "operation": mutation.operation,
                "error_code": exc.code,
            })
            return ReconcileOutcome(
                workspace=workspace.with_payments(fallback_payments),
                mutation=mutation,
                source=ReconcileSource.LOCAL_FALLBACK,
                fetch_error=exc,
            )

        logger.info("reconcile_completed", extra={
            "invoice_id": str(workspace.invoice_id),
            "operation": mutation.operation,
            "payments": len(snapshot.payments),
        })
        return ReconcileOutcome(
            workspace=workspace.with_snapshot(snapshot),
            mutation=mutation,
            source=ReconcileSource.REMOTE,
        )

    async def add_payment(
        self,
        workspace: InvoiceWorkspace,
        amount: Decimal | str,
        method: str = PaymentMethod.CASH.value,
        payment_date: datetime | None = None,
    ) -> ReconcileOutcome:
        """
        Record a payment and reconcile.

        Raises:
            InvalidPaymentAmountError: amount is not positive (no network call).
        """
        amount = parse_amount(amount)
        if amount <= ZERO:
            raise InvalidPaymentAmountError(str(amount))

        with LogContext.bind(invoice_id=str(workspace.invoice_id)):
            mutation = await run_mutation(
                "add_payment",
                self._api.add_payment(workspace.invoice_id, amount, method, payment_date),
            )
            fallback = workspace.payments
            if mutation.succeeded and mutation.value is not None:
                fallback = workspace.ledger.appended(mutation.value).entries
            return await self.reconcile(workspace, mutation, fallback)


# =============================================================================
# Removal policy
# =============================================================================


class PaymentRemovalPolicy:
    """
    Decision table for removing a payment.

    Action          | Available when          | Effect
    ----------------|-------------------------|---------------------------------
    delete          | always                  | remove record
    credit          | invoice has a client    | remove record, create credit
    refund          | always                  | remove record (money returned
                    |                         | outside the system)
    stripe_refund   | payment has charge id   | gateway refund of the captured
                    |                         | amount; record resolved by the
                    |                         | reconciliation fetch
    """

    def __init__(self, api: InvoiceApi, reconciler: PaymentReconciler | None = None):
        self._api = api
        self._reconciler = reconciler or PaymentReconciler(api)

    @staticmethod
    def available_actions(
        payment: Payment,
        client_id: UUID | None,
    ) -> tuple[RemovalAction, ...]:
        actions = [RemovalAction.DELETE]
        if client_id is not None:
            actions.append(RemovalAction.CREDIT)
        actions.append(RemovalAction.REFUND)
        if payment.gateway_charge_id:
            actions.append(RemovalAction.STRIPE_REFUND)
        return tuple(actions)

    @staticmethod
    def operator_notice(action: RemovalAction | str, payment: Payment) -> str:
        """Text to show the operator before confirming ``action``."""
        amount = format_money(payment.amount)
        match RemovalAction(action):
            case RemovalAction.DELETE:
                return "Remove the payment record. No credit or refund."
            case RemovalAction.CREDIT:
                return f"Remove the payment and add {amount} as client credit."
            case RemovalAction.REFUND:
                notice = (
                    "Remove the payment record. "
                    "Money was already returned to the customer."
                )
                if payment.gateway_charge_id:
                    notice += " The card charge will NOT be refunded."
                return notice
            case RemovalAction.STRIPE_REFUND:
                return f"Refund {amount} back to the customer's card."

    def _check_available(
        self,
        payment: Payment,
        action: RemovalAction,
        client_id: UUID | None,
    ) -> None:
        if action == RemovalAction.CREDIT and client_id is None:
            raise CreditRequiresClientError(str(payment.id))
        if action == RemovalAction.STRIPE_REFUND and not payment.gateway_charge_id:
            raise GatewayRefundUnavailableError(str(payment.id))

    @staticmethod
    def _credit_client(
        workspace: InvoiceWorkspace,
        payment: Payment,
        client_id: UUID | None,
    ) -> UUID | None:
        """The invoice's own client; a caller-supplied id must match it."""
        if (
            client_id is not None
            and workspace.client_id is not None
            and client_id != workspace.client_id
        ):
            raise RemovalActionUnavailableError(
                str(payment.id),
                RemovalAction.CREDIT.value,
                "client does not match the invoice",
            )
        return workspace.client_id

    async def remove(
        self,
        workspace: InvoiceWorkspace,
        payment_id: UUID,
        action: RemovalAction | str,
        client_id: UUID | None = None,
    ) -> ReconcileOutcome:
        """
        Remove a payment with ``action`` and reconcile.

        A credit always goes to the invoice's client. ``client_id`` may be
        omitted; when given it must be that same client.

        Raises:
            PaymentNotFoundError: payment is not in the workspace ledger.
            RemovalActionUnavailableError: action cannot be offered for this
                payment (raised before any network call).
        """
        action = RemovalAction(action)
        payment = workspace.ledger.find(payment_id)
        if payment is None:
            raise PaymentNotFoundError(str(payment_id))
        if action == RemovalAction.CREDIT:
            client_id = self._credit_client(workspace, payment, client_id)
        self._check_available(payment, action, client_id)

        with LogContext.bind(invoice_id=str(workspace.invoice_id)):
            logger.info("payment_removal_requested", extra={
                "payment_id": str(payment.id),
                "action": action.value,
                "amount": str(payment.amount),
            })

            if action == RemovalAction.STRIPE_REFUND:
                mutation = await run_mutation(
                    "request_card_refund",
                    self._api.request_card_refund(payment.id),
                )
                # The record's fate comes from the next fetch, not from here
                fallback = workspace.payments
            else:
                mutation = await run_mutation(
                    "delete_payment",
                    self._api.delete_payment(payment.id),
                )
                if mutation.succeeded and action == RemovalAction.CREDIT:
                    mutation = await self._create_credit(client_id, payment)
                fallback = workspace.ledger.without(payment.id).entries

            return await self._reconciler.reconcile(workspace, mutation, fallback)

    async def _create_credit(self, client_id: UUID, payment: Payment) -> MutationResult:
        credit = await run_mutation(
            "create_credit",
            self._api.create_credit(client_id, payment.amount, CREDIT_REASON),
        )
        if credit.succeeded:
            return credit
        # Payment is already gone; surface the failure but still reconcile
        return MutationResult.failed(
            credit.operation, credit.error, partially_applied=True,
        )
