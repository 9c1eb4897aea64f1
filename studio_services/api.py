"""
Remote API contracts between the client side and the source of truth.

Responsibility:
    Declares the async request/response surface the client side (invoice
    editor, public payment page) uses to reach the authoritative invoicing
    services, plus in-process adapters that satisfy those contracts by
    calling the services directly.

Architecture position:
    Services -- transport seam.  ``PaymentReconciler``,
    ``PaymentRemovalPolicy`` and ``OnlinePaymentSession`` depend only on the
    protocols here, never on a session or an ORM model.

Invariants enforced:
    - Mutations never fail silently: ``run_mutation`` turns every typed
      failure into a ``MutationResult`` with ``status=FAILED``, the error
      and its ``retryable`` flag.
    - Transport failures surface as ``RemoteCallError`` (retryable).
    - Payment ordering is whatever the source of truth returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Awaitable, Callable, Generic, Protocol, TypeVar
from uuid import UUID

from sqlalchemy.exc import OperationalError

from studio_kernel.exceptions import GatewayNotConfiguredError, RemoteCallError, StudioError
from studio_kernel.logging_config import get_logger
from studio_modules.invoicing.models import ClientCredit, Invoice, Payment, PaymentMethod
from studio_modules.invoicing.service import InvoicingService
from studio_services.gateways import CardGateway, CardRefund
from studio_services.public_payment_service import (
    ConfirmationResult,
    PaymentIntentHandle,
    PublicInvoiceView,
    PublicPaymentService,
    ReceiptDocument,
    WalletOrderHandle,
)

logger = get_logger("services.api")

T = TypeVar("T")


# =============================================================================
# Mutation results
# =============================================================================


class MutationStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """
    Outcome of one remote mutation.

    ``partially_applied`` is set when a multi-step mutation failed after an
    earlier step had already changed the source of truth.
    """

    status: MutationStatus
    operation: str
    value: T | None = None
    error: StudioError | None = None
    partially_applied: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == MutationStatus.SUCCEEDED

    @property
    def retryable(self) -> bool:
        return self.error is not None and self.error.retryable

    @property
    def changed_source_of_truth(self) -> bool:
        return self.succeeded or self.partially_applied

    @classmethod
    def ok(cls, operation: str, value: T | None = None) -> MutationResult[T]:
        return cls(status=MutationStatus.SUCCEEDED, operation=operation, value=value)

    @classmethod
    def failed(
        cls,
        operation: str,
        error: StudioError,
        partially_applied: bool = False,
    ) -> MutationResult[T]:
        return cls(
            status=MutationStatus.FAILED,
            operation=operation,
            error=error,
            partially_applied=partially_applied,
        )


async def run_mutation(operation: str, call: Awaitable[T]) -> MutationResult[T]:
    """Await a remote mutation and capture a typed failure as a result."""
    try:
        value = await call
    except StudioError as exc:
        logger.warning("remote_mutation_failed", extra={
            "operation": operation,
            "error_code": exc.code,
            "retryable": exc.retryable,
        })
        return MutationResult.failed(operation, exc)
    return MutationResult.ok(operation, value)


# =============================================================================
# Protocols
# =============================================================================


class InvoiceApi(Protocol):
    """Back-office surface used by the invoice editor."""

    async def fetch_invoice_snapshot(self, invoice_id: UUID) -> Invoice: ...

    async def add_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: str = PaymentMethod.CASH.value,
        payment_date: datetime | None = None,
    ) -> Payment: ...

    async def delete_payment(self, payment_id: UUID) -> None: ...

    async def create_credit(
        self,
        client_id: UUID,
        amount: Decimal,
        reason: str | None = None,
    ) -> ClientCredit: ...

    async def request_card_refund(self, payment_id: UUID) -> CardRefund: ...


class PublicPaymentApi(Protocol):
    """Unauthenticated surface used by the public payment page."""

    async def fetch_public_invoice(self, token: str) -> PublicInvoiceView: ...

    async def create_payment_intent(
        self,
        token: str,
        amount: Decimal | None = None,
    ) -> PaymentIntentHandle: ...

    async def confirm_payment_intent(self, token: str, intent_id: str) -> ConfirmationResult: ...

    async def create_wallet_order(
        self,
        token: str,
        amount: Decimal | None = None,
    ) -> WalletOrderHandle: ...

    async def capture_wallet_order(self, token: str, order_id: str) -> ConfirmationResult: ...

    async def fetch_receipt(self, token: str) -> ReceiptDocument: ...


# =============================================================================
# In-process adapters
# =============================================================================


def _call(operation: str, fn: Callable[[], T]) -> T:
    try:
        return fn()
    except OperationalError as exc:
        logger.error("remote_call_transport_failure", extra={
            "operation": operation,
            "error": str(exc.orig) if exc.orig is not None else str(exc),
        })
        raise RemoteCallError(operation, "database unavailable") from exc


class LocalInvoiceApi:
    """``InvoiceApi`` served by an in-process ``InvoicingService``."""

    def __init__(
        self,
        service: InvoicingService,
        card_gateway: CardGateway | None = None,
    ):
        self._service = service
        self._card = card_gateway

    async def fetch_invoice_snapshot(self, invoice_id: UUID) -> Invoice:
        return _call("fetch_invoice_snapshot", lambda: self._service.get_snapshot(invoice_id))

    async def add_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: str = PaymentMethod.CASH.value,
        payment_date: datetime | None = None,
    ) -> Payment:
        return _call("add_payment", lambda: self._service.add_payment(
            invoice_id, amount, method=method, payment_date=payment_date,
        ))

    async def delete_payment(self, payment_id: UUID) -> None:
        _call("delete_payment", lambda: self._service.delete_payment(payment_id))

    async def create_credit(
        self,
        client_id: UUID,
        amount: Decimal,
        reason: str | None = None,
    ) -> ClientCredit:
        return _call("create_credit", lambda: self._service.create_credit(
            client_id, amount, reason,
        ))

    async def request_card_refund(self, payment_id: UUID) -> CardRefund:
        if self._card is None:
            raise GatewayNotConfiguredError("Card refunds are not configured", gateway="card")
        return _call("request_card_refund", lambda: self._service.refund_card_payment(
            payment_id, self._card,
        ))


class LocalPublicPaymentApi:
    """``PublicPaymentApi`` served by an in-process ``PublicPaymentService``."""

    def __init__(self, service: PublicPaymentService):
        self._service = service

    async def fetch_public_invoice(self, token: str) -> PublicInvoiceView:
        return _call("fetch_public_invoice", lambda: self._service.get_public_invoice(token))

    async def create_payment_intent(
        self,
        token: str,
        amount: Decimal | None = None,
    ) -> PaymentIntentHandle:
        return _call("create_payment_intent", lambda: self._service.create_payment_intent(
            token, amount,
        ))

    async def confirm_payment_intent(self, token: str, intent_id: str) -> ConfirmationResult:
        return _call("confirm_payment_intent", lambda: self._service.confirm_payment_intent(
            token, intent_id,
        ))

    async def create_wallet_order(
        self,
        token: str,
        amount: Decimal | None = None,
    ) -> WalletOrderHandle:
        return _call("create_wallet_order", lambda: self._service.create_wallet_order(
            token, amount,
        ))

    async def capture_wallet_order(self, token: str, order_id: str) -> ConfirmationResult:
        return _call("capture_wallet_order", lambda: self._service.capture_wallet_order(
            token, order_id,
        ))

    async def fetch_receipt(self, token: str) -> ReceiptDocument:
        return _call("fetch_receipt", lambda: self._service.get_receipt(token))
