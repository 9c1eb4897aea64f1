"""
Studio Services -- stateful orchestration above the invoicing module.

Public payment page (server side):
    PublicPaymentService, gateway protocols, receipts.

Client side:
    InvoiceApi / PublicPaymentApi contracts with in-process adapters,
    PaymentReconciler + PaymentRemovalPolicy for the invoice editor, and
    OnlinePaymentSession for the payer.
"""

from studio_services.api import (
    InvoiceApi,
    LocalInvoiceApi,
    LocalPublicPaymentApi,
    MutationResult,
    MutationStatus,
    PublicPaymentApi,
    run_mutation,
)
from studio_services.gateways import (
    CardGateway,
    CardIntent,
    CardIntentStatus,
    CardRefund,
    HostedCardCheckout,
    WalletApprover,
    WalletCapture,
    WalletGateway,
    WalletOrder,
)
from studio_services.online_payment import OnlinePaymentSession, SessionState
from studio_services.public_payment_service import (
    ConfirmationResult,
    PaymentIntentHandle,
    PublicInvoiceView,
    PublicPaymentService,
    ReceiptData,
    ReceiptDocument,
    ReceiptRenderer,
    TextReceiptRenderer,
    WalletOrderHandle,
)
from studio_services.reconciliation_service import (
    InvoiceWorkspace,
    PaymentReconciler,
    PaymentRemovalPolicy,
    ReconcileOutcome,
    ReconcileSource,
    RemovalAction,
)

__all__ = [
    "CardGateway",
    "CardIntent",
    "CardIntentStatus",
    "CardRefund",
    "ConfirmationResult",
    "HostedCardCheckout",
    "InvoiceApi",
    "InvoiceWorkspace",
    "LocalInvoiceApi",
    "LocalPublicPaymentApi",
    "MutationResult",
    "MutationStatus",
    "OnlinePaymentSession",
    "PaymentIntentHandle",
    "PaymentReconciler",
    "PaymentRemovalPolicy",
    "PublicInvoiceView",
    "PublicPaymentApi",
    "PublicPaymentService",
    "ReceiptData",
    "ReceiptDocument",
    "ReceiptRenderer",
    "ReconcileOutcome",
    "ReconcileSource",
    "RemovalAction",
    "SessionState",
    "TextReceiptRenderer",
    "WalletApprover",
    "WalletCapture",
    "WalletGateway",
    "WalletOrder",
    "WalletOrderHandle",
    "run_mutation",
]
