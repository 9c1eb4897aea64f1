"""
Typed Exception Hierarchy for the studio invoicing engine.

Every error has a typed class (catch by type, not by message), a class-level
``code`` attribute (machine-readable, API-safe) and structured attributes
carrying the data a caller needs to react.

    StudioError (base)
    |
    +-- InvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- EmptyInvoiceError
    |   +-- InvoiceAlreadyPaidError
    |
    +-- PaymentError
    |   +-- PaymentNotFoundError
    |   +-- InvalidPaymentAmountError
    |   +-- RemovalActionUnavailableError
    |   |   +-- CreditRequiresClientError
    |   |   +-- GatewayRefundUnavailableError
    |   +-- CreditNotFoundError
    |
    +-- PaymentLinkError
    +-- ReceiptNotFoundError
    +-- PaymentSessionStateError
    |
    +-- GatewayError
    |   +-- CardDeclinedError
    |   +-- CaptureFailedError
    |   +-- GatewayNotConfiguredError
    |   +-- GatewayTimeoutError
    |
    +-- RemoteCallError

Error codes - quick reference
-----------------------------

Category | Code                         | When raised
---------|------------------------------|-------------------------------------------
Invoice  | INVOICE_NOT_FOUND            | Invoice id does not exist
         | EMPTY_INVOICE                | Save with no billable line items
         | INVOICE_ALREADY_PAID         | Online payment requested on a settled invoice
Payment  | PAYMENT_NOT_FOUND            | Payment id does not exist
         | INVALID_PAYMENT_AMOUNT       | Amount <= 0 or outside the payable bound
         | REMOVAL_ACTION_UNAVAILABLE   | Removal action cannot be offered for the payment
         | CREDIT_REQUIRES_CLIENT       | Convert-to-credit with no client on the invoice
         | GATEWAY_REFUND_UNAVAILABLE   | Gateway refund on a payment with no charge id
         | CREDIT_NOT_FOUND             | Client credit id does not exist
Public   | PAYMENT_LINK_INVALID         | Malformed, unknown or expired payment token
         | RECEIPT_NOT_FOUND            | No online payment to produce a receipt for
         | PAYMENT_SESSION_STATE        | Session step called from the wrong state
Gateway  | GATEWAY_ERROR                | Gateway rejected or could not finish a step
         | CARD_DECLINED                | Card refused (including failed CVC check)
         | CAPTURE_FAILED               | Wallet order capture did not complete
         | GATEWAY_NOT_CONFIGURED       | Gateway disabled or missing credentials
         | GATEWAY_TIMEOUT              | Gateway confirmation timed out (not retried)
Remote   | REMOTE_CALL_FAILED           | Transport failure talking to the source of truth

Pricing and aggregation never raise for bad amounts or quantities; they
default (see ``studio_kernel.domain.money``).
"""


class StudioError(Exception):
    """
    Base exception for all studio invoicing errors.

    All subclasses have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "STUDIO_ERROR"
    retryable: bool = False


# Invoice-related exceptions


class InvoiceError(StudioError):
    """Base exception for invoice errors."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class EmptyInvoiceError(InvoiceError):
    """Invoice has no billable line items."""

    code: str = "EMPTY_INVOICE"

    def __init__(self, submitted_items: int = 0):
        self.submitted_items = submitted_items
        super().__init__(
            f"Invoice has no billable items ({submitted_items} submitted)"
        )


class InvoiceAlreadyPaidError(InvoiceError):
    """Invoice has no balance left to pay."""

    code: str = "INVOICE_ALREADY_PAID"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__("Invoice is already paid")


# Payment-related exceptions


class PaymentError(StudioError):
    """Base exception for payment errors."""

    code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class InvalidPaymentAmountError(PaymentError):
    """Payment amount is not positive or lies outside the payable range."""

    code: str = "INVALID_PAYMENT_AMOUNT"

    def __init__(
        self,
        amount: str,
        minimum: str | None = None,
        maximum: str | None = None,
    ):
        self.amount = amount
        self.minimum = minimum
        self.maximum = maximum
        bounds = ""
        if minimum is not None or maximum is not None:
            bounds = f" (allowed {minimum or '0'} to {maximum or 'unbounded'})"
        super().__init__(f"Invalid payment amount: {amount}{bounds}")


class RemovalActionUnavailableError(PaymentError):
    """The requested removal action cannot be applied to this payment."""

    code: str = "REMOVAL_ACTION_UNAVAILABLE"

    def __init__(self, payment_id: str, action: str, reason: str):
        self.payment_id = payment_id
        self.action = action
        self.reason = reason
        super().__init__(
            f"Action '{action}' unavailable for payment {payment_id}: {reason}"
        )


class CreditRequiresClientError(RemovalActionUnavailableError):
    """Convert-to-credit needs a client on the invoice."""

    code: str = "CREDIT_REQUIRES_CLIENT"

    def __init__(self, payment_id: str):
        super().__init__(payment_id, "credit", "no client is set on the invoice")


class GatewayRefundUnavailableError(RemovalActionUnavailableError):
    """Gateway refund needs a payment captured through the card gateway."""

    code: str = "GATEWAY_REFUND_UNAVAILABLE"

    def __init__(self, payment_id: str):
        super().__init__(
            payment_id, "stripe_refund", "payment has no gateway charge id"
        )


class CreditNotFoundError(PaymentError):
    """Client credit with given ID was not found."""

    code: str = "CREDIT_NOT_FOUND"

    def __init__(self, credit_id: str):
        self.credit_id = credit_id
        super().__init__(f"Credit not found: {credit_id}")


# Public payment page


class PaymentLinkError(StudioError):
    """
    Payment token is malformed, unknown, or expired.

    The message is identical in every case so a caller cannot tell whether
    an invoice exists behind a token.
    """

    code: str = "PAYMENT_LINK_INVALID"

    def __init__(self) -> None:
        super().__init__("This payment link is invalid or has expired.")


class ReceiptNotFoundError(StudioError):
    """No online payment exists to produce a receipt for."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__("No online payment found for this invoice")


class PaymentSessionStateError(StudioError):
    """An online payment session step was called from the wrong state."""

    code: str = "PAYMENT_SESSION_STATE"

    def __init__(self, step: str, state: str):
        self.step = step
        self.state = state
        super().__init__(f"Cannot {step} while session is {state}")


# Gateway exceptions


class GatewayError(StudioError):
    """An external payment gateway rejected or could not finish a step."""

    code: str = "GATEWAY_ERROR"

    def __init__(self, message: str, gateway: str | None = None, reference: str | None = None):
        self.gateway = gateway
        self.reference = reference
        super().__init__(message)


class CardDeclinedError(GatewayError):
    """Card was refused by the gateway."""

    code: str = "CARD_DECLINED"


class CaptureFailedError(GatewayError):
    """Wallet order capture did not complete."""

    code: str = "CAPTURE_FAILED"


class GatewayNotConfiguredError(GatewayError):
    """Gateway is disabled or has no credentials for the active mode."""

    code: str = "GATEWAY_NOT_CONFIGURED"


class GatewayTimeoutError(GatewayError):
    """Gateway confirmation timed out. Treated as failed; never auto-retried."""

    code: str = "GATEWAY_TIMEOUT"


# Transport


class RemoteCallError(StudioError):
    """
    Transport failure talking to the source of truth.

    Always retryable: the mutation may or may not have been applied, and the
    caller decides whether to retry or to surface feedback.
    """

    code: str = "REMOTE_CALL_FAILED"
    retryable: bool = True

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Remote call '{operation}' failed: {reason}")
