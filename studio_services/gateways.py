"""
Payment gateway contracts.

The engine ships no vendor SDK. A card processor and a wallet processor are
described by the protocols below; production wiring adapts a vendor client
to them and tests use in-memory fakes.

Server-side protocols:
    CardGateway    -- manual-capture payment intents and refunds
    WalletGateway  -- order creation and capture

Client-side protocols (payer's browser):
    HostedCardCheckout -- collects card details in the processor's hosted UI
    WalletApprover     -- payer approval with the wallet provider

Amounts sent to the card gateway are integer minor units (cents); wallet
orders carry a two-decimal ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Mapping, Protocol, runtime_checkable


class CardIntentStatus(str, Enum):
    """Subset of card-processor intent statuses the engine reacts to."""

    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"


CVC_CHECK_FAIL = "fail"
WALLET_CAPTURE_COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class CardIntent:
    """A card payment intent as reported by the processor."""

    id: str
    amount_minor: int
    status: str
    client_secret: str | None = None
    currency: str = "usd"
    metadata: Mapping[str, str] = field(default_factory=dict)
    cvc_check: str | None = None  # "pass" / "fail" / "unchecked" / None


@dataclass(frozen=True)
class CardRefund:
    id: str
    intent_id: str
    amount_minor: int
    status: str


@dataclass(frozen=True)
class WalletOrder:
    id: str
    status: str
    amount: Decimal


@dataclass(frozen=True)
class WalletCapture:
    order_id: str
    status: str
    amount: Decimal
    capture_id: str | None = None


@runtime_checkable
class CardGateway(Protocol):
    """Server-side card processor."""

    def create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: Mapping[str, str],
        capture_method: str = "manual",
    ) -> CardIntent: ...

    def retrieve_intent(self, intent_id: str) -> CardIntent: ...

    def capture_intent(self, intent_id: str) -> CardIntent: ...

    def cancel_intent(self, intent_id: str) -> CardIntent: ...

    def refund(self, intent_id: str, amount_minor: int) -> CardRefund: ...


@runtime_checkable
class WalletGateway(Protocol):
    """Server-side wallet processor."""

    def create_order(
        self,
        amount: Decimal,
        invoice_id: str,
        description: str,
    ) -> WalletOrder: ...

    def capture_order(self, order_id: str) -> WalletCapture: ...


class HostedCardCheckout(Protocol):
    """
    Card entry in the processor's hosted UI.

    ``confirm`` returns the intent status reported after the payer submits
    (``requires_capture`` or ``succeeded``) and raises ``CardDeclinedError``
    or ``GatewayTimeoutError`` on failure.
    """

    async def confirm(self, client_secret: str) -> str: ...


class WalletApprover(Protocol):
    """Payer approval of a wallet order; False means the payer cancelled."""

    async def approve(self, order_id: str) -> bool: ...
