"""
Pytest fixtures for the studio invoicing test suite.

Provides:
- SQLite in-memory database sessions (one fresh schema per test)
- Deterministic clock and invoicing configuration
- In-memory fakes for the card and wallet gateways, the hosted card
  checkout and the wallet approver
- A transport wrapper that can fail chosen remote calls
- Seeded clients, products and invoices
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Callable, Generator, Mapping

import pytest
from sqlalchemy.orm import Session

from studio_engines.aggregation import DiscountRule
from studio_engines.pricing import CustomLine, ProductLine
from studio_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from studio_kernel.domain.clock import DeterministicClock
from studio_kernel.exceptions import GatewayError, RemoteCallError
from studio_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from studio_modules.invoicing.config import InvoicingConfig
from studio_modules.invoicing.models import Invoice, InvoiceDraft
from studio_modules.invoicing.orm import ClientModel, ProductModel
from studio_modules.invoicing.service import InvoicingService
from studio_services.api import LocalInvoiceApi, LocalPublicPaymentApi
from studio_services.gateways import (
    CardIntent,
    CardIntentStatus,
    CardRefund,
    WalletCapture,
    WalletOrder,
    WALLET_CAPTURE_COMPLETED,
)
from studio_services.public_payment_service import PublicPaymentService

TEST_ACTOR = "test-operator"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture studio_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, invoicing_service):
            invoicing_service.add_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_added" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("studio_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session() -> Generator[Session, None, None]:
    """Fresh in-memory SQLite schema and session for each test."""
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    yield session
    session.close()
    drop_tables()
    reset_engine()


# =============================================================================
# Clock and config
# =============================================================================


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def config() -> InvoicingConfig:
    """10% in-state tax, both gateways live."""
    return InvoicingConfig(
        default_tax_rate=Decimal("10"),
        tax_home_state="CA",
        stripe_enabled=True,
        stripe_publishable_key="pk_live_studio",
        paypal_enabled=True,
        paypal_client_id="paypal-live-client",
        company_name="Lumen Photo Studio",
    )


# =============================================================================
# Gateway fakes
# =============================================================================


class FakeCardGateway:
    """In-memory card processor with manual capture."""

    def __init__(self):
        self.intents: dict[str, CardIntent] = {}
        self.refunds: list[CardRefund] = []
        self.captured: list[str] = []
        self.cancelled: list[str] = []
        self.refund_error: GatewayError | None = None
        self._counter = 0

    def create_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: Mapping[str, str],
        capture_method: str = "manual",
    ) -> CardIntent:
        self._counter += 1
        intent_id = f"pi_test_{self._counter:04d}"
        intent = CardIntent(
            id=intent_id,
            amount_minor=amount_minor,
            status=CardIntentStatus.REQUIRES_PAYMENT_METHOD.value,
            client_secret=f"{intent_id}_secret_abc",
            currency=currency,
            metadata=dict(metadata),
        )
        self.intents[intent_id] = intent
        return intent

    def authorize(self, intent_id: str, cvc_check: str | None = "pass") -> CardIntent:
        """Payer submitted card details in the hosted UI."""
        intent = self.retrieve_intent(intent_id)
        return self._update(
            intent,
            status=CardIntentStatus.REQUIRES_CAPTURE.value,
            cvc_check=cvc_check,
        )

    def retrieve_intent(self, intent_id: str) -> CardIntent:
        if intent_id not in self.intents:
            raise GatewayError(f"No such payment intent: {intent_id}", gateway="card")
        return self.intents[intent_id]

    def capture_intent(self, intent_id: str) -> CardIntent:
        intent = self.retrieve_intent(intent_id)
        self.captured.append(intent_id)
        return self._update(intent, status=CardIntentStatus.SUCCEEDED.value)

    def cancel_intent(self, intent_id: str) -> CardIntent:
        intent = self.retrieve_intent(intent_id)
        self.cancelled.append(intent_id)
        return self._update(intent, status=CardIntentStatus.CANCELED.value)

    def refund(self, intent_id: str, amount_minor: int) -> CardRefund:
        if self.refund_error is not None:
            raise self.refund_error
        refund = CardRefund(
            id=f"re_test_{len(self.refunds) + 1:04d}",
            intent_id=intent_id,
            amount_minor=amount_minor,
            status="succeeded",
        )
        self.refunds.append(refund)
        return refund

    def _update(self, intent: CardIntent, **changes) -> CardIntent:
        updated = CardIntent(
            id=intent.id,
            amount_minor=intent.amount_minor,
            status=changes.get("status", intent.status),
            client_secret=intent.client_secret,
            currency=intent.currency,
            metadata=intent.metadata,
            cvc_check=changes.get("cvc_check", intent.cvc_check),
        )
        self.intents[intent.id] = updated
        return updated


class FakeWalletGateway:
    """In-memory wallet processor."""

    def __init__(self):
        self.orders: dict[str, WalletOrder] = {}
        self.capture_status = WALLET_CAPTURE_COMPLETED
        self.captures: list[str] = []
        self._counter = 0

    def create_order(self, amount: Decimal, invoice_id: str, description: str) -> WalletOrder:
        self._counter += 1
        order = WalletOrder(id=f"ORDER-{self._counter:04d}", status="CREATED", amount=amount)
        self.orders[order.id] = order
        return order

    def capture_order(self, order_id: str) -> WalletCapture:
        if order_id not in self.orders:
            raise GatewayError(f"No such order: {order_id}", gateway="wallet")
        self.captures.append(order_id)
        return WalletCapture(
            order_id=order_id,
            status=self.capture_status,
            amount=self.orders[order_id].amount,
            capture_id=f"CAP-{order_id}",
        )


class FakeHostedCheckout:
    """Payer's card entry; authorizes the intent on the fake card gateway."""

    def __init__(
        self,
        card_gateway: FakeCardGateway,
        cvc_check: str | None = "pass",
        error: GatewayError | None = None,
        status: str | None = None,
    ):
        self._card = card_gateway
        self._cvc_check = cvc_check
        self._error = error
        self._status = status
        self.confirmed: list[str] = []

    async def confirm(self, client_secret: str) -> str:
        if self._error is not None:
            raise self._error
        intent_id = client_secret.split("_secret")[0]
        self.confirmed.append(intent_id)
        if self._status is not None:
            return self._status
        return self._card.authorize(intent_id, self._cvc_check).status


class FakeWalletApprover:
    def __init__(self, approve: bool = True):
        self._approve = approve
        self.seen: list[str] = []

    async def approve(self, order_id: str) -> bool:
        self.seen.append(order_id)
        return self._approve


class FlakyApi:
    """
    Wraps an in-process API and fails chosen operations with a transport
    error before they reach the source of truth.
    """

    def __init__(self, inner):
        self._inner = inner
        self.failing: set[str] = set()
        self.calls: list[str] = []

    def __getattr__(self, operation: str) -> Callable:
        target = getattr(self._inner, operation)

        async def _call(*args, **kwargs):
            self.calls.append(operation)
            if operation in self.failing:
                raise RemoteCallError(operation, "connection reset")
            return await target(*args, **kwargs)

        return _call


@pytest.fixture
def card_gateway() -> FakeCardGateway:
    return FakeCardGateway()


@pytest.fixture
def wallet_gateway() -> FakeWalletGateway:
    return FakeWalletGateway()


@pytest.fixture
def make_checkout(card_gateway) -> Callable[..., FakeHostedCheckout]:
    """Factory for the payer's hosted card entry."""

    def _make(**kwargs) -> FakeHostedCheckout:
        return FakeHostedCheckout(card_gateway, **kwargs)

    return _make


@pytest.fixture
def make_approver() -> Callable[..., FakeWalletApprover]:
    return FakeWalletApprover


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def invoicing_service(session, config, deterministic_clock) -> InvoicingService:
    return InvoicingService(session, config, deterministic_clock, actor=TEST_ACTOR)


@pytest.fixture
def public_service(
    session, config, card_gateway, wallet_gateway, deterministic_clock,
) -> PublicPaymentService:
    return PublicPaymentService(
        session,
        config,
        card_gateway=card_gateway,
        wallet_gateway=wallet_gateway,
        clock=deterministic_clock,
    )


@pytest.fixture
def invoice_api(invoicing_service, card_gateway) -> FlakyApi:
    return FlakyApi(LocalInvoiceApi(invoicing_service, card_gateway))


@pytest.fixture
def public_api(public_service) -> FlakyApi:
    return FlakyApi(LocalPublicPaymentApi(public_service))


# =============================================================================
# Seed data
# =============================================================================


@pytest.fixture
def client(session) -> ClientModel:
    """In-state client (taxed at the default rate)."""
    model = ClientModel(name="Avery Quinn", email="avery@example.com", billing_state="CA")
    session.add(model)
    session.commit()
    return model


@pytest.fixture
def out_of_state_client(session) -> ClientModel:
    model = ClientModel(name="Jordan Reyes", email="jordan@example.com", billing_state="NV")
    session.add(model)
    session.commit()
    return model


@pytest.fixture
def print_product(session) -> ProductModel:
    model = ProductModel(name="Framed Print 16x20", retail_price=Decimal("100.00"), product_type="print")
    session.add(model)
    session.commit()
    return model


@pytest.fixture
def standard_draft(client, print_product) -> InvoiceDraft:
    """
    Taxable product 100 x 2 plus a non-taxable custom 20, 10% discount.

    Subtotal 220, tax before discount 20, discount 22, subtotal after 198,
    tax 18, total 216.
    """
    return InvoiceDraft(
        items=(
            ProductLine(product_id=str(print_product.id), quantity=2, is_taxable=True),
            CustomLine(name="Retouching", price=Decimal("20")),
        ),
        discount=DiscountRule.percent(10),
        client_id=client.id,
    )


@pytest.fixture
def standard_invoice(invoicing_service, standard_draft) -> Invoice:
    """Saved invoice totalling 216.00."""
    return invoicing_service.save_invoice(standard_draft)
