"""
Invoicing Configuration Schema.

Defines the structure and defaults for tax, online-payment gateway and
branding settings. Actual values are loaded from the settings store or a
YAML file at runtime (see ``studio_config.load_config``).
"""

from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Any, Self

from studio_kernel.domain.money import parse_amount
from studio_kernel.logging_config import get_logger

logger = get_logger("modules.invoicing.config")

_TRUE_STRINGS = {"true", "1", "yes", "on"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


@dataclass
class InvoicingConfig:
    """
    Configuration schema for the invoicing engine.

    Override at instantiation with studio-specific values:

        config = InvoicingConfig(
            default_tax_rate=Decimal("8.25"),
            tax_home_state="CA",
            **load_from_settings(),
        )
    """

    # Tax
    default_tax_rate: Decimal = Decimal("0")
    tax_home_state: str | None = None

    # Terms
    payment_terms_days: int = 30

    # Online payment bounds
    min_online_payment: Decimal = Decimal("0.50")
    amount_tolerance: Decimal = Decimal("0.01")

    # Card gateway
    stripe_enabled: bool = False
    stripe_test_mode: bool = False
    stripe_publishable_key: str | None = None
    stripe_test_publishable_key: str | None = None

    # Wallet gateway
    paypal_enabled: bool = False
    paypal_test_mode: bool = False
    paypal_client_id: str | None = None
    paypal_test_client_id: str | None = None

    # Branding (public payment page, receipts)
    company_name: str = ""
    app_name: str = "Studio"
    accent_color: str = "#8b5cf6"

    def __post_init__(self):
        self.default_tax_rate = parse_amount(self.default_tax_rate)
        self.min_online_payment = parse_amount(self.min_online_payment)
        self.amount_tolerance = parse_amount(self.amount_tolerance)
        for flag in ("stripe_enabled", "stripe_test_mode", "paypal_enabled", "paypal_test_mode"):
            setattr(self, flag, _as_bool(getattr(self, flag)))
        if self.tax_home_state is not None:
            self.tax_home_state = self.tax_home_state.strip().upper() or None

        if self.default_tax_rate < 0:
            raise ValueError("default_tax_rate cannot be negative")
        if self.default_tax_rate > Decimal("100"):
            raise ValueError("default_tax_rate cannot exceed 100%")
        if self.payment_terms_days <= 0:
            raise ValueError("payment_terms_days must be positive")
        if self.min_online_payment <= 0:
            raise ValueError("min_online_payment must be positive")
        if self.amount_tolerance < 0:
            raise ValueError("amount_tolerance cannot be negative")

        logger.info(
            "invoicing_config_initialized",
            extra={
                "default_tax_rate": str(self.default_tax_rate),
                "tax_home_state": self.tax_home_state,
                "payment_terms_days": self.payment_terms_days,
                "card_gateway_available": self.card_gateway_available,
                "wallet_gateway_available": self.wallet_gateway_available,
            },
        )

    # ------------------------------------------------------------------
    # Gateway availability
    # ------------------------------------------------------------------

    @property
    def active_stripe_publishable_key(self) -> str | None:
        key = self.stripe_test_publishable_key if self.stripe_test_mode else self.stripe_publishable_key
        return key or None

    @property
    def active_paypal_client_id(self) -> str | None:
        client_id = self.paypal_test_client_id if self.paypal_test_mode else self.paypal_client_id
        return client_id or None

    @property
    def card_gateway_available(self) -> bool:
        return self.stripe_enabled and self.active_stripe_publishable_key is not None

    @property
    def wallet_gateway_available(self) -> bool:
        return self.paypal_enabled and self.active_paypal_client_id is not None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with defaults (no tax, no gateways)."""
        logger.info("invoicing_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """
        Create config from a dictionary.

        Accepts field names and the settings-store key names
        (``tax_rate`` for ``default_tax_rate``). Unknown keys are ignored.
        """
        logger.info(
            "invoicing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        if "tax_rate" in data and "default_tax_rate" not in data:
            data["default_tax_rate"] = data.pop("tax_rate")
        known = {f.name for f in fields(cls)}
        ignored = sorted(k for k in data if k not in known)
        if ignored:
            logger.debug("invoicing_config_keys_ignored", extra={"keys": ignored})
        kwargs = {k: v for k, v in data.items() if k in known and v is not None}
        if "payment_terms_days" in kwargs:
            kwargs["payment_terms_days"] = int(kwargs["payment_terms_days"])
        return cls(**kwargs)
