"""
Invoicing Module.

Handles invoices, payments and client credits:
- Invoice persistence with a tax rate frozen at save time
- Payment recording and removal with status recalculation
- Client credits (money held on account)
- Display summaries shared by list rows and detail views

All totals and statuses are derived by ``studio_engines``.
"""

from studio_modules.invoicing.config import InvoicingConfig
from studio_modules.invoicing.models import (
    Client,
    ClientCredit,
    Invoice,
    InvoiceDraft,
    Payment,
    PaymentMethod,
    Product,
    invoice_label,
)
from studio_modules.invoicing.service import InvoicingService
from studio_modules.invoicing.summary import InvoiceSummary, summarize_invoice

__all__ = [
    "Client",
    "ClientCredit",
    "Invoice",
    "InvoiceDraft",
    "InvoiceSummary",
    "InvoicingConfig",
    "InvoicingService",
    "Payment",
    "PaymentMethod",
    "Product",
    "invoice_label",
    "summarize_invoice",
]
