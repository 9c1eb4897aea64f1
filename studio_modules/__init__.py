"""
Studio Modules.

Orchestration layers over the studio kernel and engines. Each module
contains domain models (the nouns), configuration schemas, ORM models and a
service that owns the transaction boundary.

Modules:
- Invoicing: invoices, payments, client credits
"""

from studio_modules import invoicing

__all__ = [
    "invoicing",
]
