"""
Studio Kernel - shared foundation for the invoicing engine.

Provides:
- Structured JSON logging
- Typed exception hierarchy
- Injectable clock
- Decimal money parsing and rounding
- SQLAlchemy declarative base and engine setup
"""

__version__ = "0.1.0"
