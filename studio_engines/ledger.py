"""
Payment Ledger - ordered record of payments against one invoice.

Pure value object, no I/O. Order is whatever the source of truth returned
(creation order); the ledger never sorts. Entries are never edited: a
correction is a removal followed by a new payment.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Generic, Iterable, Iterator, Protocol, TypeVar

from studio_kernel.domain.money import ZERO, parse_amount


class LedgerEntry(Protocol):
    """Anything with an id and an amount can sit in a ledger."""

    @property
    def id(self) -> object: ...

    @property
    def amount(self) -> Decimal: ...


EntryT = TypeVar("EntryT", bound=LedgerEntry)


@dataclass(frozen=True)
class PaymentLedger(Generic[EntryT]):
    """Immutable, ordered payments for one invoice."""

    entries: tuple[EntryT, ...] = ()

    @classmethod
    def of(cls, payments: Iterable[EntryT]) -> PaymentLedger[EntryT]:
        return cls(tuple(payments))

    def total_paid(self) -> Decimal:
        """Sum of payment amounts (unrounded)."""
        total = ZERO
        for entry in self.entries:
            total += parse_amount(entry.amount)
        return total

    def find(self, payment_id: object) -> EntryT | None:
        key = str(payment_id)
        for entry in self.entries:
            if str(entry.id) == key:
                return entry
        return None

    def without(self, payment_id: object) -> PaymentLedger[EntryT]:
        """Ledger with one payment removed, order otherwise preserved."""
        key = str(payment_id)
        return PaymentLedger(tuple(e for e in self.entries if str(e.id) != key))

    def appended(self, entry: EntryT) -> PaymentLedger[EntryT]:
        return PaymentLedger(self.entries + (entry,))

    def __iter__(self) -> Iterator[EntryT]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)
