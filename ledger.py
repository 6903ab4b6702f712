"""
ledger.py
A member's payment history: latest payment, totals, appending.
Ledgers are tuples; nothing here mutates its input.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from typing import Iterable

from models import Payment


def next_payment_id(payments: Iterable[Payment]) -> int:
    return max((p.id for p in payments), default=0) + 1


def most_recent(payments: Iterable[Payment]) -> Payment | None:
    """
    Payment with the latest date, or None for an empty ledger.
    Same-day payments: the highest id wins. Payments without a valid date are ignored.
    """
    dated = [p for p in payments if p.date is not None]
    if not dated:
        return None
    return max(dated, key=lambda p: (p.date, p.id))


def append(payments: Iterable[Payment], new_payment: Payment) -> tuple[Payment, ...]:
    """Return a new ledger with `new_payment` added under the next free id."""
    current = tuple(payments)
    return current + (replace(new_payment, id=next_payment_id(current)),)


def total_paid(payments: Iterable[Payment]) -> float:
    return sum((p.amount for p in payments), 0.0)


def sorted_history(payments: Iterable[Payment]) -> list[Payment]:
    # newest first; undated entries at the bottom
    return sorted(
        payments,
        key=lambda p: (p.date is not None, p.date or date.min, p.id),
        reverse=True,
    )
