"""
status.py
Membership status from the manual override flag and the latest payment date.

Order matters, first match wins:
  isActive is False          -> INACTIVE (manual)
  no payments                -> UNPAID
  last payment <= 30 days    -> ACTIVE
  last payment <= 45 days    -> WARNING
  otherwise                  -> INACTIVE (elapsed)

`now` is always passed in; nothing here reads the clock.
"""

from __future__ import annotations

from datetime import date, datetime

import ledger
from models import Member, Status

ACTIVE_DAYS = 30
WARNING_DAYS = 45

REASON_MANUAL = "manual"
REASON_ELAPSED = "elapsed"


def _as_date(now: date | datetime) -> date:
    return now.date() if isinstance(now, datetime) else now


def days_since(day: date, now: date | datetime) -> int:
    """Whole days from `day` to `now` (negative for future dates)."""
    return (_as_date(now) - day).days


def _status_and_reason(member: Member, now: date | datetime) -> tuple[Status, str | None]:
    if member.is_active is False:
        return Status.INACTIVE, REASON_MANUAL
    if not member.payments:
        return Status.UNPAID, None

    last = ledger.most_recent(member.payments)
    if last is None:
        # payments exist but none has a readable date: treat as long expired
        return Status.INACTIVE, REASON_ELAPSED

    elapsed = days_since(last.date, now)
    if elapsed <= ACTIVE_DAYS:
        return Status.ACTIVE, None
    if elapsed <= WARNING_DAYS:
        return Status.WARNING, None
    return Status.INACTIVE, REASON_ELAPSED


def derive_status(member: Member, now: date | datetime) -> Status:
    return _status_and_reason(member, now)[0]


def status_reason(member: Member, now: date | datetime) -> str | None:
    """'manual' or 'elapsed' for INACTIVE members, None otherwise."""
    return _status_and_reason(member, now)[1]
