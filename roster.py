"""
roster.py
Roster-wide views: status counts, search/filters, latest registrations.
Read-only over the member list it is given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Sequence

import ledger
from errors import ValidationError
from models import Level, Member, Status
from status import derive_status

ALL = "all"


@dataclass(frozen=True)
class RosterSummary:
    counts_by_status: dict[Status, int]
    recent: list[Member] = field(default_factory=list)
    total_members: int = 0
    total_paid: float = 0.0


def count_by_status(members: Iterable[Member], now: date | datetime) -> dict[Status, int]:
    counts = {s: 0 for s in Status}
    for m in members:
        counts[derive_status(m, now)] += 1
    return counts


def _is_all(value) -> bool:
    return value is None or value == "" or value == ALL


def _matches_search(member: Member, term: str) -> bool:
    needle = term.strip().casefold()
    if not needle:
        return True
    return (
        needle in member.first_name.casefold()
        or needle in member.last_name.casefold()
        or needle in member.phone.casefold()
    )


def filter_members(
    members: Iterable[Member],
    search_term: str | None = None,
    level: Level | str | None = ALL,
    status: Status | str | None = ALL,
    now: date | datetime | None = None,
) -> list[Member]:
    """
    Members matching all three filters, in their original order.
    - search_term: substring of first name, last name or phone (case-insensitive)
    - level / status: a value, or "all"
    """
    errors = {}
    wanted_level = wanted_status = None
    if not _is_all(level):
        try:
            wanted_level = Level.parse(level)
        except ValueError:
            errors["level"] = "Level must be Beginner, Intermediate, Advanced or all."
    if not _is_all(status):
        try:
            wanted_status = Status(status)
        except ValueError:
            errors["status"] = "Status must be active, warning, inactive, unpaid or all."
    if errors:
        raise ValidationError(errors)
    if wanted_status is not None and now is None:
        raise ValueError("now is required to filter by status")

    result = []
    for m in members:
        if search_term and not _matches_search(m, search_term):
            continue
        if wanted_level is not None and m.level != wanted_level:
            continue
        if wanted_status is not None and derive_status(m, now) != wanted_status:
            continue
        result.append(m)
    return result


def recent(members: Sequence[Member], n: int) -> list[Member]:
    """Latest `n` registrations; same-day ties keep list order, unknown dates last."""
    if n <= 0:
        return []
    ordered = sorted(
        members,
        key=lambda m: (m.registration_date is not None, m.registration_date or date.min),
        reverse=True,
    )
    return ordered[:n]


def aggregate(members: Sequence[Member], now: date | datetime, n: int = 5) -> RosterSummary:
    return RosterSummary(
        counts_by_status=count_by_status(members, now),
        recent=recent(members, n),
        total_members=len(members),
        total_paid=sum((ledger.total_paid(m.payments) for m in members), 0.0),
    )
