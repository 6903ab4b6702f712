"""
models.py
Domain records (levels, statuses, roles, members, payments) and their JSON shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum

logger = logging.getLogger(__name__)


class Level(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"

    @classmethod
    def parse(cls, value) -> "Level":
        if isinstance(value, Level):
            return value
        text = str(value).strip()
        key = LEVEL_ALIASES.get(text.casefold())
        if key is None:
            raise ValueError(f"Unknown level: {value!r}")
        return cls(key)


# Labels used by the academy's original data files
LEVEL_ALIASES = {
    "beginner": "Beginner",
    "intermediate": "Intermediate",
    "advanced": "Advanced",
    "başlangıç": "Beginner",
    "orta": "Intermediate",
    "i̇leri": "Advanced",
    "ileri": "Advanced",
}


class Status(str, Enum):
    ACTIVE = "active"
    WARNING = "warning"
    INACTIVE = "inactive"
    UNPAID = "unpaid"


class Role(str, Enum):
    ADMIN = "admin"
    MEMBER_MANAGER = "member_manager"


def _to_date(value) -> date | None:
    """ISO date (or the date part of an ISO timestamp); None when unparseable."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


_TRUE_WORDS = {"true", "1", "yes"}
_FALSE_WORDS = {"false", "0", "no"}


def _to_flag(value, member_id) -> bool:
    """isActive as stored; hand-edited text like "false" still means inactive."""
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    word = str(value).strip().casefold()
    if word in _TRUE_WORDS:
        flag = True
    elif word in _FALSE_WORDS:
        flag = False
    else:
        logger.warning("Member %s has unreadable isActive %r, treating as inactive", member_id, value)
        return False
    logger.warning("Member %s has non-boolean isActive %r, read as %s", member_id, value, flag)
    return flag



@dataclass(frozen=True)
class Payment:
    id: int
    date: date | None  # None: stored value was not a valid date
    amount: float
    period: str
    note: str = ""

    @classmethod
    def from_record(cls, record: dict) -> "Payment":
        try:
            amount = float(record.get("amount", 0))
        except (TypeError, ValueError):
            logger.warning("Payment %s has a non-numeric amount", record.get("id"))
            amount = 0.0
        return cls(
            id=int(record.get("id", 0)),
            date=_to_date(record.get("date")),
            amount=amount,
            period=str(record.get("period", "")),
            note=str(record.get("note") or ""),
        )

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat() if self.date else None,
            "amount": self.amount,
            "period": self.period,
            "note": self.note,
        }


@dataclass(frozen=True)
class Member:
    id: int
    first_name: str
    last_name: str
    phone: str
    level: Level = Level.BEGINNER
    registration_date: date | None = None  # None: stored value was not a valid date
    is_active: bool = True  # manual override; False forces INACTIVE
    notes: str = ""
    payments: tuple[Payment, ...] = field(default_factory=tuple)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_record(cls, record: dict) -> "Member":
        try:
            level = Level.parse(record.get("level", Level.BEGINNER))
        except ValueError:
            logger.warning("Member %s has unknown level %r", record.get("id"), record.get("level"))
            level = Level.BEGINNER
        return cls(
            id=int(record["id"]),
            first_name=str(record.get("firstName", "")),
            last_name=str(record.get("lastName", "")),
            phone=str(record.get("phone", "")),
            level=level,
            registration_date=_to_date(record.get("registrationDate")),
            is_active=_to_flag(record.get("isActive", True), record.get("id")),
            notes=str(record.get("notes") or ""),
            payments=tuple(Payment.from_record(p) for p in record.get("payments") or []),
        )

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "phone": self.phone,
            "level": self.level.value,
            "registrationDate": self.registration_date.isoformat() if self.registration_date else None,
            "isActive": self.is_active,
            "notes": self.notes,
            "payments": [p.to_record() for p in self.payments],
        }
