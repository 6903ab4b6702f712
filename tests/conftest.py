"""
Pytest configuration and shared fixtures.
This file is automatically loaded by pytest.
"""

from datetime import date, timedelta

import pytest

import db
from models import Level, Member, Payment

NOW = date(2025, 6, 15)


@pytest.fixture
def now():
    """Fixed evaluation date so status boundaries are deterministic."""
    return NOW


@pytest.fixture
def store(tmp_path, monkeypatch):
    """
    Point the JSON store at an empty temporary directory.
    """
    monkeypatch.setattr(db, "DATA_DIR", tmp_path)
    return tmp_path


def paid_days_ago(*days, amount=1000.0):
    """Ledger with one payment per entry in `days`, ids in order."""
    return tuple(
        Payment(id=i, date=NOW - timedelta(days=d), amount=amount, period="2025-05")
        for i, d in enumerate(days, start=1)
    )


def build_member(member_id=1, payments=(), is_active=True, level=Level.BEGINNER,
                 registration_date=date(2025, 1, 1), first_name="Ali", last_name="Veli",
                 phone="05001112233"):
    return Member(
        id=member_id,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        level=level,
        registration_date=registration_date,
        is_active=is_active,
        payments=tuple(payments),
    )


@pytest.fixture
def make_member():
    return build_member
