"""
utils.py
Validation, dates, exports, revenue summary.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Iterable

import pandas as pd

import ledger
from models import Level, Member
from status import REASON_MANUAL, derive_status, status_reason

PERIOD_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

MEMBER_COLUMNS = [
    "id", "first_name", "last_name", "phone", "level", "registration_date",
    "is_active", "status", "last_payment", "payment_count", "total_paid", "notes",
]
PAYMENT_COLUMNS = ["member_id", "member", "payment_id", "date", "amount", "period", "note"]


def parse_iso(d: str) -> date:
    return date.fromisoformat(d)


def current_period(today: date | None = None) -> str:
    today = today or date.today()
    return f"{today.year:04d}-{today.month:02d}"


def _is_iso_date(value) -> bool:
    if isinstance(value, date):
        return True
    try:
        parse_iso(str(value))
    except ValueError:
        return False
    return True


def validate_member_inputs(first_name, last_name, phone, level=None, registration_date=None) -> dict[str, str]:
    errors: dict[str, str] = {}
    if not str(first_name or "").strip():
        errors["firstName"] = "First name is required."
    if not str(last_name or "").strip():
        errors["lastName"] = "Last name is required."
    if not str(phone or "").strip():
        errors["phone"] = "Phone is required."
    if level is not None:
        try:
            Level.parse(level)
        except ValueError:
            errors["level"] = "Level must be Beginner, Intermediate or Advanced."
    if registration_date is not None and not _is_iso_date(registration_date):
        errors["registrationDate"] = "Registration date must be a valid ISO date (YYYY-MM-DD)."
    return errors


def validate_payment_inputs(pay_date, amount, period) -> dict[str, str]:
    errors: dict[str, str] = {}
    if pay_date is None or not _is_iso_date(pay_date):
        errors["date"] = "Payment date must be a valid ISO date (YYYY-MM-DD)."
    try:
        value = float(amount)
        if isinstance(amount, bool) or not math.isfinite(value) or value <= 0:
            errors["amount"] = "Amount must be a finite number > 0."
    except (TypeError, ValueError):
        errors["amount"] = "Amount must be numeric."
    if not PERIOD_RE.match(str(period or "").strip()):
        errors["period"] = "Period must be a year and month (YYYY-MM)."
    return errors


def members_frame(members: Iterable[Member], now: date | datetime) -> pd.DataFrame:
    rows = []
    for m in members:
        last = ledger.most_recent(m.payments)
        status = derive_status(m, now).value
        if status_reason(m, now) == REASON_MANUAL:
            status = "inactive (manual)"
        rows.append({
            "id": m.id,
            "first_name": m.first_name,
            "last_name": m.last_name,
            "phone": m.phone,
            "level": m.level.value,
            "registration_date": m.registration_date.isoformat() if m.registration_date else "",
            "is_active": m.is_active,
            "status": status,
            "last_payment": last.date.isoformat() if last else "",
            "payment_count": len(m.payments),
            "total_paid": ledger.total_paid(m.payments),
            "notes": m.notes,
        })
    return pd.DataFrame(rows, columns=MEMBER_COLUMNS)


def payments_frame(members: Iterable[Member]) -> pd.DataFrame:
    rows = []
    for m in members:
        for p in ledger.sorted_history(m.payments):
            rows.append({
                "member_id": m.id,
                "member": m.full_name,
                "payment_id": p.id,
                "date": p.date.isoformat() if p.date else "",
                "amount": p.amount,
                "period": p.period,
                "note": p.note,
            })
    return pd.DataFrame(rows, columns=PAYMENT_COLUMNS)


def members_to_csv_bytes(members: Iterable[Member], now: date | datetime) -> bytes:
    return members_frame(members, now).to_csv(index=False).encode("utf-8")


def payments_to_csv_bytes(members: Iterable[Member]) -> bytes:
    return payments_frame(members).to_csv(index=False).encode("utf-8")


def revenue_summary_by_period(members: Iterable[Member]) -> pd.DataFrame:
    df = payments_frame(members)
    if df.empty:
        return pd.DataFrame(columns=["period", "revenue", "payments"])
    summary = (
        df.groupby("period", as_index=False)
        .agg(revenue=("amount", "sum"), payments=("payment_id", "count"))
        .sort_values("period", ascending=False)
        .reset_index(drop=True)
    )
    return summary
