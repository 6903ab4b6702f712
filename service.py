"""
service.py
Member roster API used by the admin pages: list/get/create/update/delete members
and append payments. Writes take the caller's role; permission checks run
before the store is touched.

Every write reloads the whole `members` collection, changes it in memory and
saves it back with the version it loaded, so a concurrent writer surfaces as
StoreConflict instead of a silently lost update.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta

import config
import db
import ledger
import roster
import status
import utils
from errors import Forbidden, NotFound, StoreUnavailable, Unauthorized, ValidationError
from models import Level, Member, Payment, Role, Status

logger = logging.getLogger(__name__)

COLLECTION = "members"

# Fields a caller may set on create/update, in their stored spelling
MEMBER_FIELDS = ("firstName", "lastName", "phone", "level", "registrationDate", "isActive", "notes")

derive_status = status.derive_status


@dataclass(frozen=True)
class MemberFilter:
    search_term: str = ""
    level: Level | str = roster.ALL
    status: Status | str = roster.ALL


def _check_role(role: Role | str | None) -> Role:
    if not role:
        raise Unauthorized()
    try:
        return Role(role)
    except ValueError as exc:
        raise Forbidden() from exc


def _load() -> tuple[db.Document, list[Member]]:
    doc = db.load_document(COLLECTION)
    try:
        members = [Member.from_record(r) for r in doc.records]
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.exception("Unreadable record in %s collection", COLLECTION)
        raise StoreUnavailable("Member data is corrupted.") from exc
    return doc, members


def _save(doc: db.Document, members: list[Member]) -> None:
    last_id = max([doc.last_id] + [m.id for m in members])
    db.save_document(
        replace(doc, records=[m.to_record() for m in members], last_id=last_id),
        expected_version=doc.version,
    )


def _index_of(members: list[Member], member_id: int) -> int:
    for i, m in enumerate(members):
        if m.id == member_id:
            return i
    raise NotFound(f"Member {member_id} not found.")


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return utils.parse_iso(str(value).strip())


def _validate_member(values: dict) -> None:
    errors = utils.validate_member_inputs(
        values.get("firstName"),
        values.get("lastName"),
        values.get("phone"),
        values.get("level"),
        values.get("registrationDate"),
    )
    if not values.get("registrationDate"):
        errors["registrationDate"] = "Registration date is required."
    if not isinstance(values.get("isActive", True), bool):
        errors["isActive"] = "isActive must be true or false."
    if errors:
        raise ValidationError(errors)


def _build_member(member_id: int, values: dict, payments: tuple[Payment, ...]) -> Member:
    return Member(
        id=member_id,
        first_name=str(values["firstName"]).strip(),
        last_name=str(values["lastName"]).strip(),
        phone=str(values["phone"]).strip(),
        level=Level.parse(values.get("level") or Level.BEGINNER),
        registration_date=_as_date(values["registrationDate"]),
        is_active=values.get("isActive", True),
        notes=str(values.get("notes") or ""),
        payments=payments,
    )


def list_members(filters: MemberFilter | None = None, now: date | datetime | None = None) -> list[Member]:
    _, members = _load()
    if filters is None:
        return members
    return roster.filter_members(
        members,
        search_term=filters.search_term,
        level=filters.level,
        status=filters.status,
        now=now or date.today(),
    )


def get_member(member_id: int) -> Member:
    _, members = _load()
    return members[_index_of(members, member_id)]


def create_member(data: dict, role: Role | str | None, today: date | None = None) -> Member:
    caller = _check_role(role)
    if caller is Role.MEMBER_MANAGER and data.get("isActive", True) is not True:
        raise Forbidden("Only an admin can create an inactive member.")

    values = {k: data[k] for k in MEMBER_FIELDS if k in data}
    if not values.get("registrationDate"):
        values["registrationDate"] = today or date.today()
    _validate_member(values)

    doc, members = _load()
    new_id = max([doc.last_id] + [m.id for m in members]) + 1
    member = _build_member(new_id, values, payments=())
    _save(doc, members + [member])
    logger.info("Created member %s (%s) as %s", member.id, member.full_name, caller.value)
    return member


def update_member(member_id: int, data: dict, role: Role | str | None) -> Member:
    caller = _check_role(role)
    if "payments" in data:
        raise ValidationError({"payments": "Payments can only be added, not edited."})
    if caller is Role.MEMBER_MANAGER and "isActive" in data:
        raise Forbidden("Only an admin can activate or deactivate a member.")

    doc, members = _load()
    idx = _index_of(members, member_id)
    existing = members[idx]

    values = {k: v for k, v in existing.to_record().items() if k in MEMBER_FIELDS}
    values.update({k: data[k] for k in MEMBER_FIELDS if k in data})
    _validate_member(values)

    updated = _build_member(existing.id, values, payments=existing.payments)
    members[idx] = updated
    _save(doc, members)
    logger.info("Updated member %s as %s", member_id, caller.value)
    return updated


def delete_member(member_id: int, role: Role | str | None) -> None:
    caller = _check_role(role)
    if caller is not Role.ADMIN:
        raise Forbidden("Only an admin can delete members.")

    doc, members = _load()
    idx = _index_of(members, member_id)
    removed = members.pop(idx)
    _save(doc, members)
    logger.info("Deleted member %s (%s)", removed.id, removed.full_name)


def add_payment(member_id: int, payment: dict, role: Role | str | None) -> Member:
    caller = _check_role(role)
    errors = utils.validate_payment_inputs(payment.get("date"), payment.get("amount"), payment.get("period"))
    if errors:
        raise ValidationError(errors)

    doc, members = _load()
    idx = _index_of(members, member_id)
    member = members[idx]

    new_payment = Payment(
        id=0,
        date=_as_date(payment["date"]),
        amount=float(payment["amount"]),
        period=str(payment["period"]).strip(),
        note=str(payment.get("note") or "").strip(),
    )
    updated = replace(member, payments=ledger.append(member.payments, new_payment))
    members[idx] = updated
    _save(doc, members)
    logger.info(
        "Recorded payment %s for member %s (%.2f, %s) as %s",
        updated.payments[-1].id, member_id, new_payment.amount, new_payment.period, caller.value,
    )
    return updated


def aggregate(members: list[Member], now: date | datetime, n: int = config.RECENT_COUNT) -> roster.RosterSummary:
    return roster.aggregate(members, now, n)


def insert_sample_data(role: Role | str | None, today: date | None = None) -> list[Member]:
    """
    Insert 4 members covering each status (adds new members each run).
    """
    if _check_role(role) is not Role.ADMIN:
        raise Forbidden("Only an admin can insert sample data.")
    today = today or date.today()

    # (first, last, phone, level, days since last payment or None, manually active)
    samples = [
        ("Ahmet", "Yilmaz", "05000000001", Level.BEGINNER, 5, True),
        ("Elif", "Demir", "05000000002", Level.INTERMEDIATE, 38, True),
        ("Can", "Kaya", "05000000003", Level.ADVANCED, 60, True),
        ("Zeynep", "Celik", "05000000004", Level.BEGINNER, None, True),
    ]
    created = []
    for first, last, phone, level, days_ago, active in samples:
        member = create_member(
            {
                "firstName": first,
                "lastName": last,
                "phone": phone,
                "level": level.value,
                "registrationDate": today - timedelta(days=90),
                "isActive": active,
                "notes": "Sample member",
            },
            role,
        )
        if days_ago is not None:
            paid_on = today - timedelta(days=days_ago)
            member = add_payment(
                member.id,
                {"date": paid_on, "amount": 1000, "period": utils.current_period(paid_on), "note": "Sample payment"},
                role,
            )
        created.append(member)
    return created
