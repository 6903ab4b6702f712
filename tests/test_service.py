"""
Integration tests for the member service over a temporary JSON store.
"""

import json
from datetime import date, timedelta

import pytest

import db
import service
from errors import Forbidden, NotFound, StoreConflict, StoreUnavailable, Unauthorized, ValidationError
from models import Level, Role, Status
from status import status_reason

ADMIN = Role.ADMIN
MANAGER = Role.MEMBER_MANAGER


def _member_data(**overrides):
    data = {"firstName": "Ali", "lastName": "Veli", "phone": "05001112233", "level": "Beginner"}
    data.update(overrides)
    return data


def _payment(day, amount=1000, period="2025-06", note=""):
    return {"date": day.isoformat(), "amount": amount, "period": period, "note": note}


@pytest.mark.integration
class TestCreateMember:

    def test_assigns_incrementing_ids_and_defaults(self, store, now):
        first = service.create_member(_member_data(), ADMIN, today=now)
        second = service.create_member(_member_data(firstName="Ayse"), ADMIN, today=now)

        assert (first.id, second.id) == (1, 2)
        assert first.is_active is True
        assert first.payments == ()
        assert first.level is Level.BEGINNER
        assert first.registration_date == now

    def test_persists_stored_shape(self, store, now):
        service.create_member(_member_data(notes="Kids class"), ADMIN, today=now)

        record = db.load("members")[0]
        assert record["firstName"] == "Ali"
        assert record["registrationDate"] == now.isoformat()
        assert record["isActive"] is True
        assert record["notes"] == "Kids class"
        assert record["payments"] == []

    def test_required_fields(self, store):
        with pytest.raises(ValidationError) as exc_info:
            service.create_member({"firstName": " ", "phone": ""}, ADMIN)

        assert set(exc_info.value.errors) == {"firstName", "lastName", "phone"}
        assert db.load("members") == []

    def test_rejects_bad_registration_date_and_level(self, store):
        with pytest.raises(ValidationError) as exc_info:
            service.create_member(_member_data(registrationDate="15.01.2025", level="Expert"), ADMIN)

        assert set(exc_info.value.errors) == {"registrationDate", "level"}

    def test_ids_are_not_reused_after_delete(self, store, now):
        service.create_member(_member_data(), ADMIN, today=now)
        second = service.create_member(_member_data(), ADMIN, today=now)
        service.delete_member(second.id, ADMIN)

        third = service.create_member(_member_data(), ADMIN, today=now)

        assert third.id == 3

    def test_missing_role_is_unauthorized(self, store):
        with pytest.raises(Unauthorized):
            service.create_member(_member_data(), None)

    def test_unknown_role_is_forbidden(self, store):
        with pytest.raises(Forbidden):
            service.create_member(_member_data(), "visitor")

    def test_manager_cannot_create_inactive_member(self, store):
        with pytest.raises(Forbidden):
            service.create_member(_member_data(isActive=False), MANAGER)

    def test_manager_can_create_member(self, store):
        member = service.create_member(_member_data(), MANAGER)

        assert member.id == 1


@pytest.mark.integration
class TestReadMembers:

    def test_get_missing_member(self, store):
        with pytest.raises(NotFound):
            service.get_member(42)

    def test_list_with_filters(self, store, now):
        service.create_member(_member_data(firstName="Ayse", level="Advanced"), ADMIN, today=now)
        service.create_member(_member_data(firstName="Burak"), ADMIN, today=now)

        everyone = service.list_members()
        advanced = service.list_members(service.MemberFilter(level="Advanced"), now)
        unpaid_burak = service.list_members(service.MemberFilter(search_term="bur", status="unpaid"), now)

        assert [m.first_name for m in everyone] == ["Ayse", "Burak"]
        assert [m.first_name for m in advanced] == ["Ayse"]
        assert [m.first_name for m in unpaid_burak] == ["Burak"]

    def test_unreadable_store(self, store):
        (store / "members-data.json").write_text("oops", encoding="utf-8")

        with pytest.raises(StoreUnavailable):
            service.list_members()

    def test_record_without_id_is_unavailable(self, store):
        """A hand-edited record that cannot become a Member fails as a store error."""
        (store / "members-data.json").write_text(json.dumps({"members": [{"firstName": "x"}]}), encoding="utf-8")

        with pytest.raises(StoreUnavailable):
            service.list_members()
        with pytest.raises(StoreUnavailable):
            service.get_member(1)

    def test_record_with_non_integer_id_is_unavailable(self, store):
        (store / "members-data.json").write_text(json.dumps({"members": [{"id": "abc"}]}), encoding="utf-8")

        with pytest.raises(StoreUnavailable):
            service.list_members()

    def test_unknown_filter_value(self, store, now):
        service.create_member(_member_data(), ADMIN, today=now)

        with pytest.raises(ValidationError) as exc_info:
            service.list_members(service.MemberFilter(status="expired"), now)

        assert "status" in exc_info.value.errors


@pytest.mark.integration
class TestUpdateMember:

    def test_updates_given_fields_only(self, store, now):
        member = service.create_member(_member_data(notes="old"), ADMIN, today=now)

        updated = service.update_member(member.id, {"phone": "05550000000", "level": "Orta"}, ADMIN)

        assert updated.phone == "05550000000"
        assert updated.level is Level.INTERMEDIATE
        assert updated.notes == "old"
        assert service.get_member(member.id) == updated

    def test_missing_member(self, store):
        with pytest.raises(NotFound):
            service.update_member(9, {"phone": "1"}, ADMIN)

    def test_cannot_blank_required_field(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        with pytest.raises(ValidationError):
            service.update_member(member.id, {"lastName": ""}, ADMIN)
        assert service.get_member(member.id).last_name == "Veli"

    def test_payments_cannot_be_edited(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        with pytest.raises(ValidationError):
            service.update_member(member.id, {"payments": []}, ADMIN)

    def test_manager_cannot_toggle_active_flag(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        with pytest.raises(Forbidden):
            service.update_member(member.id, {"isActive": False}, MANAGER)
        assert service.get_member(member.id).is_active is True

    def test_manager_can_edit_profile(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        updated = service.update_member(member.id, {"notes": "Moved to evening class"}, MANAGER)

        assert updated.notes == "Moved to evening class"

    def test_concurrent_write_is_detected(self, store, now, monkeypatch):
        member = service.create_member(_member_data(), ADMIN, today=now)
        real_load = service._load

        def load_then_someone_else_writes():
            doc, members = real_load()
            # another admin saves between our read and our write
            db.save_document(doc)
            return doc, members

        monkeypatch.setattr(service, "_load", load_then_someone_else_writes)

        with pytest.raises(StoreConflict):
            service.update_member(member.id, {"notes": "lost?"}, ADMIN)


@pytest.mark.integration
class TestDeleteMember:

    def test_delete(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        service.delete_member(member.id, ADMIN)

        assert service.list_members() == []

    def test_missing_member(self, store):
        with pytest.raises(NotFound):
            service.delete_member(1, ADMIN)

    def test_manager_cannot_delete(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        with pytest.raises(Forbidden):
            service.delete_member(member.id, MANAGER)
        assert len(service.list_members()) == 1


@pytest.mark.integration
class TestAddPayment:

    def test_appends_with_ids(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        service.add_payment(member.id, _payment(now - timedelta(days=40)), ADMIN)
        updated = service.add_payment(member.id, _payment(now, amount="1250.50", note=" cash "), MANAGER)

        assert [p.id for p in updated.payments] == [1, 2]
        assert updated.payments[-1].amount == 1250.5
        assert updated.payments[-1].note == "cash"
        assert service.get_member(member.id).payments == updated.payments

    def test_duplicate_periods_allowed(self, store, now):
        member = service.create_member(_member_data(), ADMIN, today=now)

        service.add_payment(member.id, _payment(now, period="2025-06"), ADMIN)
        updated = service.add_payment(member.id, _payment(now, period="2025-06"), ADMIN)

        assert len(updated.payments) == 2

    @pytest.mark.parametrize(
        "payment, field",
        [
            ({"date": "2025-06-01", "amount": 0, "period": "2025-06"}, "amount"),
            ({"date": "2025-06-01", "amount": "abc", "period": "2025-06"}, "amount"),
            ({"date": "2025-06-01", "amount": "nan", "period": "2025-06"}, "amount"),
            ({"date": "2025-06-01", "amount": "inf", "period": "2025-06"}, "amount"),
            ({"date": "2025-06-01", "amount": float("-inf"), "period": "2025-06"}, "amount"),
            ({"date": "yesterday", "amount": 100, "period": "2025-06"}, "date"),
            ({"date": "2025-06-01", "amount": 100, "period": "2025-13"}, "period"),
            ({"date": "2025-06-01", "amount": 100}, "period"),
        ],
    )
    def test_validation(self, store, now, payment, field):
        member = service.create_member(_member_data(), ADMIN, today=now)

        with pytest.raises(ValidationError) as exc_info:
            service.add_payment(member.id, payment, ADMIN)

        assert field in exc_info.value.errors
        assert service.get_member(member.id).payments == ()

    def test_missing_member(self, store, now):
        with pytest.raises(NotFound):
            service.add_payment(5, _payment(now), ADMIN)

    def test_requires_role(self, store, now):
        with pytest.raises(Unauthorized):
            service.add_payment(1, _payment(now), "")


@pytest.mark.integration
class TestMembershipLifecycle:

    def test_unpaid_active_warning_inactive_manual(self, store, now):
        member = service.create_member(_member_data(isActive=True), ADMIN, today=now)
        assert service.derive_status(member, now) is Status.UNPAID

        member = service.add_payment(member.id, _payment(now), ADMIN)
        assert service.derive_status(member, now) is Status.ACTIVE

        assert service.derive_status(member, now + timedelta(days=35)) is Status.WARNING

        later = now + timedelta(days=50)
        assert service.derive_status(member, later) is Status.INACTIVE
        assert status_reason(member, later) == "elapsed"

        member = service.update_member(member.id, {"isActive": False}, ADMIN)
        assert service.derive_status(member, later) is Status.INACTIVE
        assert status_reason(member, later) == "manual"
        assert service.derive_status(member, now) is Status.INACTIVE

    def test_aggregate_over_store(self, store, now):
        a = service.create_member(_member_data(firstName="A"), ADMIN, today=now - timedelta(days=3))
        b = service.create_member(_member_data(firstName="B"), ADMIN, today=now - timedelta(days=2))
        c = service.create_member(_member_data(firstName="C", isActive=False), ADMIN, today=now - timedelta(days=1))
        service.create_member(_member_data(firstName="D"), ADMIN, today=now)
        service.add_payment(a.id, _payment(now - timedelta(days=5)), ADMIN)
        service.add_payment(b.id, _payment(now - timedelta(days=40)), ADMIN)
        service.add_payment(c.id, _payment(now), ADMIN)

        summary = service.aggregate(service.list_members(), now, n=2)

        assert summary.counts_by_status == {
            Status.ACTIVE: 1, Status.WARNING: 1, Status.INACTIVE: 1, Status.UNPAID: 1,
        }
        assert [m.first_name for m in summary.recent] == ["D", "C"]
        assert summary.total_paid == 3000


@pytest.mark.integration
class TestSampleData:

    def test_one_member_per_status(self, store):
        today = date.today()

        created = service.insert_sample_data(ADMIN, today=today)

        statuses = sorted(service.derive_status(m, today).value for m in created)
        assert statuses == ["active", "inactive", "unpaid", "warning"]

    def test_admin_only(self, store):
        with pytest.raises(Forbidden):
            service.insert_sample_data(MANAGER)
