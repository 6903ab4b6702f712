"""
Unit tests for validation helpers and CSV/report exports.
"""

import io
from datetime import date

import pandas as pd
import pytest

import utils
from conftest import build_member, paid_days_ago


@pytest.mark.unit
class TestValidation:

    def test_member_ok(self):
        assert utils.validate_member_inputs("Ali", "Veli", "0500", "Beginner", "2025-01-01") == {}

    def test_member_errors_by_field(self):
        errors = utils.validate_member_inputs("", None, "  ", "Pro", "2025/01/01")

        assert set(errors) == {"firstName", "lastName", "phone", "level", "registrationDate"}

    def test_payment_ok(self):
        assert utils.validate_payment_inputs("2025-06-01", "1000", "2025-06") == {}

    def test_payment_errors(self):
        errors = utils.validate_payment_inputs(None, -5, "June")

        assert set(errors) == {"date", "amount", "period"}

    def test_current_period(self):
        assert utils.current_period(date(2025, 3, 9)) == "2025-03"


@pytest.mark.unit
class TestExports:

    def test_members_frame_columns_and_status(self, now):
        members = [
            build_member(1, payments=paid_days_ago(2, 20)),
            build_member(2, is_active=False),
        ]

        df = utils.members_frame(members, now)

        assert list(df.columns) == utils.MEMBER_COLUMNS
        assert df["status"].tolist() == ["active", "inactive (manual)"]
        assert df["payment_count"].tolist() == [2, 0]
        assert df["total_paid"].tolist() == [2000.0, 0.0]

    def test_empty_members_frame(self, now):
        df = utils.members_frame([], now)

        assert df.empty
        assert list(df.columns) == utils.MEMBER_COLUMNS

    def test_payments_csv(self):
        members = [build_member(1, payments=paid_days_ago(1, 3))]

        df = pd.read_csv(io.BytesIO(utils.payments_to_csv_bytes(members)))

        assert len(df) == 2
        assert df["payment_id"].tolist() == [1, 2]

    def test_revenue_by_period(self, now):
        members = [
            build_member(1, payments=paid_days_ago(1, 2)),
            build_member(2, payments=paid_days_ago(3, amount=500.0)),
        ]

        summary = utils.revenue_summary_by_period(members)

        assert summary.to_dict("records") == [{"period": "2025-05", "revenue": 2500.0, "payments": 3}]

    def test_revenue_empty(self):
        summary = utils.revenue_summary_by_period([])

        assert summary.empty
        assert list(summary.columns) == ["period", "revenue", "payments"]
