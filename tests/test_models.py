"""Tests for the ledger record building blocks."""

from datetime import date
from decimal import Decimal

import pytest

from chatgames.models import DailyUsage, DonorAccount, FundingSource


class TestDonorAccount:
    def test_round_trip(self):
        account = DonorAccount(total=10, allocated=7)
        assert DonorAccount.from_dict(account.to_dict()) == account

    def test_allocated_required(self):
        assert DonorAccount.from_dict({"total": 5}) is None

    def test_missing_total_defaults_to_zero(self):
        assert DonorAccount.from_dict({"allocated": "12"}) == DonorAccount(total=0, allocated=12)

    @pytest.mark.parametrize("bad", [True, -1, Decimal("1.5"), 2.5, "many", None])
    def test_rejects_bad_counts(self, bad):
        """Booleans, negatives and fractions are not valid balances."""
        assert DonorAccount.from_dict({"allocated": bad}) is None

    def test_accepts_integral_float(self):
        assert DonorAccount.from_dict({"allocated": 3.0}).allocated == 3


class TestDailyUsage:
    def test_to_dict(self):
        assert DailyUsage(day=date(2024, 1, 31), used=9).to_dict() == {
            "date": "2024-01-31",
            "used": 9,
        }

    def test_bad_date(self):
        assert DailyUsage.from_dict({"date": "31/01/2024", "used": 1}) is None

    def test_not_a_mapping(self):
        assert DailyUsage.from_dict(["2024-01-31", 1]) is None


def test_funding_source_values():
    assert [source.value for source in FundingSource] == ["admin", "public", "donor"]
