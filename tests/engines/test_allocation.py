"""
Tests for the budget allocation engine.

Covers:
- The reference split (1,000,000 VND at 40/35/25)
- Minor-unit rounding with the remainder in the delivery bucket
- Currencies with 0, 2 and 3 decimal places
- Percentage validation (non-integer, bool, negative, wrong sum)
- Total funds validation (negative, excess precision, non-Decimal)
"""

from decimal import Decimal

import pytest

from relief_engines.allocation import BudgetSplit, allocate, validate_split
from relief_kernel.exceptions import InvalidAllocationError, ValidationError


class TestReferenceSplit:

    def test_one_million_at_40_35_25(self):
        result = allocate(Decimal("1000000"), 40, 35, 25, "VND")

        assert result.ingredient == Decimal("400000")
        assert result.cooking == Decimal("350000")
        assert result.delivery == Decimal("250000")
        assert result.currency == "VND"

    def test_zero_funds_gives_zero_buckets(self):
        result = allocate(Decimal("0"), 40, 35, 25, "VND")

        assert result.ingredient == result.cooking == result.delivery == Decimal("0")

    def test_bucket_lookup_by_name(self):
        result = allocate(Decimal("1000000"), 40, 35, 25, "VND")

        assert result.bucket("ingredient") == Decimal("400000")
        assert result.bucket("delivery") == Decimal("250000")
        with pytest.raises(KeyError):
            result.bucket("transport")

    def test_to_dict_uses_strings(self):
        data = allocate(Decimal("1000000"), 40, 35, 25, "vnd").to_dict()

        assert data == {
            "total_funds": "1000000",
            "ingredient": "400000",
            "cooking": "350000",
            "delivery": "250000",
            "currency": "VND",
        }


class TestRounding:
    """Half-up rounding on the first two buckets, remainder to delivery."""

    def test_vnd_rounds_to_whole_dong(self):
        result = allocate(Decimal("100"), 33, 33, 34, "VND")

        assert result.ingredient == Decimal("33")
        assert result.cooking == Decimal("33")
        assert result.delivery == Decimal("34")

    def test_half_up_on_first_buckets(self):
        # 15 * 50% = 7.5 -> 8 for both; 16 would overshoot 15
        result = allocate(Decimal("15"), 50, 50, 0, "VND")

        assert result.ingredient + result.cooking + result.delivery == Decimal("15")
        assert result.delivery >= 0

    def test_overshoot_is_taken_from_cooking(self):
        result = allocate(Decimal("1"), 50, 50, 0, "VND")

        assert result.ingredient == Decimal("1")
        assert result.cooking == Decimal("0")
        assert result.delivery == Decimal("0")

    def test_usd_two_places(self):
        result = allocate(Decimal("100.00"), 33, 33, 34, "USD")

        assert result.ingredient == Decimal("33.00")
        assert result.cooking == Decimal("33.00")
        assert result.delivery == Decimal("34.00")

    def test_usd_remainder_cents(self):
        result = allocate(Decimal("10.01"), 33, 33, 34, "USD")

        assert result.ingredient == Decimal("3.30")
        assert result.cooking == Decimal("3.30")
        assert result.delivery == Decimal("3.41")
        assert result.ingredient + result.cooking + result.delivery == Decimal("10.01")

    def test_kwd_three_places(self):
        result = allocate(Decimal("1.000"), 33, 33, 34, "KWD")

        assert result.ingredient == Decimal("0.330")
        assert result.delivery == Decimal("0.340")

    @pytest.mark.parametrize("split", [(100, 0, 0), (0, 100, 0), (0, 0, 100)])
    def test_whole_budget_in_one_bucket(self, split):
        result = allocate(Decimal("999999"), *split, "VND")

        amounts = (result.ingredient, result.cooking, result.delivery)
        assert amounts == tuple(Decimal("999999") if p == 100 else Decimal("0") for p in split)


class TestSplitValidation:

    def test_valid_split(self):
        assert validate_split(40, 35, 25) == BudgetSplit(40, 35, 25)

    def test_sum_not_100(self):
        with pytest.raises(InvalidAllocationError) as exc_info:
            validate_split(40, 35, 20)

        assert exc_info.value.code == "INVALID_ALLOCATION"
        assert exc_info.value.percentages == [40, 35, 20]
        assert "95" in exc_info.value.reason

    def test_negative_percentage(self):
        with pytest.raises(InvalidAllocationError):
            validate_split(110, -10, 0)

    @pytest.mark.parametrize("bad", [40.0, "40", Decimal("40"), None, True])
    def test_non_integer_percentage(self, bad):
        with pytest.raises(InvalidAllocationError):
            validate_split(bad, 35, 25)

    def test_invalid_allocation_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            allocate(Decimal("100"), 50, 50, 50, "VND")


class TestFundsValidation:

    def test_negative_total(self):
        with pytest.raises(InvalidAllocationError):
            allocate(Decimal("-1"), 40, 35, 25, "VND")

    def test_excess_precision_for_currency(self):
        with pytest.raises(InvalidAllocationError):
            allocate(Decimal("1000.5"), 40, 35, 25, "VND")

    def test_non_decimal_total(self):
        with pytest.raises(InvalidAllocationError):
            allocate(1000, 40, 35, 25, "VND")

    def test_non_finite_total(self):
        with pytest.raises(InvalidAllocationError):
            allocate(Decimal("Infinity"), 40, 35, 25, "VND")

    def test_unsupported_currency(self):
        with pytest.raises(ValidationError) as exc_info:
            allocate(Decimal("100"), 40, 35, 25, "XYZ")

        assert exc_info.value.field == "currency"
