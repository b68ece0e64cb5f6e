import pytest
from pydantic import ValidationError as PydanticValidationError

from incomesplit.core.distribution import (
    DISTRIBUTION_ROLES,
    allocate,
    allocation_category_name,
    allocation_description,
    check_distribution_total,
)
from incomesplit.core.exceptions import ValidationError
from incomesplit.schemas.transaction import DistributionPercentages
from incomesplit.schemas.user import BudgetPreferences


class TestAllocate:

    def test_splits_amount_by_percentages(self):
        amounts = allocate(1000, {"needs": 50, "wants": 30, "savings": 20})
        assert amounts == {"needs": 500, "wants": 300, "savings": 200}

    def test_keeps_fractional_parts(self):
        amounts = allocate(100, {"needs": 33.33, "wants": 33.33, "savings": 33.34})
        assert amounts["needs"] == pytest.approx(33.33)
        assert amounts["wants"] == pytest.approx(33.33)
        assert amounts["savings"] == pytest.approx(33.34)

    def test_returns_every_role(self):
        amounts = allocate(10, {"needs": 60, "wants": 30, "savings": 10})
        assert tuple(amounts) == DISTRIBUTION_ROLES
        assert sum(amounts.values()) == pytest.approx(10)


class TestDistributionTotal:

    def test_exact_total_passes(self):
        check_distribution_total(50, 30, 20)

    def test_within_tolerance_passes(self):
        check_distribution_total(50, 30, 20.005)

    @pytest.mark.parametrize("needs,wants,savings", [(50, 30, 19), (50, 30, 20.01), (50, 30, 20.02), (60, 30, 20)])
    def test_outside_tolerance_raises(self, needs, wants, savings):
        with pytest.raises(ValidationError) as exc_info:
            check_distribution_total(needs, wants, savings)
        assert "must sum to 100%" in exc_info.value.message


def test_allocation_names():
    assert allocation_category_name("needs") == "Needs Allocation"
    assert allocation_description("March Salary", "savings") == "March Salary - Savings Allocation"


class TestPercentageSchemas:

    def test_distribution_rejects_zero_bucket(self):
        with pytest.raises(PydanticValidationError):
            DistributionPercentages(needs=0, wants=50, savings=50)

    def test_distribution_rejects_bad_total(self):
        with pytest.raises(PydanticValidationError):
            DistributionPercentages(needs=50, wants=30, savings=10)

    def test_preferences_allow_zero_bucket(self):
        prefs = BudgetPreferences(
            needs={"percentage": 0}, wants={"percentage": 50}, savings={"percentage": 50}
        )
        assert prefs.percentages() == {"needs": 0, "wants": 50, "savings": 50}

    def test_preferences_reject_out_of_range(self):
        with pytest.raises(PydanticValidationError):
            BudgetPreferences(
                needs={"percentage": 120}, wants={"percentage": -10}, savings={"percentage": -10}
            )
