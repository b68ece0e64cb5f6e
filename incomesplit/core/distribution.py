# incomesplit/core/distribution.py
from typing import Dict, Mapping

from incomesplit.core.exceptions import ValidationError

DISTRIBUTION_ROLES = ("needs", "wants", "savings")

# Допустимое отклонение суммы процентов от 100
PERCENTAGE_TOLERANCE = 0.01


def allocate(amount: float, percentages: Mapping[str, float]) -> Dict[str, float]:
    """
    Делит сумму дохода на три корзины по процентам.

    Округление не выполняется: дробные части сохраняются до отображения.
    Проценты должны быть проверены заранее (см. check_distribution_total).
    """
    return {role: amount * percentages[role] / 100 for role in DISTRIBUTION_ROLES}


def check_distribution_total(needs: float, wants: float, savings: float) -> None:
    total = needs + wants + savings
    if abs(total - 100) > PERCENTAGE_TOLERANCE:
        raise ValidationError(f"Distribution percentages must sum to 100% (got {total:g})")


def allocation_category_name(role: str) -> str:
    return f"{role.capitalize()} Allocation"


def allocation_description(description: str, role: str) -> str:
    return f"{description} - {allocation_category_name(role)}"
