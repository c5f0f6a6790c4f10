"""
projecthub/budget.py

Budget value object: spend percentage, remaining balance and alert status
derived from a project's planned/spent amounts and its alert threshold.

Pure Python logic - no FastAPI imports, no database access.

Rounding policy (applied everywhere a percentage is shown):
    percentages are rounded half-up to one decimal, and status/alert
    thresholds are compared against that rounded value so the number the
    UI shows can never disagree with the status next to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Union

from projecthub.config import DEFAULT_ALERT_THRESHOLD

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
ONE_DECIMAL = Decimal("0.1")
CENT = Decimal("0.01")

# Largest single amount accepted (planned, spent or one expense). Keeps cent
# totals far inside a 64-bit integer column.
MAX_AMOUNT = Decimal("999999999999.99")
MAX_MINOR_UNITS = 99999999999999

CAUTION_PERCENTAGE = Decimal("70")
CRITICAL_PERCENTAGE = Decimal("95")


class BudgetLevel(str, Enum):
    """Budget status values, from least to most severe (no_budget aside)."""
    NO_BUDGET = "no_budget"
    OK = "ok"
    CAUTION = "caution"
    WARNING = "warning"
    CRITICAL = "critical"


# Sort key for alert lists: critical first
SEVERITY_ORDER: Dict[str, int] = {
    BudgetLevel.CRITICAL.value: 0,
    BudgetLevel.WARNING.value: 1,
    BudgetLevel.CAUTION.value: 2,
    BudgetLevel.OK.value: 3,
    BudgetLevel.NO_BUDGET.value: 4,
}

# Rank for "gets worse as spend grows" comparisons
SEVERITY_RANK: Dict[str, int] = {
    BudgetLevel.NO_BUDGET.value: 0,
    BudgetLevel.OK.value: 1,
    BudgetLevel.CAUTION.value: 2,
    BudgetLevel.WARNING.value: 3,
    BudgetLevel.CRITICAL.value: 4,
}


# ============================================================================
# Money helpers
# ============================================================================

def to_decimal(value: Number) -> Decimal:
    """Coerce an amount to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a numeric amount: {value!r}")


def to_minor_units(amount: Number) -> int:
    """Decimal amount -> integer cents (half-up)."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int) -> Decimal:
    """Integer cents -> Decimal amount with two places."""
    return (Decimal(int(cents or 0)) / 100).quantize(CENT)


def round_percentage(value: Number) -> Decimal:
    return to_decimal(value).quantize(ONE_DECIMAL, rounding=ROUND_HALF_UP)


def spend_percentage(planned: Number, spent: Number) -> Decimal:
    """spent / planned * 100 rounded to one decimal; 0 when nothing is planned."""
    planned_d = to_decimal(planned)
    if planned_d <= ZERO:
        return round_percentage(ZERO)
    return round_percentage(to_decimal(spent) / planned_d * HUNDRED)


# ============================================================================
# Status computation
# ============================================================================

@dataclass(frozen=True)
class BudgetStatus:
    """Derived (never persisted) view of a project budget."""
    planned: Decimal
    spent: Decimal
    alert_threshold: int
    percentage: Decimal
    remaining: Decimal
    status: str
    is_alert: bool

    @property
    def severity(self) -> int:
        return SEVERITY_RANK[self.status]

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape consumed by the web client."""
        return {
            "planned": float(self.planned),
            "spent": float(self.spent),
            "remaining": float(self.remaining),
            "percentage": float(self.percentage),
            "status": self.status,
            "isAlert": self.is_alert,
            "alertThreshold": self.alert_threshold,
        }


def classify(percentage: Decimal, alert_threshold: int) -> str:
    """Most severe level first; critical wins over warning."""
    if percentage >= CRITICAL_PERCENTAGE:
        return BudgetLevel.CRITICAL.value
    if percentage >= Decimal(alert_threshold):
        return BudgetLevel.WARNING.value
    if percentage >= CAUTION_PERCENTAGE:
        return BudgetLevel.CAUTION.value
    return BudgetLevel.OK.value


def compute_budget_status(
    planned: Number,
    spent: Number,
    alert_threshold: int = DEFAULT_ALERT_THRESHOLD,
) -> BudgetStatus:
    """
    Compute the budget status for a planned/spent pair.

    Never raises for numeric input and is safe for planned == 0, which
    short-circuits to no_budget at 0%.

    Args:
        planned: Budgeted amount (>= 0)
        spent: Cumulative spend (>= 0, may exceed planned)
        alert_threshold: Percentage (0-100) at or above which the budget alerts

    Returns:
        BudgetStatus with percentage, remaining, status and is_alert
    """
    planned_d = to_decimal(planned)
    spent_d = to_decimal(spent)
    threshold = int(alert_threshold)
    remaining = planned_d - spent_d

    if planned_d <= ZERO:
        return BudgetStatus(
            planned=planned_d,
            spent=spent_d,
            alert_threshold=threshold,
            percentage=round_percentage(ZERO),
            remaining=remaining,
            status=BudgetLevel.NO_BUDGET.value,
            is_alert=False,
        )

    percentage = spend_percentage(planned_d, spent_d)
    return BudgetStatus(
        planned=planned_d,
        spent=spent_d,
        alert_threshold=threshold,
        percentage=percentage,
        remaining=remaining,
        status=classify(percentage, threshold),
        is_alert=percentage >= Decimal(threshold),
    )


def alert_message(status: BudgetStatus) -> str:
    return f"{status.percentage}% of budget spent"


def alert_payload(status: BudgetStatus) -> Dict[str, Any]:
    """Alert block attached to expense responses once the threshold is crossed."""
    return {
        "message": f"Budget alert: {alert_message(status)}",
        "level": status.status,
    }
