"""Late payment penalty calculation

Penalties start after the plan's grace period: a base rate plus a daily rate
for every additional calendar day late, capped at a maximum rate.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

GRACE_PERIOD_DAYS = 2
BASE_PENALTY_RATE = 0.05
DAILY_PENALTY_RATE = 0.005
MAX_PENALTY_RATE = 0.50


@dataclass
class PenaltyResult:
    penalty_amount: int
    penalty_rate: float
    days_late: int
    within_grace_period: bool


def difference_in_calendar_days(payment_date: datetime, due_date: datetime) -> int:
    """Calendar days from due_date to payment_date, never negative"""
    return max(0, (payment_date.date() - due_date.date()).days)


def calculate_penalty(
    base_amount: int,
    due_date: datetime,
    payment_date: datetime,
    grace_period_days: int = GRACE_PERIOD_DAYS,
    base_rate: float = BASE_PENALTY_RATE,
    daily_rate: float = DAILY_PENALTY_RATE,
    max_rate: float = MAX_PENALTY_RATE,
) -> PenaltyResult:
    total_days_late = difference_in_calendar_days(payment_date, due_date)
    days_late = max(0, total_days_late - grace_period_days)
    within_grace_period = total_days_late > 0 and days_late == 0

    if days_late == 0:
        return PenaltyResult(0, 0.0, 0, within_grace_period)

    rate = min(
        Decimal(str(base_rate)) + days_late * Decimal(str(daily_rate)),
        Decimal(str(max_rate)),
    )
    # Whole CLP, half-up
    penalty_amount = int((Decimal(base_amount) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    return PenaltyResult(penalty_amount, float(rate), days_late, within_grace_period)
