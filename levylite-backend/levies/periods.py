# levies/periods.py
from calendar import monthrange
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List

from dateutil.relativedelta import relativedelta

from common.errors import ValidationError
from .models import Frequency, PERIODS_PER_YEAR


@dataclass
class PeriodSpec:
    period_number: int
    period_name: str
    period_start: date
    period_end: date
    due_date: date


def fy_label(d: date) -> str:
    # Australian financial year ends 30 June: Jul 2026 -> FY2027
    return f"FY{d.year + 1}" if d.month >= 7 else f"FY{d.year}"


def period_name(frequency: str, period_number: int, period_start: date) -> str:
    fy = fy_label(period_start)
    if frequency == Frequency.QUARTERLY:
        return f"Q{period_number} {fy}"
    if frequency == Frequency.MONTHLY:
        return f"{period_start:%b} {fy}"
    if frequency == Frequency.ANNUAL:
        return f"Annual {fy}"
    return f"Period {period_number} {fy}"


def due_date_for(period_start: date, levy_due_day: int) -> date:
    last_day = monthrange(period_start.year, period_start.month)[1]
    return period_start.replace(day=min(levy_due_day, last_day))


def generate_periods(budget_year_start: date, frequency: str, levy_due_day: int) -> List[PeriodSpec]:
    count = PERIODS_PER_YEAR.get(frequency)
    if not count:
        raise ValidationError(f"Unknown levy frequency '{frequency}'")
    months = 12 // count
    out = []
    for i in range(count):
        start = budget_year_start + relativedelta(months=i * months)
        end = budget_year_start + relativedelta(months=(i + 1) * months) - timedelta(days=1)
        out.append(
            PeriodSpec(
                period_number=i + 1,
                period_name=period_name(frequency, i + 1, start),
                period_start=start,
                period_end=end,
                due_date=due_date_for(start, levy_due_day),
            )
        )
    return out
