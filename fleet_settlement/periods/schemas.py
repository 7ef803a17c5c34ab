# fleet_settlement/periods/schemas.py

import calendar
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import List, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from fleet_settlement.periods.exceptions import InvalidPeriodError


class PeriodType(str, PyEnum):
    """Enumeration for the reporting period granularity."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


MONTHS_PER_PERIOD = {
    PeriodType.MONTHLY: 1,
    PeriodType.QUARTERLY: 3,
    PeriodType.YEARLY: 12,
}

QUARTER_START_MONTHS = (1, 4, 7, 10)


def month_key(year: int, month: int) -> str:
    """Ledger period key for a single calendar month, e.g. 2024-03."""
    return f"{year}-{month:02d}"


class Period(BaseModel):
    """
    A reporting period with the explicit, ordered list of calendar months
    (1..12) it covers.
    """
    model_config = ConfigDict(frozen=True)

    period_type: PeriodType
    year: int = Field(..., ge=1900, le=9999)
    months: Tuple[int, ...]

    @model_validator(mode="after")
    def _check_months(self) -> "Period":
        expected = MONTHS_PER_PERIOD[self.period_type]
        if len(self.months) != expected:
            raise ValueError(
                f"{self.period_type.value} period must cover {expected} month(s), got {len(self.months)}"
            )
        if any(m < 1 or m > 12 for m in self.months):
            raise ValueError("months must be between 1 and 12")
        if any(b != a + 1 for a, b in zip(self.months, self.months[1:])):
            raise ValueError("months must be contiguous and ascending")
        if self.period_type == PeriodType.QUARTERLY and self.months[0] not in QUARTER_START_MONTHS:
            raise ValueError("quarterly periods must start on a quarter boundary")
        return self

    @classmethod
    def monthly(cls, year: int, month: int) -> "Period":
        return cls(period_type=PeriodType.MONTHLY, year=year, months=(month,))

    @classmethod
    def quarterly(cls, year: int, quarter: int) -> "Period":
        if quarter < 1 or quarter > 4:
            raise InvalidPeriodError(f"quarter must be 1-4, got {quarter}")
        start = QUARTER_START_MONTHS[quarter - 1]
        return cls(period_type=PeriodType.QUARTERLY, year=year, months=(start, start + 1, start + 2))

    @classmethod
    def yearly(cls, year: int) -> "Period":
        return cls(period_type=PeriodType.YEARLY, year=year, months=tuple(range(1, 13)))

    @classmethod
    def from_selection(cls, period_type: Union[str, PeriodType], year: int, value: int = None) -> "Period":
        """
        Builds a period from a UI-style selection (type, year, month or quarter).
        Raises InvalidPeriodError for unknown types or out-of-range values.
        """
        raw = period_type.value if isinstance(period_type, PeriodType) else str(period_type).strip().lower()
        try:
            kind = PeriodType(raw)
        except ValueError:
            raise InvalidPeriodError(f"unknown period type '{period_type}'")

        try:
            if kind == PeriodType.YEARLY:
                return cls.yearly(year)
            if value is None:
                raise InvalidPeriodError(f"{kind.value} period requires a month or quarter value")
            if kind == PeriodType.QUARTERLY:
                return cls.quarterly(year, int(value))
            return cls.monthly(year, int(value))
        except ValueError as e:
            raise InvalidPeriodError(str(e)) from e

    @property
    def key(self) -> str:
        if self.period_type == PeriodType.YEARLY:
            return str(self.year)
        if self.period_type == PeriodType.QUARTERLY:
            return f"{self.year}-Q{(self.months[0] - 1) // 3 + 1}"
        return month_key(self.year, self.months[0])

    @property
    def label(self) -> str:
        if self.period_type == PeriodType.YEARLY:
            return str(self.year)
        if self.period_type == PeriodType.QUARTERLY:
            return f"Q{(self.months[0] - 1) // 3 + 1} {self.year}"
        return f"{calendar.month_name[self.months[0]]} {self.year}"

    def month_keys(self) -> List[str]:
        return [month_key(self.year, m) for m in self.months]


class EarningRecord(BaseModel):
    """A rent or trip payment received for a vehicle. Produced externally."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    vehicle_id: str
    amount_paid: Decimal
    timestamp: datetime
    status: str = "paid"


class ExpenseRecord(BaseModel):
    """An expense booked against a vehicle. Produced externally."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    vehicle_id: str
    amount: Decimal
    timestamp: datetime
    status: str = "approved"


class MonthlyProfit(BaseModel):
    """Earnings, expenses and profit of one vehicle for one calendar month."""
    model_config = ConfigDict(frozen=True)

    year: int
    month: int
    earnings: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")

    @property
    def period_key(self) -> str:
        return month_key(self.year, self.month)

    @property
    def month_name(self) -> str:
        return calendar.month_name[self.month]


class PeriodProfit(BaseModel):
    """Per-month profit of a vehicle over a period, plus period totals."""
    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    period: Period
    months: List[MonthlyProfit]
    total_earnings: Decimal
    total_expenses: Decimal
    total_profit: Decimal
