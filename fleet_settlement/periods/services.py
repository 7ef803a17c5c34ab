# fleet_settlement/periods/services.py

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, Tuple

from fleet_settlement.periods.schemas import (
    EarningRecord,
    ExpenseRecord,
    MonthlyProfit,
    Period,
    PeriodProfit,
)
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.utils.money import ZERO, to_decimal

logger = get_logger(__name__)

PAID_EARNING_STATUSES = frozenset({"paid"})
APPROVED_EXPENSE_STATUSES = frozenset({"approved"})


class PeriodAggregator:
    """
    Sums raw earning and expense records into monthly profit figures.

    The per-month list is always retained: downstream waterfall computation
    evaluates each month's sign independently and never works on the
    period total.
    """

    def aggregate(
        self,
        vehicle_id: str,
        period: Period,
        earnings: Iterable[EarningRecord],
        expenses: Iterable[ExpenseRecord],
    ) -> PeriodProfit:
        earnings_by_month = self._bucket(
            vehicle_id, earnings, PAID_EARNING_STATUSES, lambda r: r.amount_paid
        )
        expenses_by_month = self._bucket(
            vehicle_id, expenses, APPROVED_EXPENSE_STATUSES, lambda r: r.amount
        )

        months = []
        for month in period.months:
            key = (period.year, month)
            month_earnings = earnings_by_month.get(key, ZERO)
            month_expenses = expenses_by_month.get(key, ZERO)
            months.append(
                MonthlyProfit(
                    year=period.year,
                    month=month,
                    earnings=month_earnings,
                    expenses=month_expenses,
                    profit=month_earnings - month_expenses,
                )
            )

        total_earnings = sum((m.earnings for m in months), ZERO)
        total_expenses = sum((m.expenses for m in months), ZERO)
        total_profit = sum((m.profit for m in months), ZERO)

        logger.debug(
            "Aggregated period profit",
            vehicle_id=vehicle_id,
            period=period.key,
            total_profit=str(total_profit),
        )
        return PeriodProfit(
            vehicle_id=vehicle_id,
            period=period,
            months=months,
            total_earnings=total_earnings,
            total_expenses=total_expenses,
            total_profit=total_profit,
        )

    def aggregate_month(
        self,
        vehicle_id: str,
        year: int,
        month: int,
        earnings: Iterable[EarningRecord],
        expenses: Iterable[ExpenseRecord],
    ) -> MonthlyProfit:
        """Single-month form of aggregate()."""
        return self.aggregate(vehicle_id, Period.monthly(year, month), earnings, expenses).months[0]

    @staticmethod
    def _bucket(vehicle_id, records, statuses, amount_of) -> Dict[Tuple[int, int], Decimal]:
        totals: Dict[Tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
        for record in records:
            if record.vehicle_id != vehicle_id:
                continue
            if (record.status or "").lower() not in statuses:
                continue
            totals[(record.timestamp.year, record.timestamp.month)] += to_decimal(amount_of(record))
        return totals
