# fleet_settlement/tests/test_period_aggregation.py

from datetime import datetime
from decimal import Decimal

import pytest

from fleet_settlement.periods.exceptions import InvalidPeriodError
from fleet_settlement.periods.schemas import EarningRecord, ExpenseRecord, Period, PeriodType
from fleet_settlement.periods.services import PeriodAggregator

from conftest import PARTNER_VEHICLE


class TestPeriodSelection:

    def test_quarter_covers_its_three_months(self):
        period = Period.from_selection("Quarterly", 2025, 2)
        assert period.period_type == PeriodType.QUARTERLY
        assert period.months == (4, 5, 6)
        assert period.key == "2025-Q2"
        assert period.month_keys() == ["2025-04", "2025-05", "2025-06"]

    def test_yearly_covers_all_months(self):
        period = Period.from_selection(PeriodType.YEARLY, 2024)
        assert period.months == tuple(range(1, 13))
        assert period.key == "2024"

    def test_monthly_key_and_label(self):
        period = Period.monthly(2025, 3)
        assert period.key == "2025-03"
        assert period.label == "March 2025"

    def test_unknown_period_type_is_rejected(self):
        with pytest.raises(InvalidPeriodError):
            Period.from_selection("fortnightly", 2025, 1)

    @pytest.mark.parametrize("period_type,value", [("monthly", 13), ("monthly", 0), ("quarterly", 5), ("monthly", None)])
    def test_out_of_range_selection_is_rejected(self, period_type, value):
        with pytest.raises(InvalidPeriodError):
            Period.from_selection(period_type, 2025, value)

    def test_misaligned_quarter_is_invalid(self):
        with pytest.raises(ValueError):
            Period(period_type=PeriodType.QUARTERLY, year=2025, months=(2, 3, 4))

    def test_non_contiguous_months_are_invalid(self):
        with pytest.raises(ValueError):
            Period(period_type=PeriodType.QUARTERLY, year=2025, months=(1, 2, 4))


class TestPeriodAggregator:

    def test_monthly_profit_counts_only_paid_and_approved(self, earnings, expenses):
        result = PeriodAggregator().aggregate(PARTNER_VEHICLE, Period.quarterly(2025, 1), earnings, expenses)

        march = result.months[2]
        assert march.month == 3
        assert march.earnings == Decimal("10000")
        # the rejected expense and the pending earning are ignored
        assert march.expenses == Decimal("0")
        assert march.profit == Decimal("10000")

    def test_per_month_breakdown_is_kept_with_totals(self, earnings, expenses):
        result = PeriodAggregator().aggregate(PARTNER_VEHICLE, Period.quarterly(2025, 2), earnings, expenses)

        assert [m.profit for m in result.months] == [Decimal("-500"), Decimal("2000"), Decimal("0")]
        assert result.total_earnings == Decimal("3000")
        assert result.total_expenses == Decimal("1500")
        assert result.total_profit == Decimal("1500")

    def test_other_vehicles_are_excluded(self, earnings, expenses):
        month = PeriodAggregator().aggregate_month("VEH-2002", 2025, 3, earnings, expenses)
        assert month.earnings == Decimal("7000")
        assert month.expenses == Decimal("2000")
        assert month.profit == Decimal("5000")

    def test_status_match_is_case_insensitive(self):
        records = [
            EarningRecord(vehicle_id="V", amount_paid=Decimal("100"), timestamp=datetime(2025, 1, 2), status="PAID"),
            EarningRecord(vehicle_id="V", amount_paid=Decimal("50.5"), timestamp=datetime(2025, 1, 9), status="Paid"),
        ]
        costs = [ExpenseRecord(vehicle_id="V", amount=Decimal("20"), timestamp=datetime(2025, 1, 3), status="Approved")]

        month = PeriodAggregator().aggregate_month("V", 2025, 1, records, costs)
        assert month.earnings == Decimal("150.5")
        assert month.profit == Decimal("130.5")

    def test_records_from_other_years_are_ignored(self):
        records = [EarningRecord(vehicle_id="V", amount_paid=Decimal("100"), timestamp=datetime(2024, 1, 2))]
        month = PeriodAggregator().aggregate_month("V", 2025, 1, records, [])
        assert month.earnings == Decimal("0")
