# fleet_settlement/tests/test_account_summary.py

from datetime import date, datetime
from decimal import Decimal

import pytest

from fleet_settlement.accounts.services import AccountSummaryService
from fleet_settlement.ledger.models import LedgerStatus, TransactionType
from fleet_settlement.obligations.models import ObligationClass
from fleet_settlement.periods.schemas import EarningRecord, Period
from fleet_settlement.settlements.exceptions import VehicleProfileNotFoundError
from fleet_settlement.vehicles.schemas import VehicleProfile
from fleet_settlement.waterfall.schemas import WaterfallComponent

from conftest import PARTNER_VEHICLE, SOLO_VEHICLE


@pytest.fixture
def service(db_session, provider, registered):
    return AccountSummaryService(db_session, provider)


def component(summary, which):
    return next(c for c in summary.components if c.component == which)


class TestPeriodSummary:

    def test_quarter_breakdown(self, service, today):
        summary = service.period_summary(PARTNER_VEHICLE, Period.quarterly(2025, 1), today=today)

        assert summary.period_key == "2025-Q1"
        assert [m.period_key for m in summary.months] == ["2025-01", "2025-02", "2025-03"]
        assert summary.months[2].profit == Decimal("10000")
        assert summary.months[2].gst == Decimal("400.00")
        assert summary.total_profit == Decimal("10000")
        assert summary.is_partnership is True

    def test_settled_month_reduces_what_is_payable(self, service, ledger, db_session, today):
        ledger.append(PARTNER_VEHICLE, TransactionType.GST, Decimal("400"), "2025-03")
        db_session.commit()

        summary = service.period_summary(PARTNER_VEHICLE, Period.quarterly(2025, 1), today=today)

        gst = component(summary, WaterfallComponent.GST)
        assert gst.computed_total == Decimal("400.00")
        assert gst.settled == Decimal("400.00")
        assert gst.actually_payable == 0
        # January and February had nothing to pay
        assert gst.fully_settled is True
        assert gst.all_months_positive is False
        assert summary.months[2].status[WaterfallComponent.GST] == LedgerStatus.COMPLETED

        partner = component(summary, WaterfallComponent.PARTNER_SHARE)
        assert partner.actually_payable == Decimal("4300.00")
        assert partner.fully_settled is False
        assert summary.months[2].status[WaterfallComponent.PARTNER_SHARE] == LedgerStatus.UNPAID

    def test_reversed_month_is_payable_again(self, service, ledger, db_session, today):
        ledger.append(PARTNER_VEHICLE, TransactionType.GST, Decimal("400"), "2025-03", completed_at=datetime(2025, 4, 1))
        db_session.commit()
        ledger.reverse(PARTNER_VEHICLE, TransactionType.GST, "2025-03")

        summary = service.period_summary(PARTNER_VEHICLE, Period.monthly(2025, 3), today=today)

        assert component(summary, WaterfallComponent.GST).actually_payable == Decimal("400.00")
        assert summary.months[0].status[WaterfallComponent.GST] == LedgerStatus.REVERSED

    def test_obligation_queues_are_summarised(self, service, today):
        summary = service.period_summary(PARTNER_VEHICLE, Period.monthly(2025, 6), today=today)

        assert summary.emi.total_count == 6
        assert summary.emi.overdue_count == 4
        assert summary.emi.overdue_total == Decimal("20000")
        assert summary.emi.suggested_penalty_total == Decimal("400.00")
        assert summary.emi.next_due_date == date(2025, 3, 10)

        assert summary.rent.overdue_count == 6
        assert summary.rent.due_soon_count == 1
        assert summary.rent.due_soon_total == Decimal("3000")

    def test_vehicle_without_assignment_has_no_rent_summary(self, service, today):
        summary = service.period_summary(SOLO_VEHICLE, Period.monthly(2025, 3), today=today)

        assert summary.rent is None
        assert summary.emi.overdue_count == 1
        assert component(summary, WaterfallComponent.SERVICE_CHARGE).computed_total == 0

    def test_cash_position_follows_settlements(self, service, executor, today):
        executor.settle_obligation(PARTNER_VEHICLE, ObligationClass.RENT, 0, today=today)

        summary = service.period_summary(PARTNER_VEHICLE, Period.monthly(2025, 5), today=today)
        assert summary.cash.vehicle_balance == Decimal("3000.00")
        assert summary.cash.company_balance == Decimal("3000.00")
        assert summary.rent.paid_count == 1

    def test_inline_profile_and_records(self, service, today):
        profile = VehicleProfile(vehicle_id="VEH-NEW")
        records = [EarningRecord(vehicle_id="VEH-NEW", amount_paid=Decimal("2500"), timestamp=datetime(2025, 2, 3))]

        summary = service.period_summary(
            "VEH-NEW", Period.monthly(2025, 2), today=today, profile=profile, earnings=records, expenses=[]
        )

        assert summary.total_profit == Decimal("2500")
        assert component(summary, WaterfallComponent.OWNER_PAYMENT).computed_total == Decimal("2400.00")
        assert summary.emi is None

    def test_unknown_vehicle(self, service, today):
        with pytest.raises(VehicleProfileNotFoundError):
            service.period_summary("VEH-9999", Period.monthly(2025, 1), today=today)
