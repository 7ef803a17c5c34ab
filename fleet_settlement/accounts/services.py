# fleet_settlement/accounts/services.py

from datetime import date
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from fleet_settlement.accounts.schemas import (
    CashPosition,
    ComponentSummary,
    MonthSummary,
    ObligationSummary,
    PeriodSummaryResponse,
)
from fleet_settlement.ledger.models import LedgerStatus, TransactionType
from fleet_settlement.ledger.repository import LedgerRepository
from fleet_settlement.ledger.services import TransactionLedger
from fleet_settlement.obligations.models import ObligationClass, ObligationState
from fleet_settlement.obligations.repository import ObligationRepository
from fleet_settlement.obligations.services import ObligationScheduler
from fleet_settlement.periods.schemas import EarningRecord, ExpenseRecord, Period
from fleet_settlement.periods.services import PeriodAggregator
from fleet_settlement.settlements.exceptions import VehicleProfileNotFoundError
from fleet_settlement.settlements.providers import FinancialDataProvider
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.utils.money import ZERO
from fleet_settlement.vehicles.schemas import VehicleProfile
from fleet_settlement.waterfall.schemas import WaterfallComponent
from fleet_settlement.waterfall.services import WaterfallCalculator

logger = get_logger(__name__)


class AccountSummaryService:
    """
    Builds the account view-model of a vehicle: per-month waterfall with the
    ledger status of each component, what is actually still payable, cash
    in hand, and the state of the EMI and rent queues.
    """

    def __init__(self, db: Session, provider: FinancialDataProvider):
        self.provider = provider
        self.ledger = TransactionLedger(LedgerRepository(db))
        self.scheduler = ObligationScheduler(ObligationRepository(db))
        self.aggregator = PeriodAggregator()
        self.calculator = WaterfallCalculator()

    def period_summary(
        self,
        vehicle_id: str,
        period: Period,
        today: Optional[date] = None,
        profile: Optional[VehicleProfile] = None,
        earnings: Optional[Iterable[EarningRecord]] = None,
        expenses: Optional[Iterable[ExpenseRecord]] = None,
    ) -> PeriodSummaryResponse:
        today = today or date.today()
        profile = profile or self.provider.get_vehicle_profile(vehicle_id)
        if profile is None:
            raise VehicleProfileNotFoundError(vehicle_id)
        if earnings is None:
            earnings = self.provider.get_earnings(vehicle_id, period.year)
        if expenses is None:
            expenses = self.provider.get_expenses(vehicle_id, period.year)

        profit = self.aggregator.aggregate(vehicle_id, period, earnings, expenses)
        waterfall = self.calculator.compute_period(profit, profile)
        keys = period.month_keys()

        statuses = {
            component: self.ledger.statuses(vehicle_id, TransactionType(component.value), keys)
            for component in WaterfallComponent
        }

        months = []
        for item in waterfall.months:
            months.append(
                MonthSummary(
                    period_key=item.period_key,
                    month=item.month,
                    month_name=item.profit.month_name,
                    earnings=item.profit.earnings,
                    expenses=item.profit.expenses,
                    profit=item.profit.profit,
                    gst=item.result.gst,
                    service_charge=item.result.service_charge,
                    partner_share=item.result.partner_share,
                    owner_payment=item.result.owner_payment,
                    status={c: statuses[c][item.period_key] for c in WaterfallComponent},
                )
            )

        components = []
        for component in WaterfallComponent:
            transaction_type = TransactionType(component.value)
            computed_total = waterfall.totals.component(component)
            settled = self.ledger.settled_amount(vehicle_id, transaction_type, keys)
            payable = self.ledger.outstanding(vehicle_id, transaction_type, keys, computed_total)
            components.append(
                ComponentSummary(
                    component=component,
                    computed_total=computed_total,
                    settled=settled,
                    actually_payable=payable,
                    all_months_positive=waterfall.all_months_positive(component),
                    # a month with nothing payable needs no payment
                    fully_settled=all(
                        statuses[component][m.period_key] == LedgerStatus.COMPLETED
                        or m.result.component(component) <= 0
                        for m in waterfall.months
                    ),
                )
            )

        logger.info(
            "Built period summary",
            vehicle_id=vehicle_id,
            period=period.key,
            total_profit=str(profit.total_profit),
        )
        return PeriodSummaryResponse(
            vehicle_id=vehicle_id,
            period_key=period.key,
            period_label=period.label,
            is_partnership=profile.is_partnership,
            months=months,
            total_earnings=profit.total_earnings,
            total_expenses=profit.total_expenses,
            total_profit=profit.total_profit,
            components=components,
            cash=self.cash_position(vehicle_id),
            emi=self.obligation_summary(vehicle_id, ObligationClass.EMI, today),
            rent=self.obligation_summary(vehicle_id, ObligationClass.RENT, today),
        )

    def obligation_summary(
        self, vehicle_id: str, obligation_class: ObligationClass, today: date
    ) -> Optional[ObligationSummary]:
        views = self.scheduler.views(vehicle_id, obligation_class, today)
        if not views:
            return None

        overdue = [v for v in views if v.state == ObligationState.OVERDUE]
        due_soon = [v for v in views if v.state == ObligationState.DUE_SOON]
        upcoming: List = [v for v in views if not v.is_paid]
        next_due = upcoming[0] if upcoming else None

        return ObligationSummary(
            obligation_class=obligation_class,
            total_count=len(views),
            paid_count=sum(1 for v in views if v.is_paid),
            overdue_count=len(overdue),
            overdue_total=sum((v.amount for v in overdue), ZERO),
            due_soon_count=len(due_soon),
            due_soon_total=sum((v.amount for v in due_soon), ZERO),
            suggested_penalty_total=sum((v.suggested_penalty for v in overdue), ZERO),
            next_due_date=next_due.due_date if next_due else None,
            next_due_amount=next_due.amount if next_due else None,
        )

    def cash_position(self, vehicle_id: str) -> CashPosition:
        return CashPosition(
            vehicle_id=vehicle_id,
            vehicle_balance=self.ledger.get_vehicle_balance(vehicle_id),
            company_balance=self.ledger.get_company_balance(),
        )
