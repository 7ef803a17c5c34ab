# fleet_settlement/accounts/schemas.py

from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from fleet_settlement.ledger.models import LedgerStatus
from fleet_settlement.obligations.models import ObligationClass
from fleet_settlement.periods.schemas import EarningRecord, ExpenseRecord, PeriodType
from fleet_settlement.vehicles.schemas import VehicleProfile
from fleet_settlement.waterfall.schemas import WaterfallComponent


class PeriodSummaryRequest(BaseModel):
    """
    Period selection for an account summary. Profile and records may be
    posted inline; anything omitted is read from the data provider.
    """
    vehicle_id: str
    period_type: PeriodType = PeriodType.MONTHLY
    year: int
    value: Optional[int] = Field(None, description="Month (1-12) or quarter (1-4); unused for yearly")
    today: Optional[date] = None
    profile: Optional[VehicleProfile] = None
    earnings: Optional[List[EarningRecord]] = None
    expenses: Optional[List[ExpenseRecord]] = None


class MonthSummary(BaseModel):
    period_key: str
    month: int
    month_name: str
    earnings: Decimal
    expenses: Decimal
    profit: Decimal
    gst: Decimal
    service_charge: Decimal
    partner_share: Decimal
    owner_payment: Decimal
    status: Dict[WaterfallComponent, LedgerStatus]


class ComponentSummary(BaseModel):
    component: WaterfallComponent
    computed_total: Decimal
    settled: Decimal
    actually_payable: Decimal
    all_months_positive: bool
    fully_settled: bool


class ObligationSummary(BaseModel):
    obligation_class: ObligationClass
    total_count: int
    paid_count: int
    overdue_count: int
    overdue_total: Decimal
    due_soon_count: int
    due_soon_total: Decimal
    suggested_penalty_total: Decimal
    next_due_date: Optional[date] = None
    next_due_amount: Optional[Decimal] = None


class CashPosition(BaseModel):
    vehicle_id: str
    vehicle_balance: Decimal
    company_balance: Decimal


class PeriodSummaryResponse(BaseModel):
    """Everything an account screen needs for one vehicle and period."""
    vehicle_id: str
    period_key: str
    period_label: str
    is_partnership: bool
    months: List[MonthSummary]
    total_earnings: Decimal
    total_expenses: Decimal
    total_profit: Decimal
    components: List[ComponentSummary]
    cash: CashPosition
    emi: Optional[ObligationSummary] = None
    rent: Optional[ObligationSummary] = None
