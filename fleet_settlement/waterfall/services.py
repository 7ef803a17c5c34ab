# fleet_settlement/waterfall/services.py

from decimal import Decimal
from typing import Optional

from fleet_settlement.core.config import settings
from fleet_settlement.periods.schemas import PeriodProfit
from fleet_settlement.vehicles.schemas import VehicleProfile
from fleet_settlement.waterfall.schemas import (
    MonthlyWaterfall,
    PeriodWaterfall,
    WaterfallResult,
)
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.utils.money import ZERO, round_money, to_decimal

logger = get_logger(__name__)


class WaterfallCalculator:
    """
    Derives GST, service charge, partner share and owner payment from a
    month's profit.

    Deductions are rounded to cents in waterfall order and the owner payment
    takes whatever is left, so a month's components always add back up to
    its positive profit.
    """

    def __init__(self, gst_rate: Optional[Decimal] = None):
        self.gst_rate = to_decimal(settings.gst_rate if gst_rate is None else gst_rate)

    def compute(self, profit: Decimal, profile: VehicleProfile) -> WaterfallResult:
        profit = to_decimal(profit)
        positive = profit > 0

        gst = round_money(profit * self.gst_rate) if positive else ZERO
        service_charge = (
            round_money(profit * to_decimal(profile.service_charge_rate))
            if profile.is_partnership and positive
            else ZERO
        )
        remaining = profit - gst - service_charge

        partner_share = ZERO
        owner_payment = ZERO
        if remaining > 0:
            if profile.is_partnership:
                partner_share = round_money(remaining * profile.partnership_fraction)
                owner_payment = remaining - partner_share
            else:
                owner_payment = remaining

        return WaterfallResult(
            gst=gst,
            service_charge=service_charge,
            partner_share=partner_share,
            owner_payment=owner_payment,
            remaining=remaining,
        )

    def compute_period(self, period_profit: PeriodProfit, profile: VehicleProfile) -> PeriodWaterfall:
        months = [
            MonthlyWaterfall(profit=month, result=self.compute(month.profit, profile))
            for month in period_profit.months
        ]
        totals = WaterfallResult()
        for item in months:
            totals = totals + item.result

        logger.debug(
            "Computed period waterfall",
            vehicle_id=period_profit.vehicle_id,
            period=period_profit.period.key,
            gst=str(totals.gst),
            owner_payment=str(totals.owner_payment),
        )
        return PeriodWaterfall(
            vehicle_id=period_profit.vehicle_id,
            period=period_profit.period,
            months=months,
            totals=totals,
        )
