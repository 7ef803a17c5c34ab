# fleet_settlement/waterfall/schemas.py

from decimal import Decimal
from enum import Enum as PyEnum
from typing import List

from pydantic import BaseModel, ConfigDict

from fleet_settlement.periods.schemas import MonthlyProfit, Period


class WaterfallComponent(str, PyEnum):
    """The payable components of the monthly profit waterfall, in deduction order."""
    GST = "gst"
    SERVICE_CHARGE = "serviceCharge"
    PARTNER_SHARE = "partnerShare"
    OWNER_PAYMENT = "ownerPayment"


_FIELD_BY_COMPONENT = {
    WaterfallComponent.GST: "gst",
    WaterfallComponent.SERVICE_CHARGE: "service_charge",
    WaterfallComponent.PARTNER_SHARE: "partner_share",
    WaterfallComponent.OWNER_PAYMENT: "owner_payment",
}


class WaterfallResult(BaseModel):
    """Waterfall split of one month's profit. All components are non-negative."""
    model_config = ConfigDict(frozen=True)

    gst: Decimal = Decimal("0")
    service_charge: Decimal = Decimal("0")
    partner_share: Decimal = Decimal("0")
    owner_payment: Decimal = Decimal("0")
    remaining: Decimal = Decimal("0")

    def component(self, component: WaterfallComponent) -> Decimal:
        return getattr(self, _FIELD_BY_COMPONENT[WaterfallComponent(component)])

    def __add__(self, other: "WaterfallResult") -> "WaterfallResult":
        return WaterfallResult(
            gst=self.gst + other.gst,
            service_charge=self.service_charge + other.service_charge,
            partner_share=self.partner_share + other.partner_share,
            owner_payment=self.owner_payment + other.owner_payment,
            remaining=self.remaining + other.remaining,
        )


class MonthlyWaterfall(BaseModel):
    model_config = ConfigDict(frozen=True)

    profit: MonthlyProfit
    result: WaterfallResult

    @property
    def period_key(self) -> str:
        return self.profit.period_key

    @property
    def month(self) -> int:
        return self.profit.month


class PeriodWaterfall(BaseModel):
    """
    Waterfall of a period. Totals are the sum of the monthly results; a
    loss-making month contributes zero to every component.
    """
    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    period: Period
    months: List[MonthlyWaterfall]
    totals: WaterfallResult

    def all_months_positive(self, component: WaterfallComponent) -> bool:
        return bool(self.months) and all(m.result.component(component) > 0 for m in self.months)

    def for_month(self, month: int) -> MonthlyWaterfall:
        for item in self.months:
            if item.month == month:
                return item
        raise KeyError(month)
