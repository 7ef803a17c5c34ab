# fleet_settlement/vehicles/schemas.py

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fleet_settlement.core.config import settings


class LoanInstallment(BaseModel):
    """One row of a loan amortization schedule."""
    model_config = ConfigDict(from_attributes=True)

    installment_number: int = Field(..., ge=1)
    due_date: date
    amount: Optional[Decimal] = Field(None, gt=0, description="Falls back to the loan's EMI per month")
    is_paid: bool = False
    paid_at: Optional[date] = None


class LoanDetails(BaseModel):
    """Loan financing of a vehicle with its amortization schedule."""
    model_config = ConfigDict(from_attributes=True)

    emi_per_month: Decimal = Field(..., gt=0)
    interest_rate: Optional[Decimal] = Field(None, ge=0)
    amortization_schedule: List[LoanInstallment] = Field(default_factory=list)


class Assignment(BaseModel):
    """An active driver assignment that produces weekly rent obligations."""
    model_config = ConfigDict(from_attributes=True)

    assignment_id: str
    driver_id: str
    start_date: date
    weekly_rent: Decimal = Field(..., gt=0)
    agreement_duration_months: int = Field(12, ge=1)


class VehicleProfile(BaseModel):
    """Settlement-relevant configuration of a vehicle."""
    model_config = ConfigDict(from_attributes=True, json_schema_extra={
        "examples": [
            {
                "vehicle_id": "VEH-1001",
                "is_partnership": True,
                "partnership_percentage": 50,
                "service_charge_rate": 0.10,
            }
        ]
    })

    vehicle_id: str
    is_partnership: bool = False
    partnership_percentage: Decimal = Field(
        default_factory=lambda: settings.default_partnership_percentage,
        ge=0, le=100, description="Partner's share of the remaining profit, in percent",
    )
    service_charge_rate: Decimal = Field(
        default_factory=lambda: settings.default_service_charge_rate,
        ge=0, le=1, description="Service charge as a fraction of positive profit",
    )
    loan: Optional[LoanDetails] = None
    assignment: Optional[Assignment] = None

    @property
    def partnership_fraction(self) -> Decimal:
        return Decimal(self.partnership_percentage) / Decimal(100)
