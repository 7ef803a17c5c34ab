# fleet_settlement/obligations/schemas.py

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from fleet_settlement.obligations.models import ELIGIBLE_STATES, ObligationClass, ObligationState


def obligation_period_key(obligation_class: ObligationClass, index: int) -> str:
    """Ledger period key of an obligation, e.g. EMI-003 or RENT-012."""
    return f"{ObligationClass(obligation_class).value.upper()}-{index:03d}"


class ObligationView(BaseModel):
    """Read-only snapshot of an obligation classified against a given day."""
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    reference_id: str
    vehicle_id: str
    obligation_class: ObligationClass
    index: int
    due_date: date
    period_end: date
    amount: Decimal
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    state: ObligationState
    days_until_due: int
    days_past_due: int
    suggested_penalty: Decimal = Decimal("0")

    @property
    def eligible(self) -> bool:
        return not self.is_paid and self.state in ELIGIBLE_STATES

    @property
    def period_key(self) -> str:
        return obligation_period_key(self.obligation_class, self.index)


class RedirectedSettlement(BaseModel):
    """
    Signals that a settlement aimed at a non-oldest obligation was applied
    to the oldest eligible one instead.
    """
    model_config = ConfigDict(frozen=True)

    vehicle_id: str
    obligation_class: ObligationClass
    requested_index: int
    settled_index: int


class ObligationQueueResponse(BaseModel):
    """Classified obligation queue of one vehicle and class."""
    vehicle_id: str
    obligation_class: ObligationClass
    obligations: List[ObligationView]
    eligible_indices: List[int]
    total_overdue: Decimal
    total_due_soon: Decimal
    paid_count: int
    total_count: int


class RegistrationResponse(BaseModel):
    vehicle_id: str
    emi_count: int
    rent_count: int
