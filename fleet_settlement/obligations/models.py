# fleet_settlement/obligations/models.py

from datetime import date, datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from fleet_settlement.core.db import AuditMixin, Base


class ObligationClass(str, PyEnum):
    """The two installment queues a vehicle can carry."""
    EMI = "emi"
    RENT = "rent"


class ObligationState(str, PyEnum):
    """Classification of an obligation relative to today."""
    FUTURE = "FUTURE"
    DUE_SOON = "DUE_SOON"
    OVERDUE = "OVERDUE"
    PAID = "PAID"


ELIGIBLE_STATES = frozenset({ObligationState.DUE_SOON, ObligationState.OVERDUE})


class Obligation(Base, AuditMixin):
    """
    A single schedulable payable unit: one loan EMI installment or one rent
    week. Rows are created when the loan or assignment is registered, are
    only ever flipped to paid by a successful settlement, and are never
    deleted.
    """
    __tablename__ = "obligations"
    __table_args__ = (
        UniqueConstraint("vehicle_id", "obligation_class", "index", name="uq_obligation_queue_position"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    reference_id: Mapped[str] = mapped_column(
        String(100), unique=True, index=True,
        comment="Stable reference, e.g. VEH-1001-EMI-003",
    )

    # --- Queue Position ---
    vehicle_id: Mapped[str] = mapped_column(String(64), index=True)
    obligation_class: Mapped[ObligationClass] = mapped_column(Enum(ObligationClass), index=True)
    index: Mapped[int] = mapped_column(Integer, comment="Position in the class's due-date ordered queue")

    # --- Schedule ---
    due_date: Mapped[date] = mapped_column(Date, comment="EMI due date or rent week start")
    period_end: Mapped[date] = mapped_column(Date, comment="Rent week end; equals due_date for EMIs")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    # --- Settlement ---
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    penalty_paid: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    settled_transaction_id: Mapped[Optional[str]] = mapped_column(
        String(36), nullable=True, comment="Ledger transaction that settled this obligation",
    )

    def __repr__(self) -> str:
        return (
            f"<Obligation {self.vehicle_id} {self.obligation_class.value}#{self.index} "
            f"due={self.due_date} paid={self.is_paid}>"
        )
