# fleet_settlement/ledger/models.py

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from fleet_settlement.core.db import AuditMixin, Base, utcnow
from fleet_settlement.ledger.exceptions import InvalidLedgerOperationError


class TransactionType(str, PyEnum):
    """What a ledger transaction settles."""
    GST = "gst"
    SERVICE_CHARGE = "serviceCharge"
    PARTNER_SHARE = "partnerShare"
    OWNER_PAYMENT = "ownerPayment"
    EMI = "emi"
    RENT = "rent"


WATERFALL_TYPES = frozenset({
    TransactionType.GST,
    TransactionType.SERVICE_CHARGE,
    TransactionType.PARTNER_SHARE,
    TransactionType.OWNER_PAYMENT,
})

# +1 is a collection into cash in hand, -1 a payout from it
CASH_FLOW_SIGN = {
    TransactionType.RENT: 1,
    # Service charge is company income, so it is collected rather than paid out
    TransactionType.SERVICE_CHARGE: 1,
    TransactionType.GST: -1,
    TransactionType.PARTNER_SHARE: -1,
    TransactionType.OWNER_PAYMENT: -1,
    TransactionType.EMI: -1,
}


class TransactionStatus(str, PyEnum):
    """Status written on a ledger transaction."""
    COMPLETED = "completed"
    REVERSED = "reversed"


class LedgerStatus(str, PyEnum):
    """Derived settlement state of an (entity, type, period) tuple."""
    UNPAID = "unpaid"
    COMPLETED = "completed"
    REVERSED = "reversed"


class BalanceScope(str, PyEnum):
    VEHICLE = "vehicle"
    COMPANY = "company"


COMPANY_BALANCE_KEY = "main"


class LedgerTransaction(Base):
    """
    One immutable settlement entry. Corrections are new entries: a
    reversal is written as a `reversed` transaction for the same
    (entity, type, period) pointing at the entry it reverses.
    """
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        Index("ix_ledger_transactions_lookup", "entity_id", "transaction_type", "period_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)

    entity_id: Mapped[str] = mapped_column(String(64), index=True, comment="Vehicle the transaction belongs to")
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType), index=True)
    period_key: Mapped[str] = mapped_column(String(20), comment="YYYY-MM for waterfall months, EMI-NNN / RENT-NNN for obligations")

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    penalty_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))

    status: Mapped[TransactionStatus] = mapped_column(Enum(TransactionStatus), index=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    batch_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    reverses_transaction_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def total_amount(self) -> Decimal:
        return (self.amount or Decimal("0")) + (self.penalty_amount or Decimal("0"))

    def __repr__(self) -> str:
        return (
            f"<LedgerTransaction {self.transaction_id} {self.entity_id} "
            f"{self.transaction_type.value} {self.period_key} {self.status.value}>"
        )


@event.listens_for(LedgerTransaction, "before_update")
def _refuse_transaction_update(mapper, connection, target):
    raise InvalidLedgerOperationError(
        f"Ledger transaction '{target.transaction_id}' is append-only and cannot be modified."
    )


@event.listens_for(LedgerTransaction, "before_delete")
def _refuse_transaction_delete(mapper, connection, target):
    raise InvalidLedgerOperationError(
        f"Ledger transaction '{target.transaction_id}' is append-only and cannot be deleted."
    )


class CashBalance(Base, AuditMixin):
    """
    Running cash in hand of one vehicle, or of the whole company.
    Updated with a version check so concurrent writers cannot lose updates.
    """
    __tablename__ = "cash_balances"
    __table_args__ = (
        UniqueConstraint("scope", "scope_key", name="uq_cash_balance_scope"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    scope: Mapped[BalanceScope] = mapped_column(Enum(BalanceScope))
    scope_key: Mapped[str] = mapped_column(String(64), comment="Vehicle id, or 'main' for the company")
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
