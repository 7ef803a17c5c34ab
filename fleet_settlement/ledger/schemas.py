# fleet_settlement/ledger/schemas.py

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from fleet_settlement.ledger.models import LedgerStatus, TransactionStatus, TransactionType


class LedgerTransactionResponse(BaseModel):
    """Response schema for a single ledger transaction."""
    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    entity_id: str
    transaction_type: TransactionType
    period_key: str
    amount: Decimal
    penalty_amount: Decimal
    status: TransactionStatus
    description: Optional[str] = None
    batch_id: Optional[str] = None
    reverses_transaction_id: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None


class PaginatedLedgerTransactionResponse(BaseModel):
    items: List[LedgerTransactionResponse]
    total_items: int
    page: int
    per_page: int
    total_pages: int


class LedgerStatusResponse(BaseModel):
    """Derived status of each requested period, plus what remains payable."""
    entity_id: str
    transaction_type: TransactionType
    statuses: Dict[str, LedgerStatus]
    settled_amount: Decimal
    outstanding: Optional[Decimal] = None


class ReversalRequest(BaseModel):
    """Request to undo the latest completed payment of a waterfall period."""
    entity_id: str = Field(..., alias="entityId")
    transaction_type: TransactionType = Field(..., alias="transactionType")
    period_key: str = Field(..., alias="periodKey", examples=["2025-03"])
    reason: Optional[str] = Field(None, max_length=255)

    model_config = ConfigDict(populate_by_name=True)


class CashBalanceResponse(BaseModel):
    vehicle_id: str
    vehicle_balance: Decimal
    company_balance: Decimal
