# fleet_settlement/ledger/services.py

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet_settlement.core.config import settings
from fleet_settlement.core.db import utcnow
from fleet_settlement.ledger.exceptions import (
    DuplicateSettlementError,
    InvalidLedgerOperationError,
    LedgerError,
    TransactionNotFoundError,
)
from fleet_settlement.ledger.models import (
    CASH_FLOW_SIGN,
    COMPANY_BALANCE_KEY,
    WATERFALL_TYPES,
    BalanceScope,
    LedgerStatus,
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
)
from fleet_settlement.ledger.repository import LedgerRepository
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.utils.money import ZERO, round_money, to_decimal

logger = get_logger(__name__)


def get_transaction_ledger(db: Session) -> "TransactionLedger":
    return TransactionLedger(LedgerRepository(db))


def _recency_key(transaction: LedgerTransaction) -> Tuple[datetime, int]:
    """
    Orders matching transactions by completion time. A missing completion
    time sorts first; ties fall back to insertion order.
    """
    completed_at = transaction.completed_at
    if completed_at is None:
        completed_at = datetime.min
    elif completed_at.tzinfo is not None:
        completed_at = completed_at.astimezone(timezone.utc).replace(tzinfo=None)
    return completed_at, transaction.id or 0


class TransactionLedger:
    """
    Business Logic Layer for the append-only settlement ledger.

    The paid state of an (entity, type, period) tuple is never stored. It
    is the status of the most recently completed matching transaction, or
    unpaid when nothing matches.

    `append` and `apply_balance_delta` only flush, so a caller can group a
    ledger write and its cash movement into one database transaction.
    `reverse` is a complete operation and commits.
    """

    def __init__(self, repo: LedgerRepository, max_retries: Optional[int] = None):
        self.repo = repo
        self.max_retries = settings.balance_update_max_retries if max_retries is None else max_retries

    # --- Writes ---

    def append(
        self,
        entity_id: str,
        transaction_type: TransactionType,
        amount: Decimal,
        period_key: str,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        penalty_amount: Decimal = ZERO,
        description: Optional[str] = None,
        batch_id: Optional[str] = None,
        reverses_transaction_id: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> str:
        """Writes a new transaction and returns its transaction id."""
        transaction_type = TransactionType(transaction_type)
        status = TransactionStatus(status)
        amount = round_money(amount)
        penalty_amount = round_money(penalty_amount)
        if amount < 0 or penalty_amount < 0:
            raise InvalidLedgerOperationError("Ledger amounts must be non-negative.")

        if status == TransactionStatus.COMPLETED:
            if self.current_status(entity_id, transaction_type, period_key) == LedgerStatus.COMPLETED:
                raise DuplicateSettlementError(entity_id, transaction_type.value, period_key)

        transaction = LedgerTransaction(
            transaction_id=str(uuid.uuid4()),
            entity_id=entity_id,
            transaction_type=transaction_type,
            period_key=period_key,
            amount=amount,
            penalty_amount=penalty_amount,
            status=status,
            description=description,
            batch_id=batch_id,
            reverses_transaction_id=reverses_transaction_id,
            created_at=utcnow(),
            completed_at=completed_at or utcnow(),
        )
        self.repo.create_transaction(transaction)
        return transaction.transaction_id

    @staticmethod
    def cash_delta(transaction_type: TransactionType, amount: Decimal) -> Decimal:
        """Signed cash movement a transaction of this type causes."""
        return CASH_FLOW_SIGN[TransactionType(transaction_type)] * round_money(amount)

    def apply_balance_delta(self, vehicle_id: str, delta: Decimal) -> Tuple[Decimal, Decimal]:
        """
        Moves the vehicle's and the company's cash in hand by the same
        delta. Returns the new (vehicle, company) balances.
        """
        delta = round_money(delta)
        vehicle_balance = self.repo.apply_delta(BalanceScope.VEHICLE, vehicle_id, delta, self.max_retries)
        company_balance = self.repo.apply_delta(
            BalanceScope.COMPANY, COMPANY_BALANCE_KEY, delta, self.max_retries
        )
        logger.info(
            "Applied cash balance delta",
            vehicle_id=vehicle_id,
            delta=str(delta),
            vehicle_balance=str(vehicle_balance),
            company_balance=str(company_balance),
        )
        return vehicle_balance, company_balance

    def reverse(
        self,
        entity_id: str,
        transaction_type: TransactionType,
        period_key: str,
        reason: Optional[str] = None,
    ) -> LedgerTransaction:
        """
        Undoes the latest completed waterfall payment of a period by
        appending a `reversed` entry and returning its cash to the balances.
        """
        transaction_type = TransactionType(transaction_type)
        if transaction_type not in WATERFALL_TYPES:
            raise InvalidLedgerOperationError(
                f"Only waterfall payments can be reversed, not '{transaction_type.value}'."
            )

        latest = self.latest_transaction(entity_id, transaction_type, period_key)
        if latest is None:
            raise TransactionNotFoundError(entity_id=entity_id, period_key=period_key)
        if latest.status != TransactionStatus.COMPLETED:
            raise InvalidLedgerOperationError(
                f"{transaction_type.value} for '{entity_id}' period '{period_key}' is not completed."
            )

        try:
            transaction_id = self.append(
                entity_id,
                transaction_type,
                latest.amount,
                period_key,
                status=TransactionStatus.REVERSED,
                description=reason or f"Reversal of {latest.transaction_id}",
                reverses_transaction_id=latest.transaction_id,
            )
            self.apply_balance_delta(entity_id, -self.cash_delta(transaction_type, latest.amount))
            self.repo.db.commit()
        except SQLAlchemyError as e:
            self.repo.db.rollback()
            logger.error("Failed to reverse ledger transaction", entity_id=entity_id, error=str(e), exc_info=True)
            raise LedgerError(f"Failed to reverse transaction: {e}") from e

        logger.info(
            "Reversed ledger transaction",
            entity_id=entity_id,
            transaction_type=transaction_type.value,
            period_key=period_key,
            reversed_transaction_id=latest.transaction_id,
            transaction_id=transaction_id,
        )
        return self.repo.get_by_transaction_id(transaction_id)

    # --- Derived state ---

    def latest_transaction(
        self, entity_id: str, transaction_type: TransactionType, period_key: str
    ) -> Optional[LedgerTransaction]:
        matching = self.repo.find_matching(entity_id, TransactionType(transaction_type), [period_key])
        if not matching:
            return None
        return max(matching, key=_recency_key)

    def _latest_by_key(
        self, entity_id: str, transaction_type: TransactionType, period_keys: Iterable[str]
    ) -> Dict[str, LedgerTransaction]:
        latest: Dict[str, LedgerTransaction] = {}
        for transaction in self.repo.find_matching(entity_id, TransactionType(transaction_type), period_keys):
            current = latest.get(transaction.period_key)
            if current is None or _recency_key(transaction) > _recency_key(current):
                latest[transaction.period_key] = transaction
        return latest

    def current_status(self, entity_id: str, transaction_type: TransactionType, period_key: str) -> LedgerStatus:
        latest = self.latest_transaction(entity_id, transaction_type, period_key)
        if latest is None:
            return LedgerStatus.UNPAID
        return LedgerStatus(latest.status.value)

    def statuses(
        self, entity_id: str, transaction_type: TransactionType, period_keys: Iterable[str]
    ) -> Dict[str, LedgerStatus]:
        keys = list(period_keys)
        latest = self._latest_by_key(entity_id, transaction_type, keys)
        return {
            key: LedgerStatus(latest[key].status.value) if key in latest else LedgerStatus.UNPAID
            for key in keys
        }

    def settled_amount(
        self, entity_id: str, transaction_type: TransactionType, period_keys: Iterable[str]
    ) -> Decimal:
        latest = self._latest_by_key(entity_id, transaction_type, period_keys)
        return sum(
            (to_decimal(t.amount) for t in latest.values() if t.status == TransactionStatus.COMPLETED),
            ZERO,
        )

    def outstanding(
        self,
        entity_id: str,
        transaction_type: TransactionType,
        period_keys: Iterable[str],
        computed_total: Decimal,
    ) -> Decimal:
        """What is still payable once completed periods are taken off."""
        settled = self.settled_amount(entity_id, transaction_type, period_keys)
        return max(ZERO, round_money(computed_total) - settled)

    # --- Reads ---

    def get_vehicle_balance(self, vehicle_id: str) -> Decimal:
        return self.repo.get_balance(BalanceScope.VEHICLE, vehicle_id)

    def get_company_balance(self) -> Decimal:
        return self.repo.get_balance(BalanceScope.COMPANY, COMPANY_BALANCE_KEY)

    def list_transactions(self, **filters) -> Tuple[List[LedgerTransaction], int]:
        return self.repo.list_transactions(**filters)
