# fleet_settlement/ledger/repository.py

from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from fleet_settlement.ledger.exceptions import BalanceConflictError, TransactionNotFoundError
from fleet_settlement.ledger.models import (
    BalanceScope,
    CashBalance,
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
)
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.utils.money import ZERO, to_decimal

logger = get_logger(__name__)


class LedgerRepository:
    """
    Data Access Layer for the transaction ledger.
    Handles all database interactions for LedgerTransaction and CashBalance.
    The caller is responsible for committing the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def create_transaction(self, transaction: LedgerTransaction) -> LedgerTransaction:
        self.db.add(transaction)
        self.db.flush()
        logger.info(
            "Created ledger transaction",
            transaction_id=transaction.transaction_id,
            entity_id=transaction.entity_id,
            transaction_type=transaction.transaction_type.value,
            period_key=transaction.period_key,
            status=transaction.status.value,
            amount=str(transaction.amount),
        )
        return transaction

    def get_by_transaction_id(self, transaction_id: str) -> LedgerTransaction:
        """
        Fetches a single transaction by its public id.
        Raises TransactionNotFoundError if not found.
        """
        stmt = select(LedgerTransaction).where(LedgerTransaction.transaction_id == transaction_id)
        transaction = self.db.execute(stmt).scalar_one_or_none()
        if not transaction:
            raise TransactionNotFoundError(transaction_id=transaction_id)
        return transaction

    def find_matching(
        self,
        entity_id: str,
        transaction_type: TransactionType,
        period_keys: Iterable[str],
    ) -> List[LedgerTransaction]:
        """All transactions of an entity and type for the given periods, in insertion order."""
        keys = list(period_keys)
        if not keys:
            return []
        stmt = (
            select(LedgerTransaction)
            .where(
                LedgerTransaction.entity_id == entity_id,
                LedgerTransaction.transaction_type == transaction_type,
                LedgerTransaction.period_key.in_(keys),
            )
            .order_by(LedgerTransaction.id.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_transactions(
        self,
        entity_id: Optional[str] = None,
        transaction_type: Optional[TransactionType] = None,
        period_key: Optional[str] = None,
        status: Optional[TransactionStatus] = None,
        batch_id: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[LedgerTransaction], int]:
        """
        Lists transactions with optional filters, newest first.
        Returns the page of rows and the total matching count.
        """
        stmt = select(LedgerTransaction)
        if entity_id:
            stmt = stmt.where(LedgerTransaction.entity_id == entity_id)
        if transaction_type:
            stmt = stmt.where(LedgerTransaction.transaction_type == transaction_type)
        if period_key:
            stmt = stmt.where(LedgerTransaction.period_key == period_key)
        if status:
            stmt = stmt.where(LedgerTransaction.status == status)
        if batch_id:
            stmt = stmt.where(LedgerTransaction.batch_id == batch_id)

        total = self.db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

        stmt = stmt.order_by(LedgerTransaction.id.desc())
        if per_page:
            stmt = stmt.offset((page - 1) * per_page).limit(per_page)
        return list(self.db.execute(stmt).scalars().all()), total

    def iter_transactions(self, entity_id: Optional[str] = None, batch_size: int = 500):
        """Streams transactions oldest first without loading them all at once."""
        stmt = select(LedgerTransaction).order_by(LedgerTransaction.id.asc())
        if entity_id:
            stmt = stmt.where(LedgerTransaction.entity_id == entity_id)
        yield from self.db.execute(stmt.execution_options(yield_per=batch_size)).scalars()

    # --- Cash balances ---

    def get_balance(self, scope: BalanceScope, scope_key: str) -> Decimal:
        stmt = select(CashBalance.balance).where(
            CashBalance.scope == scope, CashBalance.scope_key == scope_key
        )
        value = self.db.execute(stmt).scalar_one_or_none()
        return to_decimal(value) if value is not None else ZERO

    def _read_versioned(self, scope: BalanceScope, scope_key: str) -> Tuple[Decimal, int]:
        stmt = select(CashBalance.balance, CashBalance.version).where(
            CashBalance.scope == scope, CashBalance.scope_key == scope_key
        )
        row = self.db.execute(stmt).one_or_none()
        if row is None:
            self.db.add(CashBalance(scope=scope, scope_key=scope_key, balance=ZERO, version=0))
            self.db.flush()
            return ZERO, 0
        return to_decimal(row.balance), row.version

    def apply_delta(
        self,
        scope: BalanceScope,
        scope_key: str,
        delta: Decimal,
        max_retries: int,
    ) -> Decimal:
        """
        Adds `delta` to a balance with a compare-and-swap on its version.
        Re-reads and retries when another writer got there first.
        """
        for attempt in range(1, max_retries + 1):
            current, version = self._read_versioned(scope, scope_key)
            new_balance = current + delta
            stmt = (
                update(CashBalance)
                .where(
                    CashBalance.scope == scope,
                    CashBalance.scope_key == scope_key,
                    CashBalance.version == version,
                )
                .values(balance=new_balance, version=version + 1)
            )
            result = self.db.execute(stmt)
            if result.rowcount == 1:
                return new_balance
            logger.warning(
                "Cash balance version conflict, retrying",
                scope=scope.value, scope_key=scope_key, attempt=attempt,
            )
        raise BalanceConflictError(scope.value, scope_key, max_retries)
