### fleet_settlement/exports/builders/ledger_builder.py

"""
Ledger Export Query Builders

Builds the ledger transaction export query and flattens rows for writing.
"""

from datetime import datetime
from typing import Dict

from sqlalchemy.orm import Query, Session

from fleet_settlement.ledger.models import LedgerTransaction, TransactionStatus, TransactionType
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)

LEDGER_TRANSACTION_HEADERS = [
    "Transaction ID",
    "Vehicle ID",
    "Type",
    "Period",
    "Amount",
    "Penalty",
    "Status",
    "Description",
    "Batch ID",
    "Reverses",
    "Completed At",
]


def build_ledger_transactions_export_query(db: Session, filters: Dict) -> Query:
    """
    Build Ledger Transactions export query.

    Args:
        db: Database session
        filters: Dictionary of filter parameters

    Returns:
        SQLAlchemy Query object ready for streaming
    """
    logger.info("Building ledger transactions export query with %s filters", len(filters))

    query = db.query(LedgerTransaction)

    entity_id = filters.get("entity_id")
    if entity_id:
        query = query.filter(LedgerTransaction.entity_id == entity_id)

    transaction_type = filters.get("transaction_type")
    if transaction_type:
        query = query.filter(LedgerTransaction.transaction_type == TransactionType(transaction_type))

    status = filters.get("status")
    if status:
        query = query.filter(LedgerTransaction.status == TransactionStatus(status))

    batch_id = filters.get("batch_id")
    if batch_id:
        query = query.filter(LedgerTransaction.batch_id == batch_id)

    start = filters.get("start_date")
    if start:
        query = query.filter(LedgerTransaction.created_at >= datetime.combine(start, datetime.min.time()))

    end = filters.get("end_date")
    if end:
        query = query.filter(LedgerTransaction.created_at <= datetime.combine(end, datetime.max.time()))

    return query.order_by(LedgerTransaction.id.asc())


def transform_ledger_transaction_row(transaction: LedgerTransaction) -> Dict:
    """Transform LedgerTransaction ORM object to dictionary for export."""

    return {
        "Transaction ID": transaction.transaction_id,
        "Vehicle ID": transaction.entity_id,
        "Type": transaction.transaction_type.value,
        "Period": transaction.period_key,
        "Amount": transaction.amount,
        "Penalty": transaction.penalty_amount,
        "Status": transaction.status.value,
        "Description": transaction.description or "",
        "Batch ID": transaction.batch_id or "",
        "Reverses": transaction.reverses_transaction_id or "",
        "Completed At": transaction.completed_at,
    }
