# fleet_settlement/ledger/router.py

import math
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from fleet_settlement.core.db import get_db
from fleet_settlement.exports.builders.ledger_builder import (
    LEDGER_TRANSACTION_HEADERS,
    build_ledger_transactions_export_query,
    transform_ledger_transaction_row,
)
from fleet_settlement.exports.streaming_service import MEDIA_TYPES, StreamingExportService
from fleet_settlement.ledger.exceptions import (
    InvalidLedgerOperationError,
    LedgerError,
    TransactionNotFoundError,
)
from fleet_settlement.ledger.models import TransactionStatus, TransactionType
from fleet_settlement.ledger.schemas import (
    CashBalanceResponse,
    LedgerStatusResponse,
    LedgerTransactionResponse,
    PaginatedLedgerTransactionResponse,
    ReversalRequest,
)
from fleet_settlement.ledger.services import TransactionLedger, get_transaction_ledger
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ledger", tags=["Ledger"])


def ledger_dependency(db: Session = Depends(get_db)) -> TransactionLedger:
    return get_transaction_ledger(db)


@router.get(
    "/transactions",
    response_model=PaginatedLedgerTransactionResponse,
    summary="List Ledger Transactions",
)
def list_ledger_transactions(
    page: int = Query(1, ge=1, description="Page number for pagination."),
    per_page: int = Query(50, ge=1, le=500, description="Items per page."),
    entity_id: Optional[str] = Query(None, description="Filter by vehicle ID."),
    transaction_type: Optional[TransactionType] = Query(None, description="Filter by transaction type."),
    period_key: Optional[str] = Query(None, description="Filter by period key."),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status", description="Filter by status."),
    batch_id: Optional[str] = Query(None, description="Filter by settlement batch."),
    ledger: TransactionLedger = Depends(ledger_dependency),
):
    """
    Retrieves a paginated, filtered list of ledger transactions, newest first.
    """
    try:
        transactions, total_items = ledger.list_transactions(
            entity_id=entity_id,
            transaction_type=transaction_type,
            period_key=period_key,
            status=status_filter,
            batch_id=batch_id,
            page=page,
            per_page=per_page,
        )
        return PaginatedLedgerTransactionResponse(
            items=[LedgerTransactionResponse.model_validate(t) for t in transactions],
            total_items=total_items,
            page=page,
            per_page=per_page,
            total_pages=math.ceil(total_items / per_page) if total_items else 0,
        )
    except LedgerError as e:
        logger.warning("Ledger business logic error in list_ledger_transactions: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.error("Unexpected error in list_ledger_transactions: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while fetching ledger transactions.",
        ) from e


@router.get("/status", response_model=LedgerStatusResponse, summary="Derived Settlement Status")
def get_ledger_status(
    entity_id: str = Query(..., description="Vehicle ID."),
    transaction_type: TransactionType = Query(..., description="Transaction type."),
    period_keys: List[str] = Query(..., description="Period keys to resolve."),
    computed_total: Optional[float] = Query(None, description="Computed payable total for these periods."),
    ledger: TransactionLedger = Depends(ledger_dependency),
):
    """
    Resolves the current status of each period from its latest transaction
    and, given a computed total, what is still outstanding.
    """
    try:
        outstanding = None
        if computed_total is not None:
            outstanding = ledger.outstanding(entity_id, transaction_type, period_keys, computed_total)
        return LedgerStatusResponse(
            entity_id=entity_id,
            transaction_type=transaction_type,
            statuses=ledger.statuses(entity_id, transaction_type, period_keys),
            settled_amount=ledger.settled_amount(entity_id, transaction_type, period_keys),
            outstanding=outstanding,
        )
    except Exception as e:
        logger.error("Unexpected error in get_ledger_status: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while resolving ledger status.",
        ) from e


@router.post(
    "/reversals",
    response_model=LedgerTransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reverse a Waterfall Payment",
)
def reverse_transaction(
    request: ReversalRequest,
    ledger: TransactionLedger = Depends(ledger_dependency),
):
    """
    Appends a reversal for the latest completed payment of a waterfall
    period and returns its cash to the vehicle and company balances.
    """
    try:
        reversal = ledger.reverse(
            request.entity_id, request.transaction_type, request.period_key, reason=request.reason
        )
        return LedgerTransactionResponse.model_validate(reversal)
    except TransactionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidLedgerOperationError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except LedgerError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.error("Error reversing ledger transaction: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while reversing the transaction.",
        ) from e


@router.get("/cash-balances/{vehicle_id}", response_model=CashBalanceResponse, summary="Cash In Hand")
def get_cash_balances(
    vehicle_id: str,
    ledger: TransactionLedger = Depends(ledger_dependency),
):
    return CashBalanceResponse(
        vehicle_id=vehicle_id,
        vehicle_balance=ledger.get_vehicle_balance(vehicle_id),
        company_balance=ledger.get_company_balance(),
    )


@router.get("/export", summary="Export Ledger Transactions")
def export_ledger_transactions(
    export_format: str = Query("excel", enum=["excel", "csv"], alias="format"),
    entity_id: Optional[str] = Query(None),
    transaction_type: Optional[TransactionType] = Query(None),
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    batch_id: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
):
    """
    Exports filtered ledger transactions to Excel or CSV.
    """
    try:
        filters = {
            "entity_id": entity_id,
            "transaction_type": transaction_type,
            "status": status_filter,
            "batch_id": batch_id,
            "start_date": start_date,
            "end_date": end_date,
        }
        query = build_ledger_transactions_export_query(db, filters)
        filename = f"ledger_transactions_{date.today()}"

        filepath, count = StreamingExportService().stream_query_to_file(
            query,
            filename,
            export_format,
            transform_ledger_transaction_row,
            headers=LEDGER_TRANSACTION_HEADERS,
        )
        if count == 0:
            raise ValueError("No ledger data available for export with the given filters.")

        return FileResponse(
            filepath,
            media_type=MEDIA_TYPES[export_format],
            filename=filepath.rsplit("/", 1)[-1],
        )
    except ValueError as e:
        logger.warning("Ledger export rejected: %s", e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except Exception as e:
        logger.error("Error exporting ledger data: %s", e, exc_info=True)
        raise HTTPException(
            status_code=500,
            detail="An error occurred during the export process.",
        ) from e
