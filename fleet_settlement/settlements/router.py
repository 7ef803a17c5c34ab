# fleet_settlement/settlements/router.py

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from fleet_settlement.core.db import get_db
from fleet_settlement.ledger.exceptions import DuplicateSettlementError, LedgerError
from fleet_settlement.obligations.exceptions import (
    ObligationError,
    ObligationNotEligibleError,
    ObligationNotFoundError,
)
from fleet_settlement.settlements.exceptions import SettlementError
from fleet_settlement.settlements.providers import FinancialDataProvider, get_data_provider
from fleet_settlement.settlements.schemas import (
    AsyncBatchResponse,
    BatchRequest,
    BatchResult,
    ObligationSettlementResult,
    SingleSettlementRequest,
)
from fleet_settlement.settlements.services import SettlementBatchExecutor
from fleet_settlement.settlements.tasks import execute_settlement_batch_task
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/settlements", tags=["Settlements"])


def executor_dependency(
    db: Session = Depends(get_db),
    provider: FinancialDataProvider = Depends(get_data_provider),
) -> SettlementBatchExecutor:
    return SettlementBatchExecutor(db, provider)


@router.post("/batches", response_model=BatchResult, summary="Execute a Settlement Batch")
def execute_batch(
    request: BatchRequest,
    executor: SettlementBatchExecutor = Depends(executor_dependency),
):
    """
    Applies the instructions in order. Failed items are reported in the
    result and do not undo or block the others.
    """
    try:
        return executor.execute(request.instructions, today=request.today)
    except Exception as e:
        logger.error("Unexpected error executing settlement batch: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while executing the settlement batch.",
        ) from e


@router.post(
    "/batches/async",
    response_model=AsyncBatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a Settlement Batch",
)
def queue_batch(request: BatchRequest):
    """
    Queues the batch on the background worker and returns the task id.
    The task id doubles as the batch id written on the ledger.
    """
    try:
        task = execute_settlement_batch_task.delay(
            [i.model_dump(mode="json", by_alias=True) for i in request.instructions],
            request.today.isoformat() if request.today else None,
        )
        logger.info("Queued settlement batch", task_id=task.id, items=len(request.instructions))
        return AsyncBatchResponse(task_id=task.id)
    except Exception as e:
        logger.error("Failed to queue settlement batch: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="The settlement worker is unavailable.",
        ) from e


@router.post(
    "/obligations",
    response_model=ObligationSettlementResult,
    status_code=status.HTTP_201_CREATED,
    summary="Settle a Single Obligation",
)
def settle_single_obligation(
    request: SingleSettlementRequest,
    executor: SettlementBatchExecutor = Depends(executor_dependency),
):
    """
    Settles one obligation. If an older one in the same queue is still
    unpaid, that one is settled instead and the response says so.
    """
    try:
        return executor.settle_obligation(
            request.vehicle_id,
            request.obligation_class,
            request.index,
            penalty=request.penalty,
            today=request.today,
        )
    except ObligationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (DuplicateSettlementError, ObligationNotEligibleError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except (ObligationError, LedgerError, SettlementError) as e:
        logger.warning("Settlement business logic error: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except Exception as e:
        logger.error("Unexpected error settling obligation: %s", e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred while settling the obligation.",
        ) from e
