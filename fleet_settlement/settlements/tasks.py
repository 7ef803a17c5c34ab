### fleet_settlement/settlements/tasks.py

"""
Celery Tasks for Settlement Batches

Runs a settlement batch in the background so the API can return as soon
as the batch is queued. The batch itself is processed exactly as the
synchronous endpoint does it: sequentially, one database transaction per
instruction.
"""

from datetime import date
from typing import List, Optional

from celery import shared_task
from sqlalchemy.exc import OperationalError

from fleet_settlement.core.db import SessionLocal
from fleet_settlement.settlements.providers import get_data_provider
from fleet_settlement.settlements.schemas import SettlementInstruction
from fleet_settlement.settlements.services import SettlementBatchExecutor
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)


@shared_task(
    name="settlements.execute_settlement_batch",
    bind=True,
    autoretry_for=(OperationalError,),
    retry_kwargs={"max_retries": 3, "countdown": 30},
    retry_backoff=True,
)
def execute_settlement_batch_task(self, instructions: List[dict], today: Optional[str] = None, batch_id: Optional[str] = None):
    """
    Executes a settlement batch.

    Args:
        instructions: Settlement instructions in their wire form
        today: Business date as ISO string; defaults to the worker's today
        batch_id: Batch id to record on the ledger; defaults to the task id

    Returns:
        The BatchResult as a JSON-compatible dict
    """
    logger.info("Starting settlement batch task", task_id=self.request.id, items=len(instructions))
    db = SessionLocal()
    try:
        parsed = [SettlementInstruction.model_validate(item) for item in instructions]
        executor = SettlementBatchExecutor(db, get_data_provider())
        result = executor.execute(
            parsed,
            today=date.fromisoformat(today) if today else None,
            batch_id=batch_id or self.request.id,
        )
        return result.model_dump(mode="json")
    finally:
        db.close()
