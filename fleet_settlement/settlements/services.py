# fleet_settlement/settlements/services.py

import threading
import uuid
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from fleet_settlement.core.db import utcnow
from fleet_settlement.ledger.models import TransactionType
from fleet_settlement.ledger.repository import LedgerRepository
from fleet_settlement.ledger.services import TransactionLedger
from fleet_settlement.obligations.models import ObligationClass
from fleet_settlement.obligations.repository import ObligationRepository
from fleet_settlement.obligations.services import ObligationScheduler
from fleet_settlement.penalties.services import PenaltyCalculator
from fleet_settlement.periods.schemas import Period, month_key
from fleet_settlement.periods.services import PeriodAggregator
from fleet_settlement.settlements.exceptions import VehicleProfileNotFoundError
from fleet_settlement.settlements.planner import plan_obligation_settlement, plan_waterfall_payment
from fleet_settlement.settlements.providers import FinancialDataProvider
from fleet_settlement.settlements.schemas import (
    BatchItemResult,
    BatchResult,
    ObligationSettlementResult,
    SettleObligationsCommand,
    SettlementCommand,
    SettlementInstruction,
    SettlementPlan,
)
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.waterfall.schemas import PeriodWaterfall
from fleet_settlement.waterfall.services import WaterfallCalculator

logger = get_logger(__name__)


class CancellationToken:
    """Thread-safe flag a caller can set to stop a running batch between items."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class SettlementBatchExecutor:
    """
    Applies settlement instructions one at a time.

    Every instruction is its own database transaction: it commits when it
    succeeds and rolls back when anything in it fails, and the batch moves
    on either way. Later items read what earlier items wrote, so an
    obligation settled by item 1 is already paid when item 2 is planned.
    """

    def __init__(
        self,
        db: Session,
        provider: FinancialDataProvider,
        scheduler: Optional[ObligationScheduler] = None,
        ledger: Optional[TransactionLedger] = None,
        aggregator: Optional[PeriodAggregator] = None,
        calculator: Optional[WaterfallCalculator] = None,
        penalties: Optional[PenaltyCalculator] = None,
    ):
        self.db = db
        self.provider = provider
        self.penalties = penalties or PenaltyCalculator()
        self.obligations = ObligationRepository(db)
        self.scheduler = scheduler or ObligationScheduler(self.obligations, penalty_calculator=self.penalties)
        self.ledger = ledger or TransactionLedger(LedgerRepository(db))
        self.aggregator = aggregator or PeriodAggregator()
        self.calculator = calculator or WaterfallCalculator()

    def execute(
        self,
        instructions: Sequence[SettlementInstruction],
        cancel_token: Optional[CancellationToken] = None,
        today: Optional[date] = None,
        batch_id: Optional[str] = None,
    ) -> BatchResult:
        today = today or date.today()
        result = BatchResult(batch_id=batch_id or str(uuid.uuid4()))
        logger.info("Starting settlement batch", batch_id=result.batch_id, items=len(instructions))

        for position, instruction in enumerate(instructions):
            if cancel_token is not None and cancel_token.cancelled:
                result.cancelled = True
                logger.warning(
                    "Settlement batch cancelled",
                    batch_id=result.batch_id,
                    processed=position,
                    remaining=len(instructions) - position,
                )
                break

            item = BatchItemResult(position=position, entity_id=instruction.entity_id, success=False)
            try:
                command = instruction.to_command()
                plan = self.plan(command, today)
                item.transaction_ids = self._apply(plan, result.batch_id)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                item.error = str(e)
                item.error_type = type(e).__name__
                result.failure_count += 1
                logger.error(
                    "Settlement item failed",
                    batch_id=result.batch_id,
                    position=position,
                    entity_id=instruction.entity_id,
                    error=str(e),
                    error_type=item.error_type,
                )
            else:
                item.success = True
                item.redirects = list(plan.redirects)
                item.total_amount = plan.total_amount
                result.success_count += 1
                result.applied_transactions.extend(item.transaction_ids)
                result.redirects.extend(plan.redirects)
            result.items.append(item)

        logger.info(
            "Finished settlement batch",
            batch_id=result.batch_id,
            success_count=result.success_count,
            failure_count=result.failure_count,
            cancelled=result.cancelled,
        )
        return result

    def settle_obligation(
        self,
        vehicle_id: str,
        obligation_class: ObligationClass,
        index: int,
        penalty: Any = None,
        today: Optional[date] = None,
    ) -> ObligationSettlementResult:
        """
        Settles a single obligation outside of a batch. Requests that skip
        an older unpaid obligation settle that one instead and say so.
        Errors are raised after rolling back.
        """
        obligation_class = ObligationClass(obligation_class)
        command = SettleObligationsCommand(
            vehicle_id=vehicle_id,
            obligation_class=obligation_class,
            indices=(index,),
            penalties={} if penalty is None else {index: penalty},
        )
        try:
            plan = self.plan(command, today or date.today())
            transaction_ids = self._apply(plan, batch_id=None)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        paid = plan.obligations_paid[0]
        write = plan.ledger_writes[0]
        return ObligationSettlementResult(
            vehicle_id=vehicle_id,
            obligation_class=obligation_class,
            requested_index=index,
            settled_index=paid.index,
            transaction_id=transaction_ids[0],
            amount=write.amount,
            penalty=write.penalty_amount,
            redirect=plan.redirects[0] if plan.redirects else None,
        )

    # --- Planning ---

    def plan(self, command: SettlementCommand, today: date) -> SettlementPlan:
        if isinstance(command, SettleObligationsCommand):
            queue = self.scheduler.views(command.vehicle_id, command.obligation_class, today)
            return plan_obligation_settlement(command, queue, self.scheduler, self.penalties)

        waterfall = self.period_waterfall(command.vehicle_id, command.year)
        keys = [month_key(command.year, m) for m in command.months]
        statuses = self.ledger.statuses(command.vehicle_id, TransactionType(command.component.value), keys)
        return plan_waterfall_payment(command, waterfall, statuses)

    def period_waterfall(self, vehicle_id: str, year: int, period: Optional[Period] = None) -> PeriodWaterfall:
        profile = self.provider.get_vehicle_profile(vehicle_id)
        if profile is None:
            raise VehicleProfileNotFoundError(vehicle_id)
        period = period or Period.yearly(year)
        profit = self.aggregator.aggregate(
            vehicle_id,
            period,
            self.provider.get_earnings(vehicle_id, period.year),
            self.provider.get_expenses(vehicle_id, period.year),
        )
        return self.calculator.compute_period(profit, profile)

    # --- Applying ---

    def _apply(self, plan: SettlementPlan, batch_id: Optional[str]) -> List[str]:
        transaction_ids: Dict[str, str] = {}
        ordered: List[str] = []
        for write in plan.ledger_writes:
            transaction_id = self.ledger.append(
                write.entity_id,
                write.transaction_type,
                write.amount,
                write.period_key,
                penalty_amount=write.penalty_amount,
                description=write.description,
                batch_id=batch_id,
            )
            transaction_ids[write.period_key] = transaction_id
            ordered.append(transaction_id)

        for delta in plan.balance_deltas:
            self.ledger.apply_balance_delta(delta.vehicle_id, delta.delta)

        paid_at = utcnow()
        for paid in plan.obligations_paid:
            obligation = self.obligations.get_by_id(paid.obligation_id)
            self.obligations.mark_paid(obligation, paid_at, paid.penalty, transaction_ids[paid.period_key])
        return ordered
