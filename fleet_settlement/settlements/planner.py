# fleet_settlement/settlements/planner.py

"""
Settlement planners.

Each planner turns one command plus read-only snapshots (the classified
obligation queue, the period waterfall, current ledger statuses) into a
SettlementPlan. Planners never write; the executor applies the plan.
"""

from typing import Mapping, Sequence, Set

from fleet_settlement.ledger.exceptions import DuplicateSettlementError
from fleet_settlement.ledger.models import LedgerStatus, TransactionType
from fleet_settlement.ledger.services import TransactionLedger
from fleet_settlement.obligations.schemas import ObligationView
from fleet_settlement.obligations.services import ObligationScheduler
from fleet_settlement.penalties.services import PenaltyCalculator
from fleet_settlement.periods.schemas import month_key
from fleet_settlement.settlements.exceptions import NothingToSettleError
from fleet_settlement.settlements.schemas import (
    ApplyWaterfallPaymentCommand,
    BalanceDelta,
    LedgerWrite,
    ObligationPaid,
    SettleObligationsCommand,
    SettlementPlan,
)
from fleet_settlement.waterfall.schemas import PeriodWaterfall


def plan_obligation_settlement(
    command: SettleObligationsCommand,
    queue: Sequence[ObligationView],
    scheduler: ObligationScheduler,
    penalties: PenaltyCalculator,
) -> SettlementPlan:
    """
    Settles the requested positions oldest first. A position that skips an
    unpaid older obligation is redirected to it; the penalty applied is the
    one typed against the obligation actually settled.
    """
    transaction_type = TransactionType(command.obligation_class.value)
    settled: Set[int] = set()
    writes, deltas, paid, redirects = [], [], [], []

    for requested in command.indices:
        target, redirect = scheduler.resolve_settlement_target(queue, requested, settled)
        if redirect is not None:
            redirects.append(redirect)
        settled.add(target.index)

        penalty = penalties.applied_penalty(command.obligation_class, command.penalties.get(target.index))
        writes.append(
            LedgerWrite(
                entity_id=command.vehicle_id,
                transaction_type=transaction_type,
                amount=target.amount,
                period_key=target.period_key,
                penalty_amount=penalty,
                description=f"{command.obligation_class.value.upper()} installment {target.index + 1} due {target.due_date}",
            )
        )
        deltas.append(
            BalanceDelta(
                vehicle_id=command.vehicle_id,
                delta=TransactionLedger.cash_delta(transaction_type, target.amount + penalty),
            )
        )
        paid.append(
            ObligationPaid(
                obligation_id=target.id,
                vehicle_id=command.vehicle_id,
                obligation_class=command.obligation_class,
                index=target.index,
                period_key=target.period_key,
                penalty=penalty,
            )
        )

    return SettlementPlan(ledger_writes=writes, balance_deltas=deltas, obligations_paid=paid, redirects=redirects)


def plan_waterfall_payment(
    command: ApplyWaterfallPaymentCommand,
    waterfall: PeriodWaterfall,
    statuses: Mapping[str, LedgerStatus],
) -> SettlementPlan:
    """
    Pays the component for each selected month that has a positive amount.
    Any month already completed rejects the whole command.
    """
    transaction_type = TransactionType(command.component.value)
    writes, deltas = [], []

    for month in command.months:
        period_key = month_key(command.year, month)
        if statuses.get(period_key) == LedgerStatus.COMPLETED:
            raise DuplicateSettlementError(command.vehicle_id, transaction_type.value, period_key)

        amount = waterfall.for_month(month).result.component(command.component)
        if amount <= 0:
            continue

        writes.append(
            LedgerWrite(
                entity_id=command.vehicle_id,
                transaction_type=transaction_type,
                amount=amount,
                period_key=period_key,
                description=f"{command.component.value} for {period_key}",
            )
        )
        deltas.append(
            BalanceDelta(
                vehicle_id=command.vehicle_id,
                delta=TransactionLedger.cash_delta(transaction_type, amount),
            )
        )

    if not writes:
        raise NothingToSettleError(command.vehicle_id, command.component.value, command.months)
    return SettlementPlan(ledger_writes=writes, balance_deltas=deltas)
