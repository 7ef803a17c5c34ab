# fleet_settlement/obligations/services.py

import calendar
import math
from datetime import date, timedelta
from typing import TYPE_CHECKING, Collection, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fleet_settlement.core.config import settings
from fleet_settlement.ledger.exceptions import DuplicateSettlementError
from fleet_settlement.obligations.exceptions import (
    ObligationError,
    ObligationNotEligibleError,
    ObligationNotFoundError,
    OutOfOrderSettlementError,
)
from fleet_settlement.obligations.models import Obligation, ObligationClass, ObligationState
from fleet_settlement.obligations.repository import ObligationRepository
from fleet_settlement.obligations.schemas import (
    ObligationQueueResponse,
    ObligationView,
    RedirectedSettlement,
    obligation_period_key,
)
from fleet_settlement.penalties.services import PenaltyCalculator
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.utils.money import ZERO, to_decimal
from fleet_settlement.vehicles.schemas import Assignment, LoanDetails, VehicleProfile

if TYPE_CHECKING:
    from fleet_settlement.settlements.schemas import SettlementSession

logger = get_logger(__name__)

RENT_WEEK_DAYS = 7


def add_months(start: date, months: int) -> date:
    """Adds calendar months, clamping the day to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def rent_week_count(assignment: Assignment) -> int:
    end = add_months(assignment.start_date, assignment.agreement_duration_months)
    return math.ceil((end - assignment.start_date).days / RENT_WEEK_DAYS)


def get_obligation_scheduler(db: Session) -> "ObligationScheduler":
    return ObligationScheduler(ObligationRepository(db))


class ObligationScheduler:
    """
    Builds, classifies and sequences the EMI and rent queues of a vehicle.

    Every queue is kept in due-date order and may only be settled from the
    front: an obligation is settleable once every obligation before it in
    the same queue is paid.
    """

    def __init__(
        self,
        repo: ObligationRepository,
        lead_days: Optional[int] = None,
        penalty_calculator: Optional[PenaltyCalculator] = None,
    ):
        self.repo = repo
        self.lead_days = settings.emi_due_soon_lead_days if lead_days is None else lead_days
        self.penalties = penalty_calculator or PenaltyCalculator()

    # --- Queue construction ---

    @staticmethod
    def build_emi_schedule(vehicle_id: str, loan: LoanDetails) -> List[Obligation]:
        """One obligation per amortization row, ordered by due date."""
        rows = sorted(
            loan.amortization_schedule,
            key=lambda row: (row.due_date, row.installment_number),
        )
        obligations = []
        for index, row in enumerate(rows):
            obligations.append(
                Obligation(
                    reference_id=f"{vehicle_id}-{obligation_period_key(ObligationClass.EMI, index)}",
                    vehicle_id=vehicle_id,
                    obligation_class=ObligationClass.EMI,
                    index=index,
                    due_date=row.due_date,
                    period_end=row.due_date,
                    amount=to_decimal(row.amount if row.amount is not None else loan.emi_per_month),
                    is_paid=row.is_paid,
                )
            )
        return obligations

    @staticmethod
    def build_rent_schedule(vehicle_id: str, assignment: Assignment) -> List[Obligation]:
        """Consecutive 7-day rent weeks covering the agreement duration."""
        obligations = []
        for week in range(rent_week_count(assignment)):
            week_start = assignment.start_date + timedelta(days=week * RENT_WEEK_DAYS)
            obligations.append(
                Obligation(
                    reference_id=f"{vehicle_id}-{obligation_period_key(ObligationClass.RENT, week)}",
                    vehicle_id=vehicle_id,
                    obligation_class=ObligationClass.RENT,
                    index=week,
                    due_date=week_start,
                    period_end=week_start + timedelta(days=RENT_WEEK_DAYS - 1),
                    amount=to_decimal(assignment.weekly_rent),
                    is_paid=False,
                )
            )
        return obligations

    def _register(self, vehicle_id: str, obligation_class: ObligationClass, obligations: List[Obligation]) -> List[Obligation]:
        if self.repo.count_for(vehicle_id, obligation_class):
            logger.info(
                "Obligation queue already registered",
                vehicle_id=vehicle_id, obligation_class=obligation_class.value,
            )
            return self.repo.get_queue(vehicle_id, obligation_class)
        try:
            created = self.repo.create_many(obligations) if obligations else []
            self.repo.db.commit()
            return created
        except SQLAlchemyError as e:
            self.repo.db.rollback()
            logger.error("Failed to register obligation queue", vehicle_id=vehicle_id, error=str(e), exc_info=True)
            raise ObligationError(f"Failed to register {obligation_class.value} queue: {e}") from e

    def register_loan(self, vehicle_id: str, loan: LoanDetails) -> List[Obligation]:
        return self._register(vehicle_id, ObligationClass.EMI, self.build_emi_schedule(vehicle_id, loan))

    def register_assignment(self, vehicle_id: str, assignment: Assignment) -> List[Obligation]:
        return self._register(vehicle_id, ObligationClass.RENT, self.build_rent_schedule(vehicle_id, assignment))

    def register_profile(self, profile: VehicleProfile) -> None:
        """Registers whichever queues the profile carries."""
        if profile.loan is not None:
            self.register_loan(profile.vehicle_id, profile.loan)
        if profile.assignment is not None:
            self.register_assignment(profile.vehicle_id, profile.assignment)

    # --- Classification ---

    def classify(self, obligation, today: date) -> ObligationState:
        if obligation.is_paid:
            return ObligationState.PAID

        if ObligationClass(obligation.obligation_class) == ObligationClass.RENT:
            if obligation.period_end < today:
                return ObligationState.OVERDUE
            if obligation.due_date <= today:
                return ObligationState.DUE_SOON
            return ObligationState.FUTURE

        days_until_due = (obligation.due_date - today).days
        if days_until_due < 0:
            return ObligationState.OVERDUE
        if days_until_due <= self.lead_days:
            return ObligationState.DUE_SOON
        return ObligationState.FUTURE

    def to_view(self, obligation: Obligation, today: date) -> ObligationView:
        state = self.classify(obligation, today)
        obligation_class = ObligationClass(obligation.obligation_class)
        # rent is late once its week is over, an EMI once its due date passes
        late_from = obligation.period_end if obligation_class == ObligationClass.RENT else obligation.due_date
        days_past_due = 0 if obligation.is_paid else max(0, self.penalties.days_past_due(late_from, today))

        suggested = ZERO
        if obligation_class == ObligationClass.EMI and state == ObligationState.OVERDUE:
            suggested = self.penalties.suggested_penalty(obligation.amount, days_past_due)

        return ObligationView(
            id=obligation.id,
            reference_id=obligation.reference_id,
            vehicle_id=obligation.vehicle_id,
            obligation_class=obligation_class,
            index=obligation.index,
            due_date=obligation.due_date,
            period_end=obligation.period_end,
            amount=obligation.amount,
            is_paid=obligation.is_paid,
            paid_at=obligation.paid_at,
            state=state,
            days_until_due=(obligation.due_date - today).days,
            days_past_due=days_past_due,
            suggested_penalty=suggested,
        )

    # --- Queue reads ---

    def queue(self, vehicle_id: str, obligation_class: ObligationClass) -> List[Obligation]:
        return self.repo.get_queue(vehicle_id, ObligationClass(obligation_class))

    def views(self, vehicle_id: str, obligation_class: ObligationClass, today: date) -> List[ObligationView]:
        return [self.to_view(o, today) for o in self.queue(vehicle_id, obligation_class)]

    def eligible_queue(self, vehicle_id: str, obligation_class: ObligationClass, today: date) -> List[ObligationView]:
        return [view for view in self.views(vehicle_id, obligation_class, today) if view.eligible]

    def queue_summary(self, vehicle_id: str, obligation_class: ObligationClass, today: date) -> ObligationQueueResponse:
        views = self.views(vehicle_id, obligation_class, today)
        return ObligationQueueResponse(
            vehicle_id=vehicle_id,
            obligation_class=ObligationClass(obligation_class),
            obligations=views,
            eligible_indices=[v.index for v in views if v.eligible],
            total_overdue=sum((v.amount for v in views if v.state == ObligationState.OVERDUE), ZERO),
            total_due_soon=sum((v.amount for v in views if v.state == ObligationState.DUE_SOON), ZERO),
            paid_count=sum(1 for v in views if v.is_paid),
            total_count=len(views),
        )

    # --- Selection ---

    @staticmethod
    def derive_sequential_selection(
        target: int,
        ordered_eligible: Sequence[int],
        current_selection: Collection[int],
    ) -> List[int]:
        """
        Toggles `target` while keeping the selection an oldest-first prefix
        of the eligible queue. Selecting pulls in everything before the
        target, deselecting drops the target and everything after it.
        """
        ordered = list(ordered_eligible)
        if target not in ordered:
            return list(current_selection)

        position = ordered.index(target)
        if target in current_selection:
            return ordered[:position]
        return ordered[:position + 1]

    @staticmethod
    def select_all_eligible(ordered_eligible: Sequence[int]) -> List[int]:
        return list(ordered_eligible)

    def toggle_selection(
        self,
        session: "SettlementSession",
        vehicle_id: str,
        obligation_class: ObligationClass,
        target: int,
        today: date,
    ) -> "SettlementSession":
        eligible = [v.index for v in self.eligible_queue(vehicle_id, obligation_class, today)]
        current = session.selection_for(vehicle_id, obligation_class)
        if target not in eligible:
            logger.info(
                "Ignoring selection of ineligible obligation",
                vehicle_id=vehicle_id, obligation_class=ObligationClass(obligation_class).value, index=target,
            )
            return session
        selection = self.derive_sequential_selection(target, eligible, current)
        return session.with_selection(vehicle_id, obligation_class, selection)

    def select_all(
        self,
        session: "SettlementSession",
        vehicle_id: str,
        obligation_class: ObligationClass,
        today: date,
    ) -> "SettlementSession":
        eligible = [v.index for v in self.eligible_queue(vehicle_id, obligation_class, today)]
        return session.with_selection(vehicle_id, obligation_class, self.select_all_eligible(eligible))

    # --- Settlement ordering ---

    @staticmethod
    def ensure_oldest_first(
        queue: Iterable[ObligationView],
        obligation: ObligationView,
        already_settled: Collection[int] = (),
    ) -> None:
        for candidate in queue:
            if candidate.index >= obligation.index:
                break
            if not candidate.is_paid and candidate.index not in already_settled:
                raise OutOfOrderSettlementError(obligation.index, candidate.index)

    def resolve_settlement_target(
        self,
        queue: Sequence[ObligationView],
        requested_index: int,
        already_settled: Collection[int] = (),
    ) -> Tuple[ObligationView, Optional[RedirectedSettlement]]:
        """
        Picks the obligation a settlement of `requested_index` actually
        applies to. A request that skips an older unpaid obligation is
        redirected to the oldest one, which must itself be eligible.
        """
        target = next((v for v in queue if v.index == requested_index), None)
        if target is None:
            vehicle_id = queue[0].vehicle_id if queue else "unknown"
            obligation_class = queue[0].obligation_class.value if queue else "unknown"
            raise ObligationNotFoundError(vehicle_id, obligation_class, requested_index)

        if target.is_paid or target.index in already_settled:
            raise DuplicateSettlementError(target.vehicle_id, target.obligation_class.value, target.period_key)

        try:
            self.ensure_oldest_first(queue, target, already_settled)
        except OutOfOrderSettlementError as e:
            oldest = next(v for v in queue if v.index == e.oldest_unpaid_index)
            if not oldest.eligible:
                raise ObligationNotEligibleError(
                    oldest.vehicle_id, oldest.obligation_class.value, oldest.index, oldest.state.value
                ) from e
            logger.info(
                "Redirecting settlement to oldest unpaid obligation",
                vehicle_id=target.vehicle_id,
                obligation_class=target.obligation_class.value,
                requested_index=requested_index,
                settled_index=oldest.index,
            )
            return oldest, RedirectedSettlement(
                vehicle_id=target.vehicle_id,
                obligation_class=target.obligation_class,
                requested_index=requested_index,
                settled_index=oldest.index,
            )

        if not target.eligible:
            raise ObligationNotEligibleError(
                target.vehicle_id, target.obligation_class.value, target.index, target.state.value
            )
        return target, None
