# fleet_settlement/obligations/repository.py

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleet_settlement.obligations.models import Obligation, ObligationClass
from fleet_settlement.utils.logger import get_logger

logger = get_logger(__name__)


class ObligationRepository:
    """
    Data Access Layer for installment obligations.
    The caller is responsible for committing the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_queue(self, vehicle_id: str, obligation_class: ObligationClass) -> List[Obligation]:
        """Fetches a vehicle's obligations of one class, oldest first."""
        stmt = (
            select(Obligation)
            .where(
                Obligation.vehicle_id == vehicle_id,
                Obligation.obligation_class == obligation_class,
            )
            .order_by(Obligation.index.asc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_by_index(
        self, vehicle_id: str, obligation_class: ObligationClass, index: int
    ) -> Optional[Obligation]:
        stmt = select(Obligation).where(
            Obligation.vehicle_id == vehicle_id,
            Obligation.obligation_class == obligation_class,
            Obligation.index == index,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_id(self, obligation_id: int) -> Optional[Obligation]:
        return self.db.get(Obligation, obligation_id)

    def count_for(self, vehicle_id: str, obligation_class: ObligationClass) -> int:
        stmt = select(func.count(Obligation.id)).where(
            Obligation.vehicle_id == vehicle_id,
            Obligation.obligation_class == obligation_class,
        )
        return self.db.execute(stmt).scalar_one()

    def create_many(self, obligations: List[Obligation]) -> List[Obligation]:
        self.db.add_all(obligations)
        self.db.flush()
        logger.info(
            "Created obligations",
            count=len(obligations),
            vehicle_id=obligations[0].vehicle_id if obligations else None,
        )
        return obligations

    def mark_paid(
        self,
        obligation: Obligation,
        paid_at: datetime,
        penalty: Decimal,
        transaction_id: str,
    ) -> Obligation:
        obligation.is_paid = True
        obligation.paid_at = paid_at
        obligation.penalty_paid = penalty
        obligation.settled_transaction_id = transaction_id
        self.db.flush()
        logger.info(
            "Marked obligation paid",
            reference_id=obligation.reference_id,
            transaction_id=transaction_id,
        )
        return obligation
