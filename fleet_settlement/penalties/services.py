# fleet_settlement/penalties/services.py

import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from fleet_settlement.core.config import settings
from fleet_settlement.obligations.models import ObligationClass
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.utils.money import ZERO, round_money, to_decimal

logger = get_logger(__name__)

# Leading numeric prefix, the way a browser's parseFloat reads user input
_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


class PenaltyCalculator:
    """
    Late fee handling for overdue obligations.

    The suggested penalty is a display hint only. The penalty that is
    actually applied is whatever non-negative amount the caller submits
    with the settlement instruction.
    """

    def __init__(
        self,
        fixed_minimum: Optional[Decimal] = None,
        late_fee_rate: Optional[Decimal] = None,
    ):
        self.fixed_minimum = to_decimal(
            settings.penalty_fixed_minimum if fixed_minimum is None else fixed_minimum
        )
        self.late_fee_rate = to_decimal(
            settings.penalty_late_fee_rate if late_fee_rate is None else late_fee_rate
        )

    @staticmethod
    def days_past_due(due_date: date, today: date) -> int:
        return (today - due_date).days

    def suggested_penalty(self, installment_amount: Decimal, days_past_due: int) -> Decimal:
        if days_past_due <= 0:
            return ZERO
        return round_money(max(self.fixed_minimum, to_decimal(installment_amount) * self.late_fee_rate))

    @staticmethod
    def parse_penalty(raw: Any) -> Decimal:
        """
        Reads a caller-supplied penalty leniently. Anything unparsable,
        non-finite or negative becomes 0.
        """
        if raw is None or isinstance(raw, bool):
            return ZERO
        if isinstance(raw, (int, float, Decimal)):
            text = str(raw)
        else:
            match = _LEADING_NUMBER.match(str(raw))
            if not match:
                return ZERO
            text = match.group(1)

        try:
            value = Decimal(text)
        except InvalidOperation:
            return ZERO
        if not value.is_finite() or value < 0:
            return ZERO
        try:
            return round_money(value)
        except InvalidOperation:
            logger.warning("Ignoring penalty too large to represent", raw_penalty=text)
            return ZERO

    def applied_penalty(self, obligation_class: ObligationClass, raw: Any) -> Decimal:
        if ObligationClass(obligation_class) == ObligationClass.RENT:
            if raw not in (None, ""):
                logger.warning("Ignoring penalty supplied for rent obligation", raw_penalty=str(raw))
            return ZERO
        return self.parse_penalty(raw)
