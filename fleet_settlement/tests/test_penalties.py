# fleet_settlement/tests/test_penalties.py

from datetime import date
from decimal import Decimal

import pytest

from fleet_settlement.obligations.models import ObligationClass
from fleet_settlement.penalties.services import PenaltyCalculator


class TestSuggestedPenalty:

    def test_not_overdue_suggests_nothing(self):
        assert PenaltyCalculator().suggested_penalty(Decimal("5000"), 0) == 0
        assert PenaltyCalculator().suggested_penalty(Decimal("5000"), -3) == 0

    def test_fixed_minimum_applies_to_small_installments(self):
        assert PenaltyCalculator().suggested_penalty(Decimal("2000"), 4) == Decimal("100.00")

    def test_late_fee_rate_applies_to_large_installments(self):
        assert PenaltyCalculator().suggested_penalty(Decimal("12500"), 1) == Decimal("250.00")

    def test_custom_parameters(self):
        calculator = PenaltyCalculator(fixed_minimum=Decimal("50"), late_fee_rate=Decimal("0.05"))
        assert calculator.suggested_penalty(Decimal("5000"), 10) == Decimal("250.00")

    def test_days_past_due(self):
        assert PenaltyCalculator.days_past_due(date(2025, 6, 5), date(2025, 6, 15)) == 10


class TestParsePenalty:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("150", Decimal("150.00")),
            (" 12.5 ", Decimal("12.50")),
            ("99.999", Decimal("100.00")),
            ("75rs", Decimal("75.00")),
            (".5", Decimal("0.50")),
            (150, Decimal("150.00")),
            (12.25, Decimal("12.25")),
        ],
    )
    def test_leading_number_is_read(self, raw, expected):
        assert PenaltyCalculator.parse_penalty(raw) == expected

    @pytest.mark.parametrize("raw", ["", "abc", "-20", None, "nan", float("inf"), True, "rs 75"])
    def test_unusable_input_becomes_zero(self, raw):
        assert PenaltyCalculator.parse_penalty(raw) == 0

    @pytest.mark.parametrize("raw", ["1e30", 10**26, Decimal("1E+40")])
    def test_too_large_to_represent_becomes_zero(self, raw):
        assert PenaltyCalculator.parse_penalty(raw) == 0

    def test_rent_never_carries_a_penalty(self):
        calculator = PenaltyCalculator()
        assert calculator.applied_penalty(ObligationClass.RENT, "150") == 0
        assert calculator.applied_penalty(ObligationClass.EMI, "150") == Decimal("150.00")
