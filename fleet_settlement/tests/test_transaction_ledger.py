# fleet_settlement/tests/test_transaction_ledger.py

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from fleet_settlement.ledger.exceptions import (
    BalanceConflictError,
    DuplicateSettlementError,
    InvalidLedgerOperationError,
    TransactionNotFoundError,
)
from fleet_settlement.ledger.models import (
    LedgerStatus,
    LedgerTransaction,
    TransactionStatus,
    TransactionType,
)
from fleet_settlement.ledger.repository import LedgerRepository

VEHICLE = "VEH-1001"
GST = TransactionType.GST
T1 = datetime(2025, 4, 1, 10, 0, tzinfo=timezone.utc)
T2 = T1 + timedelta(days=2)


class TestLedgerStatus:

    def test_no_transactions_means_unpaid(self, ledger):
        assert ledger.current_status(VEHICLE, GST, "2025-03") == LedgerStatus.UNPAID
        assert ledger.latest_transaction(VEHICLE, GST, "2025-03") is None

    def test_append_returns_id_and_marks_completed(self, ledger, db_session):
        transaction_id = ledger.append(VEHICLE, GST, Decimal("400"), "2025-03")
        db_session.commit()

        assert ledger.current_status(VEHICLE, GST, "2025-03") == LedgerStatus.COMPLETED
        assert ledger.latest_transaction(VEHICLE, GST, "2025-03").transaction_id == transaction_id

    def test_reversal_after_completion_wins(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", completed_at=T1)
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", status=TransactionStatus.REVERSED, completed_at=T2)
        db_session.commit()

        assert ledger.current_status(VEHICLE, GST, "2025-03") == LedgerStatus.REVERSED
        assert ledger.outstanding(VEHICLE, GST, ["2025-03"], Decimal("400")) == Decimal("400")

    def test_latest_is_by_completion_time_not_insertion(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", status=TransactionStatus.REVERSED, completed_at=T2)
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", completed_at=T1)
        db_session.commit()

        assert ledger.current_status(VEHICLE, GST, "2025-03") == LedgerStatus.REVERSED

    def test_missing_completion_time_counts_as_earliest(self, ledger, db_session):
        repo = LedgerRepository(db_session)
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", status=TransactionStatus.REVERSED, completed_at=T1)
        repo.create_transaction(
            LedgerTransaction(
                transaction_id="legacy-1",
                entity_id=VEHICLE,
                transaction_type=GST,
                period_key="2025-03",
                amount=Decimal("400"),
                penalty_amount=Decimal("0"),
                status=TransactionStatus.COMPLETED,
                completed_at=None,
            )
        )
        db_session.commit()

        assert ledger.current_status(VEHICLE, GST, "2025-03") == LedgerStatus.REVERSED

    def test_statuses_and_settled_amount_over_several_periods(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-01", completed_at=T1)
        ledger.append(VEHICLE, GST, Decimal("80"), "2025-02", completed_at=T1)
        ledger.append(VEHICLE, GST, Decimal("80"), "2025-02", status=TransactionStatus.REVERSED, completed_at=T2)
        ledger.append(VEHICLE, TransactionType.OWNER_PAYMENT, Decimal("4300"), "2025-03", completed_at=T1)
        db_session.commit()

        keys = ["2025-01", "2025-02", "2025-03"]
        assert ledger.statuses(VEHICLE, GST, keys) == {
            "2025-01": LedgerStatus.COMPLETED,
            "2025-02": LedgerStatus.REVERSED,
            "2025-03": LedgerStatus.UNPAID,
        }
        assert ledger.settled_amount(VEHICLE, GST, keys) == Decimal("400")
        assert ledger.outstanding(VEHICLE, GST, keys, Decimal("520")) == Decimal("120")

    def test_outstanding_never_goes_negative(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-01")
        db_session.commit()
        assert ledger.outstanding(VEHICLE, GST, ["2025-01"], Decimal("100")) == 0

    def test_other_entities_do_not_leak(self, ledger, db_session):
        ledger.append("VEH-OTHER", GST, Decimal("400"), "2025-01")
        db_session.commit()
        assert ledger.current_status(VEHICLE, GST, "2025-01") == LedgerStatus.UNPAID


class TestLedgerWrites:

    def test_completed_period_cannot_be_settled_twice(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03")
        db_session.commit()

        with pytest.raises(DuplicateSettlementError):
            ledger.append(VEHICLE, GST, Decimal("400"), "2025-03")
        assert db_session.query(LedgerTransaction).count() == 1

    def test_reversed_period_can_be_settled_again(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", completed_at=T1)
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", status=TransactionStatus.REVERSED, completed_at=T2)
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03")
        db_session.commit()

        assert ledger.current_status(VEHICLE, GST, "2025-03") == LedgerStatus.COMPLETED

    def test_negative_amounts_are_rejected(self, ledger):
        with pytest.raises(InvalidLedgerOperationError):
            ledger.append(VEHICLE, GST, Decimal("-1"), "2025-03")

    def test_written_transactions_cannot_be_modified(self, ledger, db_session):
        transaction_id = ledger.append(VEHICLE, GST, Decimal("400"), "2025-03")
        db_session.commit()

        transaction = ledger.repo.get_by_transaction_id(transaction_id)
        transaction.amount = Decimal("1")
        with pytest.raises(InvalidLedgerOperationError):
            db_session.flush()
        db_session.rollback()

    def test_written_transactions_cannot_be_deleted(self, ledger, db_session):
        transaction_id = ledger.append(VEHICLE, GST, Decimal("400"), "2025-03")
        db_session.commit()

        db_session.delete(ledger.repo.get_by_transaction_id(transaction_id))
        with pytest.raises(InvalidLedgerOperationError):
            db_session.flush()
        db_session.rollback()

    def test_unknown_transaction_id(self, ledger):
        with pytest.raises(TransactionNotFoundError):
            ledger.repo.get_by_transaction_id("missing")


class TestReversal:

    def test_reverse_appends_entry_and_returns_cash(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", completed_at=T1)
        ledger.apply_balance_delta(VEHICLE, ledger.cash_delta(GST, Decimal("400")))
        db_session.commit()
        assert ledger.get_vehicle_balance(VEHICLE) == Decimal("-400")

        reversal = ledger.reverse(VEHICLE, GST, "2025-03", reason="Paid to wrong account")

        assert reversal.status == TransactionStatus.REVERSED
        assert reversal.description == "Paid to wrong account"
        assert ledger.current_status(VEHICLE, GST, "2025-03") == LedgerStatus.REVERSED
        assert ledger.get_vehicle_balance(VEHICLE) == Decimal("0")
        assert ledger.get_company_balance() == Decimal("0")
        assert db_session.query(LedgerTransaction).count() == 2

    def test_reverse_points_at_the_reversed_entry(self, ledger, db_session):
        original = ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", completed_at=T1)
        db_session.commit()

        reversal = ledger.reverse(VEHICLE, GST, "2025-03")
        assert reversal.reverses_transaction_id == original

    def test_service_charge_reversal_takes_cash_back_out(self, ledger, db_session):
        ledger.append(VEHICLE, TransactionType.SERVICE_CHARGE, Decimal("1000"), "2025-03", completed_at=T1)
        ledger.apply_balance_delta(VEHICLE, ledger.cash_delta(TransactionType.SERVICE_CHARGE, Decimal("1000")))
        db_session.commit()
        assert ledger.get_vehicle_balance(VEHICLE) == Decimal("1000")

        ledger.reverse(VEHICLE, TransactionType.SERVICE_CHARGE, "2025-03")
        assert ledger.get_vehicle_balance(VEHICLE) == Decimal("0")

    def test_nothing_to_reverse(self, ledger):
        with pytest.raises(TransactionNotFoundError):
            ledger.reverse(VEHICLE, GST, "2025-03")

    def test_reversed_period_cannot_be_reversed_again(self, ledger, db_session):
        ledger.append(VEHICLE, GST, Decimal("400"), "2025-03", completed_at=T1)
        db_session.commit()
        ledger.reverse(VEHICLE, GST, "2025-03")

        with pytest.raises(InvalidLedgerOperationError):
            ledger.reverse(VEHICLE, GST, "2025-03")

    def test_obligation_settlements_cannot_be_reversed(self, ledger, db_session):
        ledger.append(VEHICLE, TransactionType.EMI, Decimal("5000"), "EMI-000")
        db_session.commit()

        with pytest.raises(InvalidLedgerOperationError):
            ledger.reverse(VEHICLE, TransactionType.EMI, "EMI-000")


class TestCashBalances:

    def test_cash_direction_per_type(self, ledger):
        assert ledger.cash_delta(TransactionType.RENT, Decimal("3000")) == Decimal("3000")
        assert ledger.cash_delta(TransactionType.SERVICE_CHARGE, Decimal("1000")) == Decimal("1000")
        assert ledger.cash_delta(TransactionType.GST, Decimal("400")) == Decimal("-400")
        assert ledger.cash_delta(TransactionType.PARTNER_SHARE, Decimal("4300")) == Decimal("-4300")
        assert ledger.cash_delta(TransactionType.OWNER_PAYMENT, Decimal("4300")) == Decimal("-4300")
        assert ledger.cash_delta(TransactionType.EMI, Decimal("5150")) == Decimal("-5150")

    def test_delta_moves_vehicle_and_company(self, ledger, db_session):
        ledger.apply_balance_delta("VEH-A", Decimal("3000"))
        ledger.apply_balance_delta("VEH-B", Decimal("-500"))
        db_session.commit()

        assert ledger.get_vehicle_balance("VEH-A") == Decimal("3000")
        assert ledger.get_vehicle_balance("VEH-B") == Decimal("-500")
        assert ledger.get_company_balance() == Decimal("2500")

    def test_unknown_vehicle_has_zero_balance(self, ledger):
        assert ledger.get_vehicle_balance("VEH-NONE") == 0

    def test_version_conflict_gives_up_after_retries(self, ledger, db_session):
        ledger.apply_balance_delta(VEHICLE, Decimal("100"))
        db_session.commit()

        # every read sees a version that is already gone
        with patch.object(LedgerRepository, "_read_versioned", return_value=(Decimal("100"), 99)):
            with pytest.raises(BalanceConflictError) as exc_info:
                ledger.apply_balance_delta(VEHICLE, Decimal("50"))
        assert exc_info.value.attempts == ledger.max_retries
        db_session.rollback()
        assert ledger.get_vehicle_balance(VEHICLE) == Decimal("100")
