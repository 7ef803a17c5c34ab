# fleet_settlement/tests/conftest.py

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fleet_settlement.core.db import Base, init_db
from fleet_settlement.ledger.repository import LedgerRepository
from fleet_settlement.ledger.services import TransactionLedger
from fleet_settlement.obligations.repository import ObligationRepository
from fleet_settlement.obligations.services import ObligationScheduler
from fleet_settlement.periods.schemas import EarningRecord, ExpenseRecord
from fleet_settlement.settlements.providers import InMemoryFinancialDataProvider
from fleet_settlement.settlements.services import SettlementBatchExecutor
from fleet_settlement.vehicles.schemas import Assignment, LoanDetails, LoanInstallment, VehicleProfile

TODAY = date(2025, 6, 15)
PARTNER_VEHICLE = "VEH-1001"
SOLO_VEHICLE = "VEH-2002"


def make_loan(due_dates, amount="5000") -> LoanDetails:
    return LoanDetails(
        emi_per_month=Decimal(amount),
        interest_rate=Decimal("9.5"),
        amortization_schedule=[
            LoanInstallment(installment_number=n, due_date=due) for n, due in enumerate(due_dates, start=1)
        ],
    )


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def db_session():
    """In-memory SQLite session shared by every repository in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    TestingSession = sessionmaker(bind=engine, autoflush=True, expire_on_commit=False)
    db = TestingSession()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def partner_profile():
    """
    Partnership vehicle with four overdue EMIs (Mar-Jun 2025), two future
    ones, and a rent assignment that started on 1 May 2025.
    """
    return VehicleProfile(
        vehicle_id=PARTNER_VEHICLE,
        is_partnership=True,
        partnership_percentage=Decimal("50"),
        service_charge_rate=Decimal("0.10"),
        loan=make_loan([date(2025, m, 10) for m in range(3, 9)]),
        assignment=Assignment(
            assignment_id="ASN-1",
            driver_id="DRV-77",
            start_date=date(2025, 5, 1),
            weekly_rent=Decimal("3000"),
        ),
    )


@pytest.fixture
def solo_profile():
    """Owner-operated vehicle: one EMI ten days overdue, one next month."""
    return VehicleProfile(
        vehicle_id=SOLO_VEHICLE,
        loan=make_loan([date(2025, 6, 5), date(2025, 7, 5)]),
    )


@pytest.fixture
def earnings():
    return [
        EarningRecord(vehicle_id=PARTNER_VEHICLE, amount_paid=Decimal("6000"), timestamp=datetime(2025, 3, 3, 9, 0)),
        EarningRecord(vehicle_id=PARTNER_VEHICLE, amount_paid=Decimal("4000"), timestamp=datetime(2025, 3, 20, 18, 30)),
        EarningRecord(vehicle_id=PARTNER_VEHICLE, amount_paid=Decimal("1000"), timestamp=datetime(2025, 4, 11, 12, 0)),
        EarningRecord(vehicle_id=PARTNER_VEHICLE, amount_paid=Decimal("2000"), timestamp=datetime(2025, 5, 2, 8, 0)),
        EarningRecord(
            vehicle_id=PARTNER_VEHICLE, amount_paid=Decimal("9999"), timestamp=datetime(2025, 3, 5), status="pending"
        ),
        EarningRecord(vehicle_id=SOLO_VEHICLE, amount_paid=Decimal("7000"), timestamp=datetime(2025, 3, 9)),
    ]


@pytest.fixture
def expenses():
    return [
        ExpenseRecord(vehicle_id=PARTNER_VEHICLE, amount=Decimal("1500"), timestamp=datetime(2025, 4, 15)),
        ExpenseRecord(vehicle_id=PARTNER_VEHICLE, amount=Decimal("800"), timestamp=datetime(2025, 3, 31), status="rejected"),
        ExpenseRecord(vehicle_id=SOLO_VEHICLE, amount=Decimal("2000"), timestamp=datetime(2025, 3, 12)),
    ]


@pytest.fixture
def provider(partner_profile, solo_profile, earnings, expenses):
    return InMemoryFinancialDataProvider(
        profiles=[partner_profile, solo_profile],
        earnings=earnings,
        expenses=expenses,
    )


@pytest.fixture
def scheduler(db_session):
    return ObligationScheduler(ObligationRepository(db_session))


@pytest.fixture
def ledger(db_session):
    return TransactionLedger(LedgerRepository(db_session))


@pytest.fixture
def registered(scheduler, partner_profile, solo_profile):
    """Both vehicles' obligation queues persisted."""
    scheduler.register_profile(partner_profile)
    scheduler.register_profile(solo_profile)
    return scheduler


@pytest.fixture
def executor(db_session, provider, registered):
    return SettlementBatchExecutor(db_session, provider)
