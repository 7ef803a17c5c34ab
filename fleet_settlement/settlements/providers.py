# fleet_settlement/settlements/providers.py

import importlib
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Protocol

from fleet_settlement.core.config import settings
from fleet_settlement.periods.schemas import EarningRecord, ExpenseRecord
from fleet_settlement.utils.logger import get_logger
from fleet_settlement.vehicles.schemas import VehicleProfile

logger = get_logger(__name__)


class FinancialDataProvider(Protocol):
    """
    Source of the externally owned inputs: vehicle profiles and the raw
    earning and expense records. The host application supplies one.
    """

    def get_vehicle_profile(self, vehicle_id: str) -> Optional[VehicleProfile]:
        ...

    def get_earnings(self, vehicle_id: str, year: int) -> Iterable[EarningRecord]:
        ...

    def get_expenses(self, vehicle_id: str, year: int) -> Iterable[ExpenseRecord]:
        ...


class InMemoryFinancialDataProvider:
    """Dictionary-backed provider, used by tests and single-process deployments."""

    def __init__(
        self,
        profiles: Iterable[VehicleProfile] = (),
        earnings: Iterable[EarningRecord] = (),
        expenses: Iterable[ExpenseRecord] = (),
    ):
        self._profiles: Dict[str, VehicleProfile] = {}
        self._earnings: Dict[str, List[EarningRecord]] = defaultdict(list)
        self._expenses: Dict[str, List[ExpenseRecord]] = defaultdict(list)
        for profile in profiles:
            self.add_profile(profile)
        self.add_earnings(earnings)
        self.add_expenses(expenses)

    def add_profile(self, profile: VehicleProfile) -> None:
        self._profiles[profile.vehicle_id] = profile

    def add_earnings(self, records: Iterable[EarningRecord]) -> None:
        for record in records:
            self._earnings[record.vehicle_id].append(record)

    def add_expenses(self, records: Iterable[ExpenseRecord]) -> None:
        for record in records:
            self._expenses[record.vehicle_id].append(record)

    def get_vehicle_profile(self, vehicle_id: str) -> Optional[VehicleProfile]:
        return self._profiles.get(vehicle_id)

    def get_earnings(self, vehicle_id: str, year: int) -> List[EarningRecord]:
        return [r for r in self._earnings.get(vehicle_id, []) if r.timestamp.year == year]

    def get_expenses(self, vehicle_id: str, year: int) -> List[ExpenseRecord]:
        return [r for r in self._expenses.get(vehicle_id, []) if r.timestamp.year == year]


_provider: FinancialDataProvider = InMemoryFinancialDataProvider()


def get_data_provider() -> FinancialDataProvider:
    """FastAPI dependency returning the process-wide data provider."""
    return _provider


def set_data_provider(provider: FinancialDataProvider) -> None:
    global _provider
    _provider = provider


def load_data_provider(path: str) -> FinancialDataProvider:
    """
    Resolves a provider from a "package.module:attribute" path. The attribute
    may be a provider instance, or a class or factory called without
    arguments.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"data provider path must look like 'package.module:attribute', got '{path}'")

    target = getattr(importlib.import_module(module_name), attribute)
    return target() if callable(target) else target


def configure_data_provider(path: Optional[str] = None) -> FinancialDataProvider:
    """
    Installs the provider named by `path`, or by the DATA_PROVIDER setting,
    as the process-wide provider. Leaves the current one in place when
    neither is set.
    """
    path = path or settings.data_provider
    if not path:
        logger.warning("No data provider configured, vehicle data will be empty")
        return _provider

    provider = load_data_provider(path)
    set_data_provider(provider)
    logger.info("Data provider configured", provider=path)
    return provider
