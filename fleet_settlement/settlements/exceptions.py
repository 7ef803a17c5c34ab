# fleet_settlement/settlements/exceptions.py

class SettlementError(Exception):
    """Base exception for all settlement batch errors."""
    pass


class InvalidInstructionError(SettlementError):
    """Raised when a settlement instruction cannot be turned into a command."""
    def __init__(self, entity_id: str, reason: str):
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Invalid settlement instruction for '{entity_id}': {reason}")


class NothingToSettleError(SettlementError):
    """Raised when every selected month has nothing payable for the component."""
    def __init__(self, entity_id: str, component: str, months):
        self.entity_id = entity_id
        self.component = component
        self.months = list(months)
        super().__init__(
            f"No payable {component} for '{entity_id}' in months {self.months}."
        )


class VehicleProfileNotFoundError(SettlementError):
    """Raised when the data provider has no profile for a vehicle."""
    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle profile for '{vehicle_id}' not found.")


class PartialBatchFailure(SettlementError):
    """
    Raised on request when a batch finished with failed items. Items that
    succeeded stay applied; `result` carries the full outcome.
    """
    def __init__(self, result):
        self.result = result
        super().__init__(
            f"Settlement batch {result.batch_id} finished with {result.failure_count} failed "
            f"and {result.success_count} successful items."
        )
