# fleet_settlement/obligations/exceptions.py

class ObligationError(Exception):
    """Base exception for all obligation scheduling errors."""
    pass


class ObligationNotFoundError(ObligationError):
    """Raised when an obligation does not exist in a vehicle's queue."""
    def __init__(self, vehicle_id: str, obligation_class: str, index: int):
        self.vehicle_id = vehicle_id
        self.obligation_class = obligation_class
        self.index = index
        super().__init__(
            f"No {obligation_class} obligation at index {index} for vehicle '{vehicle_id}'."
        )


class ObligationNotEligibleError(ObligationError):
    """Raised when an obligation is not yet due and cannot be settled."""
    def __init__(self, vehicle_id: str, obligation_class: str, index: int, state: str):
        self.vehicle_id = vehicle_id
        self.obligation_class = obligation_class
        self.index = index
        self.state = state
        super().__init__(
            f"{obligation_class} obligation {index} for vehicle '{vehicle_id}' is {state} "
            f"and not eligible for settlement."
        )


class OutOfOrderSettlementError(ObligationError):
    """
    Raised when a settlement targets an obligation while an older one in the
    same queue is still unpaid. Recoverable: the scheduler redirects the
    settlement to the oldest eligible obligation.
    """
    def __init__(self, requested_index: int, oldest_unpaid_index: int):
        self.requested_index = requested_index
        self.oldest_unpaid_index = oldest_unpaid_index
        super().__init__(
            f"Obligation {requested_index} cannot be settled before obligation {oldest_unpaid_index}."
        )
