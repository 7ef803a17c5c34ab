# fleet_settlement/periods/exceptions.py

class PeriodError(Exception):
    """Base exception for all period handling errors."""
    pass


class InvalidPeriodError(PeriodError):
    """Raised when a period type or its month list is not valid."""
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid period: {reason}")
