# fleet_settlement/ledger/exceptions.py

class LedgerError(Exception):
    """Base exception for all transaction ledger errors."""
    pass


class DuplicateSettlementError(LedgerError):
    """
    Raised when a settlement targets an obligation or a
    (entity, type, period) tuple that is already settled.
    Raised before anything is written.
    """
    def __init__(self, entity_id: str, transaction_type: str, period_key: str):
        self.entity_id = entity_id
        self.transaction_type = transaction_type
        self.period_key = period_key
        super().__init__(
            f"{transaction_type} for '{entity_id}' period '{period_key}' is already settled."
        )


class InvalidLedgerOperationError(LedgerError):
    """Raised for logical errors, such as mutating a written transaction."""
    pass


class TransactionNotFoundError(LedgerError):
    """Raised when a ledger transaction cannot be found."""
    def __init__(self, transaction_id: str = None, entity_id: str = None, period_key: str = None):
        if transaction_id:
            self.transaction_id = transaction_id
            super().__init__(f"Ledger transaction '{transaction_id}' not found.")
        elif entity_id:
            self.entity_id = entity_id
            self.period_key = period_key
            super().__init__(f"No ledger transaction for '{entity_id}' period '{period_key}'.")
        else:
            super().__init__("Ledger transaction not found.")


class BalanceConflictError(LedgerError):
    """Raised when a cash balance keeps changing underneath a versioned update."""
    def __init__(self, scope: str, scope_key: str, attempts: int):
        self.scope = scope
        self.scope_key = scope_key
        self.attempts = attempts
        super().__init__(
            f"Cash balance {scope}:{scope_key} changed concurrently; gave up after {attempts} attempts."
        )
