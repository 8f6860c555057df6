class LedgerError(Exception):
    """Base class for every error raised by the ledger services."""
    pass

class NotFound(LedgerError):
    """Raised when an entity is absent or belongs to another organization."""
    pass

class ReferenceNotFound(LedgerError):
    """Raised when a referenced account, journal, tax rate or invoice does not exist."""
    pass

class ValidationFailed(LedgerError):
    """Raised when input breaks an accounting rule (balance, allocation, amounts)."""
    pass

class UnbalancedJournalError(ValidationFailed):
    """Raised when a JournalEntry fails double-entry balance check."""
    pass

class InvalidStateTransition(LedgerError):
    """Raised when an operation is not legal from the record's current status."""
    pass
