"""Exception types raised by the retail ledger."""


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced account, party, product, or session is unknown."""


class InvalidTransactionError(BusinessRuleViolation):
    """Raised when a transaction carries fields that are illegal for its type."""


class DayNotOpenError(BusinessRuleViolation):
    """Raised when cash is posted without an OPEN day session for the date."""


class InsufficientTenderError(BusinessRuleViolation):
    """Raised when the cash handed over does not cover the payable amount."""


class ImportFormatError(ValueError):
    """Raised when an import file cannot be parsed as a ledger snapshot."""


IMPORT_FAILED_MESSAGE = "Import failed: the file is not a valid ledger export."
