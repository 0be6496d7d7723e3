"""Exception hierarchy for the ledger core."""

from typing import Optional


class LedgerError(Exception):
    """Base exception for all ledger errors."""


class InvalidCategoryError(LedgerError):
    """Raised when a main category or subcategory is not in the taxonomy."""

    def __init__(self, category: str, message: Optional[str] = None):
        self.category = category
        super().__init__(message or f"Unknown category: {category!r}")


class InvalidAmountError(LedgerError):
    """Raised when an amount is non-numeric, non-finite, zero or negative."""

    def __init__(self, raw_value: object, message: Optional[str] = None):
        self.raw_value = raw_value
        super().__init__(message or f"Invalid amount: {raw_value!r}")


class MissingActiveUserError(LedgerError):
    """Raised when a mutation is attempted without an authenticated user."""


class RecordNotFoundError(LedgerError):
    """Raised when a record id is not present in the local collection."""

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")


class PersistenceFailedError(LedgerError):
    """Raised when the storage collaborator rejects an append or remove."""


class RecognitionFailedError(LedgerError):
    """Raised when a receipt image could not be turned into structured data."""
