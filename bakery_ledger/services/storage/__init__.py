"""
Storage Services Package

Abstract interfaces plus two implementations: in-memory (tests, local use)
and Google Sheets. The Google Sheets backend is imported lazily by the
context factory so the core does not need gspread credentials to run.
"""

from bakery_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    RecordStorageInterface,
    SnapshotCallback,
    StorageError,
    Subscription,
    sort_snapshot,
)
from bakery_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryRecordStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "RecordStorageInterface",
    "SnapshotCallback",
    "Subscription",
    "sort_snapshot",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryRecordStorage",
]
