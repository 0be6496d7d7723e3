"""
Abstract Storage Interface

DESIGN DECISION: Storage is an external collaborator. The ledger engine only
needs four things from it:
1. A subscription that pushes the user's full record list whenever it changes
2. append(record) -> id
3. remove(id)
4. A one-off fetch of the current list

Snapshots are delivered ordered by occurred_at, newest first. Delivery is
at-least-once and there is no ordering guarantee between an append/remove
call and the next snapshot.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

from bakery_ledger.models.audit import AuditEvent
from bakery_ledger.models.record import Record


SnapshotCallback = Callable[[list[Record]], None]


class Subscription:
    """
    Handle for an active snapshot subscription.

    cancel() is idempotent.
    """

    def __init__(self, user_id: str, on_cancel: Optional[Callable[[], None]] = None):
        self.user_id = user_id
        self._on_cancel = on_cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        if self._on_cancel is not None:
            self._on_cancel()


class RecordStorageInterface(ABC):
    """
    Abstract interface for per-user record storage.

    Any storage implementation (in-memory, Google Sheets, ...) must
    implement these methods.
    """

    @abstractmethod
    def subscribe(self, user_id: str, callback: SnapshotCallback) -> Subscription:
        """
        Start pushing snapshots of a user's records to callback.

        Implementations deliver the current snapshot once right away and
        again after every change.
        """

    @abstractmethod
    async def append(self, user_id: str, record: Record) -> str:
        """
        Persist a new record.

        Args:
            user_id: Owner of the record
            record: The record to store; its id is ignored

        Returns:
            The id assigned by storage

        Raises:
            StorageError: If the write fails
        """

    @abstractmethod
    async def remove(self, user_id: str, record_id: str) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was removed, False if it did not exist

        Raises:
            StorageError: If the delete fails
        """

    @abstractmethod
    async def list_records(self, user_id: str) -> list[Record]:
        """Current records of a user, newest first."""


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Events sharing a correlation id, in chronological order."""

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """The most recent events, newest first."""


def as_aware(value: datetime) -> datetime:
    """Naive datetimes are taken as local time."""
    return value if value.tzinfo is not None else value.astimezone()


def sort_snapshot(records: list[Record]) -> list[Record]:
    """
    Order records the way snapshots are delivered: newest first.

    Naive and aware timestamps may be mixed (legacy rows); both are compared
    as instants.
    """
    return sorted(
        records,
        key=lambda r: (as_aware(r.occurred_at), as_aware(r.created_at or r.occurred_at)),
        reverse=True,
    )


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
