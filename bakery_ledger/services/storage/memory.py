"""
In-Memory Storage

Process-local implementations of the storage interfaces. Used in tests and
for running the ledger without any external backend.

Snapshots are pushed synchronously to subscribers after every append/remove.
"""

from collections import defaultdict
from typing import Optional
from uuid import UUID, uuid4

from bakery_ledger.models.audit import AuditEvent
from bakery_ledger.models.record import Record
from bakery_ledger.services.storage.interface import (
    AuditStorageInterface,
    RecordStorageInterface,
    SnapshotCallback,
    Subscription,
    sort_snapshot,
)


class InMemoryRecordStorage(RecordStorageInterface):
    """Records kept in a dict per user."""

    def __init__(self):
        self._records: dict[str, dict[str, Record]] = defaultdict(dict)
        self._subscribers: dict[str, list[tuple[Subscription, SnapshotCallback]]] = defaultdict(list)

    def subscribe(self, user_id: str, callback: SnapshotCallback) -> Subscription:
        def cancel() -> None:
            self._subscribers[user_id].remove(entry)

        subscription = Subscription(user_id, on_cancel=cancel)
        entry = (subscription, callback)
        self._subscribers[user_id].append(entry)
        callback(self._snapshot(user_id))
        return subscription

    async def append(self, user_id: str, record: Record) -> str:
        record_id = uuid4().hex
        self._records[user_id][record_id] = record.model_copy(update={"id": record_id})
        self._notify(user_id)
        return record_id

    async def remove(self, user_id: str, record_id: str) -> bool:
        removed = self._records[user_id].pop(record_id, None) is not None
        if removed:
            self._notify(user_id)
        return removed

    async def list_records(self, user_id: str) -> list[Record]:
        return self._snapshot(user_id)

    def seed(self, user_id: str, records: list[Record]) -> list[str]:
        """Insert records directly (ids are generated if missing) and notify."""
        ids = []
        for record in records:
            record_id = record.id or uuid4().hex
            self._records[user_id][record_id] = record.model_copy(update={"id": record_id})
            ids.append(record_id)
        self._notify(user_id)
        return ids

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers[user_id])

    def _snapshot(self, user_id: str) -> list[Record]:
        return sort_snapshot(list(self._records[user_id].values()))

    def _notify(self, user_id: str) -> None:
        snapshot = self._snapshot(user_id)
        for _, callback in list(self._subscribers[user_id]):
            callback(list(snapshot))


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]

    def event_types(self, user_id: Optional[str] = None) -> list[str]:
        return [
            e.event_type.value
            for e in self.events
            if user_id is None or e.user_id == user_id
        ]
