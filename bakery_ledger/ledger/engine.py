"""
Ledger Engine

Owns the in-memory record collection of the active user and everything
derived from it.

FLOW:
1. set_active_user(user_id) subscribes to storage; storage pushes snapshots
2. Each snapshot goes through replace_all, which swaps the whole collection
   and recomputes the active month view synchronously
3. create/delete validate locally, then send exactly one request to storage.
   The local collection only changes when the next snapshot arrives

CRITICAL BOUNDARIES:
- Nothing invalid is ever sent to storage
- No optimistic local inserts: a failed storage call leaves state untouched
- Snapshots from a superseded subscription are dropped (generation counter)
"""

from datetime import datetime
from functools import partial
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from bakery_ledger.audit import AuditLogger
from bakery_ledger.exceptions import (
    MissingActiveUserError,
    PersistenceFailedError,
    RecordNotFoundError,
)
from bakery_ledger.ledger.export import project_rows
from bakery_ledger.ledger.statistics import (
    compute_statistics,
    filter_month,
    shift_month,
)
from bakery_ledger.models.audit import AuditEventBuilder
from bakery_ledger.models.record import (
    ExportRow,
    LedgerStatistics,
    MonthView,
    Record,
    RecordInput,
    RecordState,
)
from bakery_ledger.services.storage import (
    RecordStorageInterface,
    StorageError,
    Subscription,
)
from bakery_ledger.validation import build_record


Clock = Callable[[], datetime]
ViewListener = Callable[[MonthView], None]

# How many deleted ids record_state() remembers per session
REMOVED_HISTORY_LIMIT = 1000


def local_now() -> datetime:
    """Current time as an aware datetime in the local timezone."""
    return datetime.now().astimezone()


class LedgerEngine:
    """
    In-memory ledger for exactly one active user at a time.

    Consumers only ever receive immutable values (frozen Records, tuples,
    read-only mappings); the collection itself is replaced, never mutated.
    """

    removed_history_limit = REMOVED_HISTORY_LIMIT

    def __init__(
        self,
        storage: RecordStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger()
        self._clock = clock or local_now
        self._logger = structlog.get_logger(__name__)

        self._user_id: Optional[str] = None
        self._generation = 0
        self._subscription: Optional[Subscription] = None

        self._records: Mapping[str, Record] = MappingProxyType({})
        self._pending: dict[str, Record] = {}
        # Insertion-ordered so the oldest deletions are forgotten first
        self._removed: dict[str, None] = {}
        self._first_seen: dict[str, datetime] = {}
        self._last_created_at: Optional[datetime] = None

        today = self._clock()
        self._active_month = (today.year, today.month)
        self._view = MonthView(year=today.year, month=today.month)
        self._listeners: list[ViewListener] = []

    # =========================================================================
    # ACTIVE USER / SUBSCRIPTION
    # =========================================================================

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def generation(self) -> int:
        return self._generation

    def set_active_user(self, user_id: Optional[str]) -> None:
        """
        Switch the active user.

        Cancels the previous subscription, clears all local state and, when
        user_id is given, subscribes once for the new user. Any callback
        still in flight for the old subscription carries a stale generation
        and is ignored.
        """
        previous = self._user_id
        self._cancel_subscription()

        self._generation += 1
        self._user_id = user_id
        self._pending.clear()
        self._removed.clear()
        self._first_seen.clear()
        self._last_created_at = None
        self._swap({})

        self._audit_logger.emit(AuditEventBuilder.active_user_changed(
            previous_user_id=previous,
            user_id=user_id,
            generation=self._generation,
        ))

        if user_id is not None:
            callback = partial(self._on_snapshot, self._generation)
            self._subscription = self._storage.subscribe(user_id, callback)

    def close(self) -> None:
        """Unsubscribe and stop accepting snapshots."""
        self._cancel_subscription()
        self._generation += 1

    def _cancel_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    def _on_snapshot(self, generation: int, snapshot: list[Record]) -> None:
        if generation != self._generation:
            self._audit_logger.emit(AuditEventBuilder.stale_snapshot_discarded(
                user_id=self._user_id,
                stale_generation=generation,
                current_generation=self._generation,
            ))
            return
        self.replace_all(snapshot)

    # =========================================================================
    # COLLECTION
    # =========================================================================

    @property
    def records(self) -> Mapping[str, Record]:
        """Read-only mapping of id to Record, in snapshot order."""
        return self._records

    def replace_all(self, new_records: Iterable[Any]) -> None:
        """
        Atomically replace the whole collection with a snapshot.

        Items may be Records or raw mappings; mappings are parsed leniently
        and items that cannot be parsed at all are skipped. A mapping with
        no timestamp at all is dated when this engine first saw its id.
        Calling this twice with the same snapshot leaves every derived value
        unchanged.
        """
        collection: dict[str, Record] = {}
        for item in new_records:
            if isinstance(item, Mapping):
                item = self._with_occurred_at(item)
            try:
                record = item if isinstance(item, Record) else Record.model_validate(item)
            except ValidationError as e:
                self._logger.warning("snapshot_item_skipped", error=str(e))
                continue
            if not record.id:
                self._logger.warning("snapshot_item_without_id", record=record.main_category)
                continue
            collection[record.id] = record

        self._first_seen = {
            record_id: seen for record_id, seen in self._first_seen.items()
            if record_id in collection
        }
        self._swap(collection)

        for record_id in list(self._pending):
            if record_id in collection:
                del self._pending[record_id]

        if self._user_id is not None:
            self._audit_logger.emit(AuditEventBuilder.snapshot_applied(
                user_id=self._user_id,
                generation=self._generation,
                record_count=len(collection),
            ))

    def _with_occurred_at(self, item: Mapping[str, Any]) -> Mapping[str, Any]:
        if item.get("occurred_at") not in (None, "") or item.get("created_at") not in (None, ""):
            return item
        record_id = item.get("id")
        if not isinstance(record_id, str) or not record_id:
            return item
        if record_id not in self._first_seen:
            self._first_seen[record_id] = self._clock()
        return {**item, "occurred_at": self._first_seen[record_id]}

    def _swap(self, collection: dict[str, Record]) -> None:
        self._records = MappingProxyType(collection)
        self._recompute_view()

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def _require_user(self) -> str:
        if self._user_id is None:
            raise MissingActiveUserError("No authenticated user; refusing to write")
        return self._user_id

    def _next_timestamps(self) -> tuple[datetime, datetime]:
        now = self._clock()
        created_at = now
        if self._last_created_at is not None and now < self._last_created_at:
            created_at = self._last_created_at
        return now, created_at

    async def create(
        self,
        data: RecordInput,
        correlation_id: Optional[UUID] = None,
    ) -> Record:
        """
        Validate and submit a new record.

        Returns the record with its storage-assigned id. It stays PENDING
        until a snapshot containing it arrives.

        Raises:
            MissingActiveUserError: No active user
            InvalidCategoryError: Unknown main category or subcategory
            InvalidAmountError: Amount is not a positive finite number
            PersistenceFailedError: Storage rejected the append
        """
        user_id = self._require_user()
        occurred_at, created_at = self._next_timestamps()
        record = build_record(data, occurred_at=occurred_at, created_at=created_at)
        self._last_created_at = created_at
        generation = self._generation

        try:
            record_id = await self._storage.append(user_id, record)
        except StorageError as e:
            await self._audit_logger.log_persistence_failed(
                user_id=user_id,
                operation="append",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise PersistenceFailedError(f"Failed to save record: {e}") from e

        created = record.model_copy(update={"id": record_id})
        if generation == self._generation and record_id not in self._records:
            self._pending[record_id] = created

        await self._audit_logger.log_record_submitted(
            user_id=user_id,
            record_id=record_id,
            record_type=created.type.value,
            main_category=created.main_category,
            amount=str(created.amount),
            correlation_id=correlation_id,
        )
        return created

    async def delete(
        self,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Ask storage to delete a record.

        The local check is advisory: the local copy may be stale, storage
        performs the authoritative delete.

        Raises:
            MissingActiveUserError: No active user
            RecordNotFoundError: The id is not in the local collection
            PersistenceFailedError: Storage rejected the remove
        """
        user_id = self._require_user()
        if record_id not in self._records:
            raise RecordNotFoundError(record_id)

        try:
            await self._storage.remove(user_id, record_id)
        except StorageError as e:
            await self._audit_logger.log_persistence_failed(
                user_id=user_id,
                operation="remove",
                error_message=str(e),
                record_id=record_id,
                correlation_id=correlation_id,
            )
            raise PersistenceFailedError(f"Failed to delete record: {e}") from e

        self._removed.pop(record_id, None)
        self._removed[record_id] = None
        while len(self._removed) > self.removed_history_limit:
            del self._removed[next(iter(self._removed))]
        await self._audit_logger.log_record_deleted(
            user_id=user_id,
            record_id=record_id,
            correlation_id=correlation_id,
        )

    def record_state(self, record_id: str) -> RecordState:
        """
        Where a record is in its lifecycle, as far as this engine knows.

        Raises:
            RecordNotFoundError: The id was never seen by this engine
        """
        if record_id in self._records:
            return RecordState.PERSISTED
        if record_id in self._removed:
            return RecordState.DELETED
        if record_id in self._pending:
            return RecordState.PENDING
        raise RecordNotFoundError(record_id)

    def pending_records(self) -> tuple[Record, ...]:
        return tuple(self._pending.values())

    # =========================================================================
    # QUERIES
    # =========================================================================

    def records_in_month(self, year: int, month: int) -> tuple[Record, ...]:
        """Records of a calendar month (1-12), in snapshot order."""
        return filter_month(self._records.values(), year, month)

    @staticmethod
    def statistics(records: Iterable[Record]) -> LedgerStatistics:
        return compute_statistics(records)

    # =========================================================================
    # ACTIVE MONTH VIEW
    # =========================================================================

    @property
    def active_month(self) -> tuple[int, int]:
        return self._active_month

    @property
    def month_view(self) -> MonthView:
        return self._view

    def set_active_month(self, year: int, month: int) -> MonthView:
        if not 1 <= month <= 12:
            raise ValueError(f"Month must be between 1 and 12, got {month}")
        self._active_month = (year, month)
        self._recompute_view()
        return self._view

    def previous_month(self) -> MonthView:
        return self.set_active_month(*shift_month(*self._active_month, -1))

    def next_month(self) -> MonthView:
        return self.set_active_month(*shift_month(*self._active_month, 1))

    def add_view_listener(self, listener: ViewListener) -> Callable[[], None]:
        """
        Call listener with every recomputed month view.

        Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def export_rows(self) -> list[ExportRow]:
        """Export projection of the active month."""
        return project_rows(self._view.records)

    def _recompute_view(self) -> None:
        year, month = self._active_month
        records = self.records_in_month(year, month)
        self._view = MonthView(
            year=year,
            month=month,
            records=records,
            statistics=compute_statistics(records),
        )
        for listener in list(self._listeners):
            listener(self._view)
