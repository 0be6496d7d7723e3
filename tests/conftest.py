"""Shared fixtures: in-memory collaborators and a controllable clock."""

from datetime import datetime
from typing import Optional
from uuid import uuid4

import pytest

from bakery_ledger.audit import AuditLogger
from bakery_ledger.ledger import LedgerEngine
from bakery_ledger.models.record import Record
from bakery_ledger.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecordStorage,
    RecordStorageInterface,
    StorageError,
    Subscription,
)
from bakery_ledger.taxonomy import TransactionType


class FakeClock:
    """Callable clock whose time tests set explicitly."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class ManualStorage(RecordStorageInterface):
    """
    Storage that never pushes snapshots on its own.

    Tests call deliver() to decide when (and with what) subscribers are
    notified. Appends and removes are recorded.
    """

    def __init__(self, fail_with: Optional[Exception] = None):
        self.fail_with = fail_with
        self.appended: list[tuple[str, Record]] = []
        self.removed: list[tuple[str, str]] = []
        self.callbacks: list[tuple[Subscription, object]] = []

    def subscribe(self, user_id, callback):
        subscription = Subscription(user_id)
        self.callbacks.append((subscription, callback))
        return subscription

    async def append(self, user_id, record):
        if self.fail_with is not None:
            raise self.fail_with
        record_id = uuid4().hex
        self.appended.append((user_id, record.model_copy(update={"id": record_id})))
        return record_id

    async def remove(self, user_id, record_id):
        if self.fail_with is not None:
            raise self.fail_with
        self.removed.append((user_id, record_id))
        return True

    async def list_records(self, user_id):
        return [r for uid, r in self.appended if uid == user_id]

    def deliver(self, index: int, records: list) -> None:
        _, callback = self.callbacks[index]
        callback(list(records))


def make_record(
    record_type: TransactionType = TransactionType.INCOME,
    amount="100",
    main_category: str = "蛋糕",
    sub_category: str = "水果奶油",
    size_attribute: Optional[str] = None,
    occurred_at: datetime = datetime(2024, 1, 15, 12, 0),
    record_id: Optional[str] = None,
    note: str = "",
) -> Record:
    return Record(
        id=record_id if record_id is not None else uuid4().hex,
        type=record_type,
        amount=amount,
        main_category=main_category,
        sub_category=sub_category,
        size_attribute=size_attribute,
        note=note,
        occurred_at=occurred_at,
        created_at=occurred_at,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 15, 12, 0))


@pytest.fixture
def record_storage():
    return InMemoryRecordStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def engine(record_storage, audit_logger, clock):
    return LedgerEngine(record_storage, audit_logger=audit_logger, clock=clock)


@pytest.fixture
def manual_storage():
    return ManualStorage()


@pytest.fixture
def failing_storage():
    return ManualStorage(fail_with=StorageError("backend unavailable"))

