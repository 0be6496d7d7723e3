"""
Tests for the ledger engine

Covers subscription lifecycle, snapshot replacement, create/delete against
storage and the active month view.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from bakery_ledger.exceptions import (
    InvalidAmountError,
    InvalidCategoryError,
    MissingActiveUserError,
    PersistenceFailedError,
    RecordNotFoundError,
)
from bakery_ledger.ledger import LedgerEngine
from bakery_ledger.models.record import RecordInput, RecordState
from bakery_ledger.services.storage import StorageError
from bakery_ledger.taxonomy import TransactionType

from conftest import make_record


def income(amount="100", main="蛋糕", sub="水果奶油", size=None, note=""):
    return RecordInput(type=TransactionType.INCOME, amount=amount, main_category=main,
                       sub_category=sub, size_attribute=size, note=note)


def expense(amount="30", main="原材料", note=""):
    return RecordInput(type=TransactionType.EXPENSE, amount=amount, main_category=main, note=note)


class TestEndToEnd:

    async def test_two_month_example(self, engine, clock):
        engine.set_active_user("baker")

        clock.now = datetime(2024, 1, 10, 9, 0)
        await engine.create(income("100", "蛋糕", "水果奶油"))
        clock.now = datetime(2024, 1, 20, 9, 0)
        await engine.create(expense("30", "原材料"))
        clock.now = datetime(2024, 2, 5, 9, 0)
        await engine.create(income("50", "甜品", "马卡龙"))

        january = engine.records_in_month(2024, 1)
        assert sorted(r.main_category for r in january) == ["原材料", "蛋糕"]

        stats = engine.statistics(january)
        assert stats.income_total == Decimal("100")
        assert stats.expense_total == Decimal("30")
        assert stats.net == Decimal("70")
        assert stats.projected_annual == Decimal("1200")

    async def test_month_view_follows_snapshots(self, engine, clock):
        engine.set_active_user("baker")
        assert engine.active_month == (2024, 1)

        await engine.create(income("80"))
        view = engine.month_view
        assert len(view.records) == 1
        assert view.statistics.income_total == Decimal("80")

        view = engine.next_month()
        assert view.label == "2024年2月"
        assert view.records == ()

        view = engine.previous_month()
        assert view.statistics.income_total == Decimal("80")


class TestCreate:

    @pytest.mark.parametrize("amount", [0, -5, "abc"])
    async def test_invalid_amount_never_reaches_storage(self, manual_storage, audit_logger, clock, amount):
        engine = LedgerEngine(manual_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("baker")

        with pytest.raises(InvalidAmountError):
            await engine.create(income(amount))
        assert manual_storage.appended == []

    async def test_unknown_income_category(self, manual_storage, audit_logger, clock):
        engine = LedgerEngine(manual_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("baker")

        with pytest.raises(InvalidCategoryError):
            await engine.create(income(main="面包", sub="其它"))
        assert manual_storage.appended == []

    async def test_untrimmed_category_is_rejected(self, manual_storage, audit_logger, clock):
        engine = LedgerEngine(manual_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("baker")

        with pytest.raises(InvalidCategoryError):
            await engine.create(income(main=" 蛋糕 "))
        with pytest.raises(InvalidCategoryError):
            await engine.create(expense(main="原材料 "))
        assert manual_storage.appended == []

    async def test_cake_without_size_succeeds(self, engine):
        engine.set_active_user("baker")
        record = await engine.create(income("100", "蛋糕", "其它", size=None))
        assert record.size_attribute is None
        assert record.id in engine.records

    async def test_size_stripped_for_sizeless_category(self, engine):
        engine.set_active_user("baker")
        record = await engine.create(income("60", "烘焙课程", "初级", size="8寸"))
        assert engine.records[record.id].size_attribute is None

    async def test_requires_active_user(self, engine):
        with pytest.raises(MissingActiveUserError):
            await engine.create(income())

    async def test_occurred_at_is_stamped_now(self, engine, clock):
        engine.set_active_user("baker")
        clock.now = datetime(2024, 1, 18, 16, 45)
        record = await engine.create(expense())
        assert record.occurred_at == clock.now

    async def test_created_at_never_goes_backwards(self, engine, clock):
        engine.set_active_user("baker")
        first = await engine.create(expense())
        clock.now = datetime(2024, 1, 15, 11, 0)
        second = await engine.create(expense())
        assert second.created_at >= first.created_at

    async def test_storage_failure_leaves_state_unchanged(self, failing_storage, audit_logger, audit_storage, clock):
        engine = LedgerEngine(failing_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("baker")
        before = engine.month_view

        with pytest.raises(PersistenceFailedError):
            await engine.create(income())

        assert engine.records == {}
        assert engine.pending_records() == ()
        assert engine.month_view == before
        assert "persistence_failed" in audit_storage.event_types("baker")

    async def test_no_optimistic_insert(self, manual_storage, audit_logger, clock):
        engine = LedgerEngine(manual_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("baker")

        record = await engine.create(income())
        assert record.id not in engine.records
        assert engine.record_state(record.id) is RecordState.PENDING

        _, stored = manual_storage.appended[0]
        manual_storage.deliver(0, [stored])
        assert engine.record_state(record.id) is RecordState.PERSISTED
        assert engine.pending_records() == ()


class TestDelete:

    async def test_delete_removes_after_snapshot(self, engine):
        engine.set_active_user("baker")
        record = await engine.create(income())

        await engine.delete(record.id)
        assert record.id not in engine.records
        assert engine.record_state(record.id) is RecordState.DELETED

    async def test_unknown_id(self, engine):
        engine.set_active_user("baker")
        with pytest.raises(RecordNotFoundError):
            await engine.delete("missing")

    async def test_requires_active_user(self, engine):
        with pytest.raises(MissingActiveUserError):
            await engine.delete("anything")

    async def test_storage_failure_keeps_record(self, manual_storage, audit_logger, clock):
        engine = LedgerEngine(manual_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("baker")
        manual_storage.deliver(0, [make_record(record_id="r1")])

        manual_storage.fail_with = StorageError("quota")
        with pytest.raises(PersistenceFailedError):
            await engine.delete("r1")
        assert "r1" in engine.records

    async def test_deleted_history_is_bounded(self, engine):
        engine.removed_history_limit = 2
        engine.set_active_user("baker")
        records = [await engine.create(income()) for _ in range(3)]

        for record in records:
            await engine.delete(record.id)

        with pytest.raises(RecordNotFoundError):
            engine.record_state(records[0].id)
        assert engine.record_state(records[1].id) is RecordState.DELETED
        assert engine.record_state(records[2].id) is RecordState.DELETED


class TestReplaceAll:

    def test_replace_is_idempotent(self, engine):
        engine.set_active_user("baker")
        snapshot = [
            make_record(TransactionType.INCOME, "100", record_id="a"),
            make_record(TransactionType.EXPENSE, "30", "原材料", "", record_id="b"),
        ]
        engine.replace_all(snapshot)
        first_view = engine.month_view
        first_stats = engine.statistics(engine.records_in_month(2024, 1))

        engine.replace_all(snapshot)
        assert engine.month_view == first_view
        assert engine.statistics(engine.records_in_month(2024, 1)) == first_stats

    def test_replace_drops_missing_records(self, engine):
        engine.set_active_user("baker")
        engine.replace_all([make_record(record_id="a"), make_record(record_id="b")])
        engine.replace_all([make_record(record_id="b")])
        assert list(engine.records) == ["b"]

    def test_snapshot_order_preserved(self, engine):
        engine.set_active_user("baker")
        engine.replace_all([
            make_record(record_id="new", occurred_at=datetime(2024, 1, 20)),
            make_record(record_id="old", occurred_at=datetime(2024, 1, 2)),
        ])
        assert [r.id for r in engine.month_view.records] == ["new", "old"]

    def test_raw_mappings_parsed_leniently(self, engine):
        engine.set_active_user("baker")
        engine.replace_all([
            {"id": "x", "type": "income", "amount": "garbage", "main_category": "甜品",
             "sub_category": "花酥", "occurred_at": datetime(2024, 1, 3)},
            {"id": "y", "type": "not-a-type", "main_category": "甜品",
             "occurred_at": datetime(2024, 1, 3)},
            {"type": "expense", "amount": "5", "main_category": "包装",
             "occurred_at": datetime(2024, 1, 3)},
        ])
        assert list(engine.records) == ["x"]
        assert engine.records["x"].amount is None
        assert engine.month_view.statistics.income_total == Decimal("0")

    def test_unhashable_category_skips_only_that_item(self, engine):
        engine.set_active_user("baker")
        engine.replace_all([
            make_record(record_id="good"),
            {"id": "bad", "type": "income", "amount": "5", "main_category": ["x"],
             "occurred_at": datetime(2024, 1, 3)},
            {"id": "worse", "type": ["income"], "amount": "5", "main_category": "甜品",
             "occurred_at": datetime(2024, 1, 3)},
        ])
        assert list(engine.records) == ["good"]

    def test_missing_occurred_at_uses_created_at(self, engine):
        engine.set_active_user("baker")
        engine.replace_all([
            {"id": "a", "type": "expense", "amount": "5", "main_category": "包装",
             "created_at": datetime(2024, 1, 4, 8, 0)},
        ])
        assert engine.records["a"].occurred_at == datetime(2024, 1, 4, 8, 0)

    def test_undated_item_keeps_first_seen_time(self, engine, clock):
        engine.set_active_user("baker")
        undated = {"id": "a", "type": "expense", "amount": "5", "main_category": "包装"}

        engine.replace_all([undated])
        first_view = engine.month_view
        assert engine.records["a"].occurred_at == clock.now

        clock.now = datetime(2024, 2, 20, 9, 0)
        engine.replace_all([undated])
        assert engine.records["a"].occurred_at == datetime(2024, 1, 15, 12, 0)
        assert engine.month_view == first_view

    def test_records_mapping_is_read_only(self, engine):
        engine.set_active_user("baker")
        engine.replace_all([make_record(record_id="a")])
        with pytest.raises(TypeError):
            engine.records["b"] = make_record(record_id="b")


class TestActiveUser:

    def test_subscribes_once_per_user(self, engine, record_storage):
        engine.set_active_user("baker")
        assert record_storage.subscriber_count("baker") == 1

        engine.set_active_user("other")
        assert record_storage.subscriber_count("baker") == 0
        assert record_storage.subscriber_count("other") == 1

    def test_sign_out_clears_state(self, engine, record_storage):
        record_storage.seed("baker", [make_record(record_id="a")])
        engine.set_active_user("baker")
        assert "a" in engine.records

        engine.set_active_user(None)
        assert engine.records == {}
        assert engine.user_id is None
        assert record_storage.subscriber_count("baker") == 0

    def test_stale_snapshot_ignored(self, manual_storage, audit_logger, audit_storage, clock):
        engine = LedgerEngine(manual_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("first")
        engine.set_active_user("second")

        manual_storage.deliver(0, [make_record(record_id="leak")])
        assert engine.records == {}

        manual_storage.deliver(1, [make_record(record_id="mine")])
        assert list(engine.records) == ["mine"]

    def test_close_stops_snapshots(self, manual_storage, audit_logger, clock):
        engine = LedgerEngine(manual_storage, audit_logger=audit_logger, clock=clock)
        engine.set_active_user("baker")
        engine.close()

        manual_storage.deliver(0, [make_record(record_id="late")])
        assert engine.records == {}

    def test_other_users_records_not_visible(self, engine, record_storage):
        record_storage.seed("someone-else", [make_record(record_id="theirs")])
        engine.set_active_user("baker")
        assert engine.records == {}


class TestMonthNavigation:

    def test_set_active_month_validates(self, engine):
        with pytest.raises(ValueError):
            engine.set_active_month(2024, 13)

    def test_year_rollover(self, engine):
        engine.set_active_month(2024, 1)
        assert engine.previous_month().label == "2023年12月"
        assert engine.next_month().label == "2024年1月"

    def test_listener_receives_recomputed_views(self, engine):
        seen = []
        remove = engine.add_view_listener(seen.append)

        engine.set_active_user("baker")
        engine.next_month()
        remove()
        engine.previous_month()

        assert seen[-1].month == 2
        assert all(view.year == 2024 for view in seen)

    def test_export_rows_cover_active_month(self, engine):
        engine.set_active_user("baker")
        engine.replace_all([
            make_record(record_id="a", size_attribute="8寸"),
            make_record(TransactionType.EXPENSE, "12", "包装", "", record_id="b"),
            make_record(record_id="c", occurred_at=datetime(2024, 2, 1)),
        ])
        rows = engine.export_rows()
        assert [row.size for row in rows] == ["8寸", "-"]
