"""Flat, localized row projection handed to the spreadsheet exporter."""

from typing import Iterable

from bakery_ledger.ledger.statistics import local_calendar
from bakery_ledger.models.record import ExportRow, Record
from bakery_ledger.taxonomy import CURRENCY, TransactionType


TYPE_LABELS = {
    TransactionType.INCOME: "收入",
    TransactionType.EXPENSE: "支出",
}

SIZE_PLACEHOLDER = "-"


def export_headers(currency: str = CURRENCY) -> list[str]:
    return ["日期", "类型", "一级分类", "二级分类/明细", "尺寸", f"金额 ({currency})", "备注"]


def format_date(record: Record) -> str:
    occurred = local_calendar(record.occurred_at)
    return f"{occurred.year}/{occurred.month}/{occurred.day}"


def project_rows(records: Iterable[Record]) -> list[ExportRow]:
    """One ExportRow per record, in the order given."""
    return [
        ExportRow(
            date=format_date(record),
            type_label=TYPE_LABELS.get(record.type, str(record.type)),
            main_category=record.main_category,
            sub_category=record.sub_category or "",
            size=record.size_attribute or SIZE_PLACEHOLDER,
            amount=record.amount,
            note=record.note or "",
        )
        for record in records
    ]
