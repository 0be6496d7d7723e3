"""
Month Filtering and Aggregation

Pure functions over record sequences. Aggregation NEVER fails: a record
whose amount cannot be read counts as zero instead of aborting the whole set.
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from bakery_ledger.models.record import LedgerStatistics, Record, coerce_amount
from bakery_ledger.taxonomy import TransactionType


# Naive run-rate: one month of income times twelve
MONTHS_PER_YEAR = 12


def local_calendar(timestamp: datetime) -> datetime:
    """
    Interpret a timestamp in the process-local calendar.

    Aware timestamps are converted to local time; naive ones are taken as
    already local.
    """
    if timestamp.tzinfo is not None:
        return timestamp.astimezone()
    return timestamp


def in_month(record: Record, year: int, month: int) -> bool:
    occurred = local_calendar(record.occurred_at)
    return occurred.year == year and occurred.month == month


def filter_month(records: Iterable[Record], year: int, month: int) -> tuple[Record, ...]:
    """
    Records whose occurred_at falls in (year, month), in the order given.

    Args:
        records: Records in snapshot order
        year: Calendar year
        month: Calendar month, 1-12

    Raises:
        ValueError: If month is outside 1-12
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    return tuple(r for r in records if in_month(r, year, month))


def compute_statistics(records: Iterable[Record]) -> LedgerStatistics:
    """Income, expense, net and projected annual income over a record set."""
    income = Decimal("0")
    expense = Decimal("0")
    count = 0

    for record in records:
        count += 1
        amount = coerce_amount(getattr(record, "amount", None)) or Decimal("0")
        if getattr(record, "type", None) == TransactionType.INCOME:
            income += amount
        else:
            expense += amount

    return LedgerStatistics(
        income_total=income,
        expense_total=expense,
        net=income - expense,
        projected_annual=income * MONTHS_PER_YEAR,
        record_count=count,
    )


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move (year, month) by delta months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1
