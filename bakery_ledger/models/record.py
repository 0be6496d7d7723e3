"""
Core Data Models for the Bakery Ledger

These models define the schemas flowing between the engine, the storage
collaborator and the export/recognition adapters.

DESIGN DECISION: Two shapes for one transaction.
- RecordInput is what a caller submits. Its amount is kept raw so the
  validation layer can reject it with a domain error before anything is sent
  to storage.
- Record is what storage hands back. It is parsed leniently: a malformed
  amount becomes None instead of failing the whole snapshot, so statistics
  can still be computed over the rest.
"""

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from bakery_ledger.taxonomy import INCOME_TAXONOMY, TransactionType


def coerce_amount(value: Any) -> Optional[Decimal]:
    """
    Best-effort conversion of a stored amount to Decimal.

    Returns None for anything that is not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return Decimal(str(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            return None
        return parsed if parsed.is_finite() else None
    return None


# =============================================================================
# ENUMS
# =============================================================================

class RecordState(str, Enum):
    """
    Lifecycle of a record as seen by the engine.

    PENDING   -> submitted to storage, not yet seen in a snapshot
    PERSISTED -> present in the latest snapshot
    DELETED   -> removal submitted and the record is gone from the snapshot
    """
    PENDING = "pending"
    PERSISTED = "persisted"
    DELETED = "deleted"


# =============================================================================
# RECORD MODELS
# =============================================================================

class RecordInput(BaseModel):
    """
    A creation request, before validation against the taxonomy.

    amount is whatever the user typed; the validator decides whether it is a
    positive finite number. Category names are kept exactly as given, so
    " 蛋糕 " is rejected rather than trimmed into a valid name.
    """
    type: TransactionType
    amount: Any = None
    main_category: str
    sub_category: Optional[str] = None
    size_attribute: Optional[str] = None
    note: str = ""
    attachment: Optional[str] = Field(
        default=None,
        description="Photo payload (data URL); never interpreted",
    )

    @field_validator("note", mode="before")
    @classmethod
    def strip_note(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class Record(BaseModel):
    """
    A single ledger transaction.

    Records are immutable once built; there is no update operation.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: Optional[str] = Field(
        default=None,
        description="Assigned by storage on creation",
    )
    type: TransactionType
    amount: Optional[Decimal] = Field(
        default=None,
        description="Amount in the display currency; None if unreadable",
    )
    main_category: str
    sub_category: str = ""
    size_attribute: Optional[str] = None
    note: str = ""
    attachment: Optional[str] = None
    occurred_at: datetime
    created_at: Optional[datetime] = None

    @field_validator("amount", mode="before")
    @classmethod
    def lenient_amount(cls, v: Any) -> Optional[Decimal]:
        return coerce_amount(v)

    @field_validator("sub_category", "note", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("size_attribute", mode="before")
    @classmethod
    def empty_size_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="before")
    @classmethod
    def drop_inapplicable_fields(cls, data: Any) -> Any:
        """
        Size is present only for size-bearing income categories and
        subcategory only for income. Stray values are dropped here so no
        consumer ever sees them.

        A stored record without occurred_at falls back to its created_at.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if data.get("occurred_at") in (None, "") and data.get("created_at") not in (None, ""):
            data["occurred_at"] = data["created_at"]

        record_type = data.get("type")
        try:
            record_type = TransactionType(record_type)
        except (TypeError, ValueError):
            return data

        if record_type is TransactionType.EXPENSE:
            data["sub_category"] = ""
            data["size_attribute"] = None
            return data

        main_category = data.get("main_category")
        if not isinstance(main_category, str):
            # Left for field validation to reject
            return data
        category = INCOME_TAXONOMY.get(main_category.strip())
        if category is not None and not category.has_size_attribute:
            data["size_attribute"] = None
        return data

    @property
    def is_income(self) -> bool:
        return self.type is TransactionType.INCOME


class LedgerStatistics(BaseModel):
    """Aggregates over a set of records."""
    model_config = ConfigDict(frozen=True)

    income_total: Decimal = Decimal("0")
    expense_total: Decimal = Decimal("0")
    net: Decimal = Decimal("0")
    projected_annual: Decimal = Decimal("0")
    record_count: int = Field(default=0, ge=0)


class MonthView(BaseModel):
    """The records of one calendar month plus their statistics."""
    model_config = ConfigDict(frozen=True)

    year: int
    month: int = Field(ge=1, le=12)
    records: tuple[Record, ...] = ()
    statistics: LedgerStatistics = Field(default_factory=LedgerStatistics)

    @property
    def label(self) -> str:
        return f"{self.year}年{self.month}月"


class ExportRow(BaseModel):
    """
    One flat, already-localized row handed to the spreadsheet exporter.

    Column order: date, type label, category, subcategory, size, amount, note.
    """
    model_config = ConfigDict(frozen=True)

    date: str
    type_label: str
    main_category: str
    sub_category: str = ""
    size: str = "-"
    amount: Optional[Decimal] = None
    note: str = ""

    def to_cells(self) -> list:
        return [
            self.date,
            self.type_label,
            self.main_category,
            self.sub_category,
            self.size,
            self.amount,
            self.note,
        ]
