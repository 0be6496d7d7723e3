"""
Data Models Package

Pydantic models for records, statistics, export rows, receipt scans and
audit events.
"""

from bakery_ledger.models.record import (
    ExportRow,
    LedgerStatistics,
    MonthView,
    Record,
    RecordInput,
    RecordState,
    coerce_amount,
)
from bakery_ledger.models.receipt import ReceiptItem, ReceiptScan
from bakery_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Record models
    "ExportRow",
    "LedgerStatistics",
    "MonthView",
    "Record",
    "RecordInput",
    "RecordState",
    "coerce_amount",
    # Receipt models
    "ReceiptItem",
    "ReceiptScan",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
