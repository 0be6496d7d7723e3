"""Ledger engine, month statistics, export projection and entry form."""

from bakery_ledger.ledger.engine import LedgerEngine, local_now
from bakery_ledger.ledger.export import export_headers, project_rows
from bakery_ledger.ledger.forms import EntryForm
from bakery_ledger.ledger.statistics import (
    compute_statistics,
    filter_month,
    shift_month,
)

__all__ = [
    "EntryForm",
    "LedgerEngine",
    "compute_statistics",
    "export_headers",
    "filter_month",
    "local_now",
    "project_rows",
    "shift_month",
]
