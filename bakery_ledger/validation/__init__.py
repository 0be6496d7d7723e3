"""Validation package."""

from bakery_ledger.validation.validator import (
    build_record,
    parse_amount,
    resolve_categories,
    resolve_size,
)

__all__ = [
    "build_record",
    "parse_amount",
    "resolve_categories",
    "resolve_size",
]
