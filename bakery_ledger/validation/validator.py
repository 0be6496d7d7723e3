"""
Record Validation

Turns a RecordInput into a Record, or refuses to.

Checks, in order:
1. Main category belongs to the taxonomy of the record's type
2. For income, the subcategory belongs to the main category
3. Amount parses as a finite number greater than zero

Derivations:
- Expense records never carry a subcategory or a size
- A size is kept only when the income category takes one; a size supplied
  for any other category is stripped, and a missing one is allowed

IMPORTANT: Validation NEVER silently corrects categories or amounts.
Every failure surfaces as InvalidCategoryError or InvalidAmountError before
anything is sent to storage.
"""

import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from bakery_ledger.exceptions import InvalidAmountError, InvalidCategoryError
from bakery_ledger.models.record import Record, RecordInput
from bakery_ledger.taxonomy import (
    TransactionType,
    get_income_category,
    is_valid_expense_category,
)


def parse_amount(raw: Any) -> Decimal:
    """
    Parse user input into a positive, finite Decimal.

    Accepts Decimal, int, float and numeric strings (surrounding whitespace
    is ignored).

    Raises:
        InvalidAmountError: For non-numeric, non-finite, zero or negative input
    """
    if raw is None or isinstance(raw, bool):
        raise InvalidAmountError(raw, "Amount is required")

    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        if not math.isfinite(raw):
            raise InvalidAmountError(raw, f"Amount must be finite: {raw!r}")
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise InvalidAmountError(raw, "Amount is required")
        try:
            value = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(raw, f"Amount is not a number: {raw!r}") from None
    else:
        raise InvalidAmountError(raw, f"Unsupported amount type: {type(raw).__name__}")

    if not value.is_finite():
        raise InvalidAmountError(raw, f"Amount must be finite: {raw!r}")
    if value <= 0:
        raise InvalidAmountError(raw, f"Amount must be greater than zero: {raw!r}")
    return value


def resolve_categories(
    transaction_type: TransactionType,
    main_category: str,
    sub_category: Optional[str],
) -> str:
    """
    Validate main/sub category for a record type.

    Returns the subcategory to store ("" for expenses).

    Raises:
        InvalidCategoryError: If either category is unknown
    """
    if transaction_type is TransactionType.EXPENSE:
        if not is_valid_expense_category(main_category):
            raise InvalidCategoryError(
                main_category,
                f"Unknown expense category: {main_category!r}",
            )
        return ""

    category = get_income_category(main_category)
    if sub_category not in category.subcategories:
        raise InvalidCategoryError(
            sub_category or "",
            f"Subcategory {sub_category!r} is not valid for {main_category!r}",
        )
    return sub_category


def resolve_size(
    transaction_type: TransactionType,
    main_category: str,
    size_attribute: Optional[str],
) -> Optional[str]:
    """Keep the size only where the category takes one."""
    if transaction_type is not TransactionType.INCOME:
        return None
    if not get_income_category(main_category).has_size_attribute:
        return None
    return size_attribute or None


def build_record(
    data: RecordInput,
    occurred_at: datetime,
    created_at: datetime,
) -> Record:
    """
    Validate a creation request and build the (id-less) Record.

    Raises:
        InvalidCategoryError: Unknown main category or subcategory
        InvalidAmountError: Amount is not a positive finite number
    """
    transaction_type = TransactionType(data.type)
    sub_category = resolve_categories(
        transaction_type, data.main_category, data.sub_category
    )
    amount = parse_amount(data.amount)
    size = resolve_size(transaction_type, data.main_category, data.size_attribute)

    return Record(
        type=transaction_type,
        amount=amount,
        main_category=data.main_category,
        sub_category=sub_category,
        size_attribute=size,
        note=data.note,
        attachment=data.attachment,
        occurred_at=occurred_at,
        created_at=created_at,
    )
