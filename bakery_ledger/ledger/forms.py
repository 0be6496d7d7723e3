"""
Entry Form State

Holds what the user is typing before a record is submitted. The form keeps
its categories consistent with the selected type, but it does NOT validate
amounts; that is the engine's job on submit.
"""

from typing import Optional

from bakery_ledger.exceptions import InvalidCategoryError
from bakery_ledger.models.receipt import ReceiptScan
from bakery_ledger.models.record import RecordInput
from bakery_ledger.taxonomy import (
    TransactionType,
    default_size_option,
    has_size_attribute,
    is_valid_main_category,
    list_main_categories,
    list_subcategories,
)


RECEIPT_NOTE_PREFIX = "小票识别: "


class EntryForm:
    """
    Mutable entry form.

    Starts as an income entry on the first income category and its first
    subcategory, with the default size preselected.
    """

    def __init__(self):
        self.type = TransactionType.INCOME
        self.amount = ""
        self.main_category = list_main_categories(TransactionType.INCOME)[0]
        self.sub_category: Optional[str] = list_subcategories(self.main_category)[0]
        self.size_attribute = default_size_option()
        self.note = ""
        self.attachment: Optional[str] = None

    def switch_type(self, transaction_type: TransactionType) -> None:
        """Change the type and reset categories to that type's first entries."""
        self.type = TransactionType(transaction_type)
        self.main_category = list_main_categories(self.type)[0]
        if self.type is TransactionType.INCOME:
            self.sub_category = list_subcategories(self.main_category)[0]
        else:
            self.sub_category = None

    def select_main_category(self, name: str) -> None:
        """
        Select a main category of the current type.

        Raises:
            InvalidCategoryError: If the name does not belong to the current type
        """
        if not is_valid_main_category(self.type, name):
            raise InvalidCategoryError(
                name,
                f"{name!r} is not a {self.type.value} category",
            )
        self.main_category = name
        if self.type is TransactionType.INCOME:
            self.sub_category = list_subcategories(name)[0]

    @property
    def shows_size(self) -> bool:
        return self.type is TransactionType.INCOME and has_size_attribute(self.main_category)

    def to_input(self) -> RecordInput:
        """Snapshot the form as a creation request."""
        is_income = self.type is TransactionType.INCOME
        return RecordInput(
            type=self.type,
            amount=self.amount,
            main_category=self.main_category,
            sub_category=self.sub_category if is_income else None,
            size_attribute=self.size_attribute if self.shows_size else None,
            note=self.note,
            attachment=self.attachment,
        )

    def apply_receipt(self, scan: ReceiptScan) -> None:
        """Prefill the form from a recognized receipt."""
        self.amount = str(scan.total)
        self.note = f"{RECEIPT_NOTE_PREFIX}{scan.item_summary()}"
        self.switch_type(TransactionType.EXPENSE)

    def reset_after_save(self) -> None:
        """Clear the per-entry fields; type and categories stay selected."""
        self.amount = ""
        self.note = ""
        self.attachment = None
