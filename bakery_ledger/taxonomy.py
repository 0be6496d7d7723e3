"""
Category Taxonomy

The fixed classification every record is validated against:
- Income categories, each with an ordered list of subcategories and a flag
  saying whether a size (cake diameter) applies
- Expense categories, a flat list with no subcategories and no size

DESIGN DECISION: The taxonomy is compiled-in configuration, not user data.
Nothing here can be mutated at runtime; lookups return tuples and the income
table is exposed through a read-only mapping.
"""

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bakery_ledger.exceptions import InvalidCategoryError


# Fixed display currency for every amount in the ledger
CURRENCY = "AED"


class TransactionType(str, Enum):
    """Direction of a ledger record."""
    INCOME = "income"
    EXPENSE = "expense"


class ExpenseCategory(str, Enum):
    """Supported expense categories, in display order."""
    RAW_MATERIALS = "原材料"
    DAIRY = "乳制品"
    PACKAGING = "包装"
    RENT_AND_UTILITIES = "房租水电"
    OTHER = "其它"


class IncomeCategory(BaseModel):
    """An income category and its ordered subcategories."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    subcategories: tuple[str, ...] = Field(..., min_length=1)
    has_size_attribute: bool = False

    @field_validator("subcategories")
    @classmethod
    def unique_subcategories(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if len(set(v)) != len(v):
            raise ValueError("Subcategories must be unique within a category")
        if any(not sub for sub in v):
            raise ValueError("Subcategories must be non-empty")
        return v


_INCOME_CATEGORIES = (
    IncomeCategory(
        name="蛋糕",
        subcategories=("水果奶油", "豆乳香芋", "奥利奥咸奶油", "其它"),
        has_size_attribute=True,
    ),
    IncomeCategory(
        name="甜品",
        subcategories=("纸杯蛋糕", "花酥", "马卡龙", "其它"),
    ),
    IncomeCategory(
        name="烘焙课程",
        subcategories=("初级", "中级", "高级"),
    ),
)

INCOME_TAXONOMY: Mapping[str, IncomeCategory] = MappingProxyType(
    {category.name: category for category in _INCOME_CATEGORIES}
)

# Sizes offered for size-bearing categories; the form preselects the second
SIZE_OPTIONS: tuple[str, ...] = ("4寸", "6寸", "8寸", "10寸")


def list_main_categories(transaction_type: TransactionType) -> tuple[str, ...]:
    """
    List main category names for a transaction type.

    Income names come back in taxonomy order, expense names in the
    fixed list order.
    """
    if TransactionType(transaction_type) is TransactionType.INCOME:
        return tuple(INCOME_TAXONOMY)
    return tuple(category.value for category in ExpenseCategory)


def get_income_category(main_category: str) -> IncomeCategory:
    """
    Resolve an income category by name.

    Raises:
        InvalidCategoryError: If the name is not an income category
    """
    try:
        return INCOME_TAXONOMY[main_category]
    except KeyError:
        raise InvalidCategoryError(
            main_category,
            f"Unknown income category: {main_category!r}",
        ) from None


def list_subcategories(main_category: str) -> tuple[str, ...]:
    """Ordered subcategories of an income category."""
    return get_income_category(main_category).subcategories


def has_size_attribute(main_category: str) -> bool:
    """Whether records of this income category carry a size."""
    return get_income_category(main_category).has_size_attribute


def is_valid_expense_category(name: str) -> bool:
    return any(category.value == name for category in ExpenseCategory)


def is_valid_main_category(transaction_type: TransactionType, name: str) -> bool:
    return name in list_main_categories(transaction_type)


def list_size_options() -> tuple[str, ...]:
    return SIZE_OPTIONS


def default_size_option() -> str:
    return SIZE_OPTIONS[1]
