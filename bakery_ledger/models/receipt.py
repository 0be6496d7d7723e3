"""
Receipt Recognition Models

CRITICAL: This is PROPOSED data from a vision model, NOT verified.
Only the total and the item names are ever used, and only to prefill the
entry form. The user still submits the form explicitly.
"""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReceiptItem(BaseModel):
    """A single purchased item as read off the receipt."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    price: Optional[Decimal] = None
    qty: Optional[Decimal] = None


class ReceiptScan(BaseModel):
    """Structured reply of the recognition collaborator."""

    items: list[ReceiptItem] = Field(default_factory=list)
    total: Decimal = Field(..., ge=0)

    def item_summary(self) -> str:
        """Comma separated item names, used as display text only."""
        return ", ".join(item.name for item in self.items)
