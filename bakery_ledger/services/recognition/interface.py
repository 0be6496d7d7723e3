"""
Receipt Recognition Interface

Recognizers turn a photo of a purchase receipt into a ReceiptScan.
The result is a SUGGESTION used to prefill the entry form; it is never
persisted on its own.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from bakery_ledger.models.receipt import ReceiptScan


class ReceiptRecognizer(ABC):
    """Abstract interface for receipt recognition backends."""

    @abstractmethod
    async def recognize(
        self,
        image_data_url: str,
        correlation_id: Optional[UUID] = None,
    ) -> ReceiptScan:
        """
        Read items and total off a receipt image.

        Args:
            image_data_url: The photo as a data URL (data:<mime>;base64,<data>)

        Raises:
            RecognitionFailedError: If the image could not be read
        """
        pass
