"""Receipt recognition services package."""

from bakery_ledger.services.recognition.gemini_service import (
    RECEIPT_PROMPT,
    GeminiReceiptRecognizer,
    parse_receipt_reply,
    split_data_url,
)
from bakery_ledger.services.recognition.interface import ReceiptRecognizer

__all__ = [
    "GeminiReceiptRecognizer",
    "RECEIPT_PROMPT",
    "ReceiptRecognizer",
    "parse_receipt_reply",
    "split_data_url",
]
