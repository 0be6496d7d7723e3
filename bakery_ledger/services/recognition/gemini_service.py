"""
Receipt Recognition using Gemini

Sends the receipt photo inline together with a fixed instruction prompt and
expects a JSON object back:

    {"items": [{"name": "...", "price": 0, "qty": 0}], "total": 0}

The model often wraps the JSON in prose or code fences, so the first
{...} span of the reply is extracted before parsing.

CRITICAL: Only the total and the item names are used downstream. Anything
that does not validate into a ReceiptScan is a RecognitionFailedError;
nothing is guessed.
"""

import json
import re
from typing import Any, Optional
from uuid import UUID

import google.generativeai as genai
import structlog
from pydantic import ValidationError
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from bakery_ledger.config import GeminiSettings, get_settings
from bakery_ledger.exceptions import RecognitionFailedError
from bakery_ledger.models.receipt import ReceiptScan
from bakery_ledger.services.recognition.interface import ReceiptRecognizer


RECEIPT_PROMPT = (
    "你是一个小票识别助手。请识别这张烘焙原材料采购小票中的商品条目、单价、数量和总金额。"
    '请以JSON格式返回：{ "items": [{ "name": "string", "price": number, "qty": number }], '
    '"total": number }。只返回JSON数据，不要有任何其他解释。'
)

DEFAULT_MIME_TYPE = "image/png"

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)
_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)


def split_data_url(image_data_url: str) -> tuple[str, str]:
    """
    Split a data URL into (mime_type, base64 payload).

    A bare base64 string is accepted and treated as PNG.
    """
    if not image_data_url:
        raise RecognitionFailedError("No receipt image attached")

    match = _DATA_URL.match(image_data_url)
    if match is None:
        return DEFAULT_MIME_TYPE, image_data_url

    data = match.group("data")
    if not data:
        raise RecognitionFailedError("Receipt image is empty")
    return match.group("mime") or DEFAULT_MIME_TYPE, data


def parse_receipt_reply(text: Optional[str]) -> ReceiptScan:
    """
    Extract and validate the JSON object embedded in a model reply.

    Raises:
        RecognitionFailedError: No JSON object, invalid JSON or wrong shape
    """
    if not text:
        raise RecognitionFailedError("Empty reply from recognition model")

    match = _JSON_OBJECT.search(text)
    if match is None:
        raise RecognitionFailedError("No JSON object in recognition reply")

    try:
        data: Any = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise RecognitionFailedError(f"Malformed JSON in recognition reply: {e}") from e

    try:
        return ReceiptScan.model_validate(data)
    except ValidationError as e:
        raise RecognitionFailedError(f"Unexpected receipt structure: {e}") from e


class GeminiReceiptRecognizer(ReceiptRecognizer):
    """
    Receipt recognizer backed by a Gemini vision model.

    BOUNDARIES:
    - NEVER persists anything
    - NEVER invents a total when the reply has none
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        model: Optional[Any] = None,
    ):
        self._settings = settings
        self._model = model
        self._logger = structlog.get_logger(__name__)

    def _get_model(self) -> Any:
        """Configure the Gemini client on first use."""
        if self._model is None:
            settings = self._settings or get_settings().gemini
            genai.configure(api_key=settings.api_key)
            self._model = genai.GenerativeModel(
                model_name=settings.model_name,
                generation_config={
                    "temperature": settings.temperature,
                    "max_output_tokens": settings.max_tokens,
                },
            )
        return self._model

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(RecognitionFailedError),
        reraise=True,
    )
    async def _generate(self, mime_type: str, data: str) -> str:
        response = await self._get_model().generate_content_async([
            RECEIPT_PROMPT,
            {"mime_type": mime_type, "data": data},
        ])
        return response.text

    async def recognize(
        self,
        image_data_url: str,
        correlation_id: Optional[UUID] = None,
    ) -> ReceiptScan:
        """
        Recognize a receipt photo.

        Raises:
            RecognitionFailedError: Missing image, API failure or unusable reply
        """
        mime_type, data = split_data_url(image_data_url)

        try:
            text = await self._generate(mime_type, data)
        except RecognitionFailedError:
            raise
        except Exception as e:
            self._logger.error(
                "gemini_request_failed",
                error=str(e),
                correlation_id=str(correlation_id) if correlation_id else None,
            )
            raise RecognitionFailedError(f"Receipt recognition request failed: {e}") from e

        scan = parse_receipt_reply(text)
        self._logger.info(
            "receipt_recognized",
            total=str(scan.total),
            item_count=len(scan.items),
        )
        return scan
