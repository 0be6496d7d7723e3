"""Tests for Gemini receipt recognition (no network: the model is a stub)."""

from decimal import Decimal
from types import SimpleNamespace

import pytest
from tenacity import wait_none

from bakery_ledger.exceptions import RecognitionFailedError
from bakery_ledger.services.recognition import (
    RECEIPT_PROMPT,
    GeminiReceiptRecognizer,
    parse_receipt_reply,
    split_data_url,
)


class FakeModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    monkeypatch.setattr(GeminiReceiptRecognizer._generate.retry, "wait", wait_none())


class TestParseReply:

    def test_plain_json(self):
        scan = parse_receipt_reply('{"items": [{"name": "黄油", "price": 18.5, "qty": 2}], "total": 37}')
        assert scan.total == Decimal("37")
        assert scan.items[0].name == "黄油"
        assert scan.items[0].qty == Decimal("2")

    def test_json_wrapped_in_code_fence(self):
        reply = '```json\n{\n  "items": [],\n  "total": 12.5\n}\n```'
        assert parse_receipt_reply(reply).total == Decimal("12.5")

    @pytest.mark.parametrize("reply", [
        None,
        "",
        "抱歉，无法识别",
        "{not json}",
        '{"items": []}',
        '{"items": [], "total": -3}',
    ])
    def test_unusable_replies(self, reply):
        with pytest.raises(RecognitionFailedError):
            parse_receipt_reply(reply)


class TestDataUrl:

    def test_split_png(self):
        assert split_data_url("data:image/png;base64,QUJD") == ("image/png", "QUJD")

    def test_split_jpeg(self):
        assert split_data_url("data:image/jpeg;base64,/9j/") == ("image/jpeg", "/9j/")

    def test_bare_base64_defaults_to_png(self):
        assert split_data_url("QUJD") == ("image/png", "QUJD")

    def test_missing_image(self):
        with pytest.raises(RecognitionFailedError):
            split_data_url("")

    def test_empty_payload(self):
        with pytest.raises(RecognitionFailedError):
            split_data_url("data:image/png;base64,")


class TestGeminiReceiptRecognizer:

    async def test_sends_prompt_and_inline_image(self):
        model = FakeModel(reply='{"items": [{"name": "糖粉", "price": 6, "qty": 1}], "total": 6}')
        recognizer = GeminiReceiptRecognizer(model=model)

        scan = await recognizer.recognize("data:image/jpeg;base64,QUJD")

        assert scan.total == Decimal("6")
        prompt, image = model.calls[0]
        assert prompt == RECEIPT_PROMPT
        assert image == {"mime_type": "image/jpeg", "data": "QUJD"}

    async def test_api_error_becomes_recognition_failure(self):
        model = FakeModel(error=RuntimeError("quota exceeded"))
        recognizer = GeminiReceiptRecognizer(model=model)

        with pytest.raises(RecognitionFailedError):
            await recognizer.recognize("data:image/png;base64,QUJD")
        assert len(model.calls) == 3

    async def test_bad_reply_is_not_retried(self):
        model = FakeModel(reply="no receipt here")
        recognizer = GeminiReceiptRecognizer(model=model)

        with pytest.raises(RecognitionFailedError):
            await recognizer.recognize("data:image/png;base64,QUJD")
        assert len(model.calls) == 1
