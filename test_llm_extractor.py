import asyncio
from types import SimpleNamespace

from langchain_core.language_models.fake_chat_models import FakeListChatModel

from honeyintel.engine.llm_extractor import (
    ExternalExtractor,
    LLMClient,
    build_context,
    parse_extraction,
)


class SlowModel:
    async def ainvoke(self, messages):
        await asyncio.sleep(2)
        return SimpleNamespace(content='{"upiIds": ["late@ybl"]}')


class BrokenModel:
    def __init__(self):
        self.calls = 0

    async def ainvoke(self, messages):
        self.calls += 1
        raise RuntimeError("quota exceeded")


def test_parse_extraction_with_fences_and_prose():
    raw = '```json\n{"upiIds": ["scammer@paytm"], "phoneNumbers": [9876543210, null]}\n```'
    result = parse_extraction(raw)
    assert result.upi_ids == ["scammer@paytm"]
    assert result.phone_numbers == ["9876543210"]

    result = parse_extraction('Sure! Here it is: {"emails": "x@site.com", "bankAccounts": ["  "]} hope it helps')
    assert result.emails == []
    assert result.bank_accounts == []


def test_parse_extraction_rejects_non_objects():
    assert parse_extraction("no json here") is None
    assert parse_extraction("[1, 2, 3]") is None
    assert parse_extraction("{not valid json}") is None
    assert parse_extraction(None) is None


def test_build_context_uses_recent_turns():
    history = [
        {"sender": "scammer", "text": "your account is blocked"},
        {"sender": "user", "text": "who is this?"},
        42,
    ]
    context = build_context("pay now", history, history_turns=5)
    assert "scammer: your account is blocked" in context
    assert "honeypot: who is this?" in context
    assert context.endswith("New message:\nscammer: pay now")

    assert build_context("pay now", history, history_turns=0) == "scammer: pay now"


def test_uninitialized_client_short_circuits():
    extractor = ExternalExtractor(LLMClient())
    assert not extractor.client.initialized
    assert asyncio.run(extractor.extract("call 9876543210")) is None


def test_client_from_settings_without_key():
    config = SimpleNamespace(EXTRACTOR_ENABLED=True, GOOGLE_API_KEY=None, EXTRACTOR_MODEL="m")
    assert not LLMClient.from_settings(config).initialized

    config = SimpleNamespace(EXTRACTOR_ENABLED=False, GOOGLE_API_KEY="key", EXTRACTOR_MODEL="m")
    assert not LLMClient.from_settings(config).initialized


def test_extract_with_model_reply():
    model = FakeListChatModel(responses=['{"upiIds": ["hidden@okaxis"], "suspiciousKeywords": ["kyc"]}'])
    extractor = ExternalExtractor(LLMClient(model, "fake"))
    result = asyncio.run(extractor.extract("send to h i d d e n at okaxis"))
    assert result.upi_ids == ["hidden@okaxis"]
    assert result.suspicious_keywords == ["kyc"]


def test_extract_unusable_reply_is_none():
    model = FakeListChatModel(responses=["I cannot help with that."])
    extractor = ExternalExtractor(LLMClient(model, "fake"))
    assert asyncio.run(extractor.extract("anything")) is None


def test_extract_timeout_is_none():
    extractor = ExternalExtractor(LLMClient(SlowModel(), "slow"), timeout_ms=50)
    assert asyncio.run(extractor.extract("call 9876543210")) is None


def test_extract_error_is_none_after_retry():
    model = BrokenModel()
    extractor = ExternalExtractor(LLMClient(model, "broken"))
    assert asyncio.run(extractor.extract("call 9876543210")) is None
    assert model.calls == 2


def test_blank_text_is_not_sent():
    model = BrokenModel()
    extractor = ExternalExtractor(LLMClient(model, "broken"))
    assert asyncio.run(extractor.extract("   ")) is None
    assert model.calls == 0
