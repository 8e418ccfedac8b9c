import asyncio
import json
from typing import Any, Iterable, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from honeyintel.core.logging import get_logger
from honeyintel.engine.prompts import INTEL_EXTRACTOR_PROMPT, INTEL_EXTRACTOR_SYSTEM_PROMPT
from honeyintel.models.schemas import ExtractionResult, RawMessage, Sender

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = 5000
DEFAULT_HISTORY_TURNS = 5


class LLMClient:
    """
    Explicit handle on the completion model used for extraction.
    An instance built without a model is *uninitialized*: the extractor then
    short-circuits to "no result" instead of calling anything.
    """

    def __init__(self, model: Any = None, model_name: Optional[str] = None):
        self.model = model
        self.model_name = model_name

    @property
    def initialized(self) -> bool:
        return self.model is not None

    @classmethod
    def from_settings(cls, settings) -> "LLMClient":
        if not settings.EXTRACTOR_ENABLED or not settings.GOOGLE_API_KEY:
            logger.warning("External extractor not configured, using pattern-only extraction.")
            return cls()
        try:
            model = ChatGoogleGenerativeAI(
                model=settings.EXTRACTOR_MODEL,
                google_api_key=settings.GOOGLE_API_KEY,
                temperature=0.1,
                max_output_tokens=300,
                max_retries=0,
            )
        except Exception as e:
            logger.error(f"Could not initialize extraction model: {e}")
            return cls()
        logger.info("External extractor initialized", extra={"model": settings.EXTRACTOR_MODEL})
        return cls(model, settings.EXTRACTOR_MODEL)


def _strip_code_fences(text: str) -> str:
    t = text.strip()
    if not t.startswith("```"):
        return t
    t = t.strip("`").strip()
    if t.lower().startswith("json"):
        t = t[4:].strip()
    return t


def _message_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Multi-part responses: keep the text parts only
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        content = "".join(parts)
    return content if isinstance(content, str) else ""


def parse_extraction(raw: Any) -> Optional[ExtractionResult]:
    """
    Locates the JSON object inside a model reply and coerces it into the
    six-category shape. Returns None when no JSON object can be recovered.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = _strip_code_fences(raw)
    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        obj = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    if not isinstance(obj, dict):
        return None
    try:
        return ExtractionResult.model_validate(obj)
    except ValidationError:
        return None


def build_context(text: str, history: Iterable[Any], history_turns: int = DEFAULT_HISTORY_TURNS) -> str:
    turns: List[RawMessage] = []
    for item in history or []:
        try:
            turns.append(item if isinstance(item, RawMessage) else RawMessage.model_validate(item))
        except (ValidationError, TypeError):
            continue
    recent = turns[-history_turns:] if history_turns > 0 else []
    lines = [
        f"{'scammer' if msg.sender is Sender.COUNTERPART else 'honeypot'}: {msg.text}"
        for msg in recent
        if msg.text
    ]
    if not lines:
        return f"scammer: {text}"
    return "Previous conversation:\n" + "\n".join(lines) + f"\n\nNew message:\nscammer: {text}"


class ExternalExtractor:
    """
    Model-backed extractor. `extract` never raises: every failure mode (timeout,
    auth, transport, unparseable reply) degrades to None so callers fall back to
    the pattern extractor.
    """

    def __init__(self, client: LLMClient, timeout_ms: int = DEFAULT_TIMEOUT_MS, history_turns: int = DEFAULT_HISTORY_TURNS):
        self.client = client
        self.timeout_ms = timeout_ms
        self.history_turns = history_turns

    @classmethod
    def from_settings(cls, settings) -> "ExternalExtractor":
        return cls(
            LLMClient.from_settings(settings),
            timeout_ms=settings.EXTRACTOR_TIMEOUT_MS,
            history_turns=settings.EXTRACTOR_HISTORY_TURNS,
        )

    def build_messages(self, text: str, history: Iterable[Any] = ()):
        prompt = INTEL_EXTRACTOR_PROMPT.format(context=build_context(text, history, self.history_turns))
        return [
            SystemMessage(content=INTEL_EXTRACTOR_SYSTEM_PROMPT),
            HumanMessage(content=prompt),
        ]

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    async def _complete(self, messages):
        return await self.client.model.ainvoke(messages)

    async def extract(self, text: Any, history: Iterable[Any] = (), timeout_ms: Optional[int] = None) -> Optional[ExtractionResult]:
        if not self.client.initialized:
            return None
        if not isinstance(text, str) or not text.strip():
            return None

        timeout_s = (timeout_ms if timeout_ms is not None else self.timeout_ms) / 1000
        try:
            messages = self.build_messages(text, history)
            response = await asyncio.wait_for(self._complete(messages), timeout=timeout_s)
        except asyncio.TimeoutError:
            logger.warning("External extractor timed out", extra={"timeout_s": timeout_s})
            return None
        except Exception as e:
            logger.warning(f"External extractor error: {e}")
            return None

        result = parse_extraction(_message_text(response))
        if result is None:
            logger.warning("External extractor returned no usable JSON object")
            return None

        logger.info("External extractor result", extra={"counts": result.counts()})
        return result
