from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError

from honeyintel.core.logging import get_logger
from honeyintel.engine.extractor import PatternExtractor, default_extractor
from honeyintel.engine.llm_extractor import ExternalExtractor
from honeyintel.engine.merger import extract_hybrid, union
from honeyintel.models.schemas import ExtractionResult, IntelligenceRecord, RawMessage, Sender

logger = get_logger(__name__)


def fold(prior: Optional[ExtractionResult], record: Optional[ExtractionResult]) -> IntelligenceRecord:
    """Append-only fold into the accumulator. Folding the same record twice is a no-op."""
    return union(prior, record)


def coerce_history(history: Optional[Iterable[Any]]) -> List[RawMessage]:
    messages = []
    for item in history or []:
        if isinstance(item, RawMessage):
            messages.append(item)
            continue
        try:
            messages.append(RawMessage.model_validate(item))
        except (ValidationError, TypeError):
            logger.debug("Skipping malformed history item")
    return messages


def _coerce_prior(prior: Any) -> Optional[ExtractionResult]:
    if prior is None or isinstance(prior, ExtractionResult):
        return prior
    if isinstance(prior, Mapping):
        try:
            return IntelligenceRecord.model_validate(dict(prior))
        except ValidationError:
            pass
    logger.warning("Ignoring malformed prior record")
    return None


def _coerce_message(message: Union[RawMessage, str, dict, None]) -> RawMessage:
    if isinstance(message, RawMessage):
        return message
    if isinstance(message, str) or message is None:
        return RawMessage(sender=Sender.COUNTERPART, text=message or "")
    try:
        return RawMessage.model_validate(message)
    except (ValidationError, TypeError):
        return RawMessage(sender=Sender.COUNTERPART, text="")


async def aggregate(
    history: Optional[Iterable[Any]],
    new_message: Union[RawMessage, str, dict, None],
    prior: Union[ExtractionResult, Mapping[str, Any], None] = None,
    *,
    external: Optional[ExternalExtractor] = None,
    pattern: Optional[PatternExtractor] = None,
) -> IntelligenceRecord:
    """
    Folds a conversation turn into the accumulated intelligence.

    Every counterpart turn in `history` is re-scanned with the pattern extractor
    so nothing revealed earlier is lost, the newest message goes through the
    full hybrid pipeline, and the result is unioned with `prior`. Values already
    in `prior` are never removed.
    """
    pattern = pattern or default_extractor
    history = coerce_history(history)
    prior = _coerce_prior(prior)
    message = _coerce_message(new_message)

    history_results = [
        pattern.extract(msg.text) for msg in history if msg.sender is Sender.COUNTERPART
    ]

    current = None
    if message.sender is Sender.COUNTERPART:
        current = await extract_hybrid(message.text, history, external=external, pattern=pattern)

    # New values are cleansed among themselves and against prior accounts;
    # the prior accumulator itself is left untouched.
    reference_accounts = prior.bank_accounts if prior is not None else ()
    fresh = pattern.resolver.cleanse(union(*history_results, current), reference_accounts)

    accumulated = fold(prior, fresh)
    logger.info("Aggregated turn", extra={
        "history_turns": len(history_results),
        "fresh": fresh.total(),
        "accumulated": accumulated.total(),
    })
    return accumulated
